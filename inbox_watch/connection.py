"""Transport layer: TCP (direct or through SOCKS5) plus the TLS handshake.

These functions block; callers run them in a worker thread.
"""

from __future__ import annotations

import socket
import ssl

import socks
import structlog

from .errors import (
    ConnectTimeoutError,
    InvalidTargetNameError,
    ProxyConnectError,
    TcpConnectError,
    TlsConnectError,
)
from .proxy import Socks5Proxy

logger = structlog.get_logger()


def _is_valid_server_name(host: str) -> bool:
    if not host or host.startswith(".") or any(ch.isspace() for ch in host):
        return False
    try:
        host.encode("idna")
    except UnicodeError:
        return False
    return True


def open_tcp(
    host: str,
    port: int,
    *,
    proxy: Socks5Proxy | None = None,
    timeout: float | None = None,
) -> socket.socket:
    """Open a plain TCP stream to ``host:port``, tunnelled through *proxy* if given."""
    target = f"{host}:{port}"

    if proxy is None:
        try:
            sock = socket.create_connection((host, port), timeout=timeout)
        except TimeoutError as exc:
            raise ConnectTimeoutError(target, timeout or 0.0) from exc
        except OSError as exc:
            raise TcpConnectError(target) from exc
        logger.debug("tcp_connected", target=target)
        return sock

    sock = socks.socksocket()
    sock.set_proxy(
        socks.SOCKS5,
        proxy.host,
        proxy.port,
        rdns=True,
        username=proxy.username,
        password=proxy.password.get_secret_value() if proxy.password else None,
    )
    sock.settimeout(timeout)
    try:
        sock.connect((host, port))
    except (socks.ProxyError, OSError) as exc:
        sock.close()
        raise ProxyConnectError(proxy.address, target) from exc
    logger.debug("tcp_connected", target=target, proxy=str(proxy))
    return sock


def secure(
    sock: socket.socket,
    server_name: str,
    *,
    context: ssl.SSLContext | None = None,
) -> ssl.SSLSocket:
    """Run the TLS handshake over *sock*, verifying the certificate for *server_name*.

    *sock* is closed if the handshake fails.
    """
    if not _is_valid_server_name(server_name):
        sock.close()
        raise InvalidTargetNameError(server_name)

    context = context or ssl.create_default_context()
    try:
        tls_sock = context.wrap_socket(sock, server_hostname=server_name)
    except ssl.SSLError as exc:
        sock.close()
        raise TlsConnectError(server_name) from exc
    except ValueError as exc:
        # wrap_socket rejects names it can't send as SNI before any I/O
        sock.close()
        raise InvalidTargetNameError(server_name) from exc
    except OSError as exc:
        sock.close()
        raise TlsConnectError(server_name) from exc
    logger.debug("tls_established", server_name=server_name, version=tls_sock.version())
    return tls_sock


def establish_tls_connection(
    host: str,
    port: int,
    *,
    proxy: Socks5Proxy | None = None,
    timeout: float | None = None,
    context: ssl.SSLContext | None = None,
) -> ssl.SSLSocket:
    """TCP connect then TLS handshake; the full connect stage of a session."""
    sock = open_tcp(host, port, proxy=proxy, timeout=timeout)
    return secure(sock, host, context=context)
