"""SOCKS5 proxy descriptor for routing the IMAP connection."""

from __future__ import annotations

from urllib.parse import unquote, urlparse

from pydantic import BaseModel, Field, SecretStr, ValidationError

from .errors import InvalidConfigError


class Socks5Proxy(BaseModel):
    """Where and how to reach a SOCKS5 proxy.

    The password is a :class:`~pydantic.SecretStr` and ``str(proxy)`` masks
    it, so proxies are safe to log.
    """

    model_config = {"frozen": True}

    host: str = Field(min_length=1, description="Proxy hostname or IP address")
    port: int = Field(default=1080, ge=1, le=65535, description="Proxy port")
    username: str | None = Field(default=None, description="Optional proxy username")
    password: SecretStr | None = Field(default=None, description="Optional proxy password")

    @classmethod
    def with_auth(cls, host: str, port: int, username: str, password: str) -> Socks5Proxy:
        return cls(host=host, port=port, username=username, password=password)

    @classmethod
    def from_url(cls, url: str) -> Socks5Proxy:
        """Parse ``socks5://[user:pass@]host[:port]``.

        Raises :class:`InvalidConfigError` for any other scheme, a missing
        host or a bad port.
        """
        parsed = urlparse(url)
        if parsed.scheme.lower() not in ("socks5", "socks5h") or not parsed.hostname:
            raise InvalidConfigError(f"unsupported proxy URL: {parsed.scheme}://{parsed.hostname}")
        try:
            port = parsed.port
        except ValueError as exc:
            raise InvalidConfigError(f"invalid proxy port: {exc}") from exc
        try:
            return cls(
                host=parsed.hostname,
                port=1080 if port is None else port,
                username=unquote(parsed.username) if parsed.username else None,
                password=unquote(parsed.password) if parsed.password else None,
            )
        except ValidationError as exc:
            reason = "; ".join(error["msg"] for error in exc.errors())
            raise InvalidConfigError(f"invalid proxy URL: {reason}") from exc

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def requires_auth(self) -> bool:
        return self.username is not None

    def __str__(self) -> str:
        if self.requires_auth:
            return f"socks5://{self.username}:***@{self.host}:{self.port}"
        return f"socks5://{self.host}:{self.port}"
