"""IMAP host discovery from the domain of an email address.

The built-in table is read-only and shared by the whole process.  Callers
that need different mappings build a :class:`ServerRegistry`, whose own
entries win over the built-ins.  Domains are compared case-insensitively;
unknown domains fall back to ``imap.<domain>``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

KNOWN_SERVERS: Mapping[str, str] = MappingProxyType(
    {
        # Google
        "gmail.com": "imap.gmail.com",
        "googlemail.com": "imap.gmail.com",
        # Yahoo
        "yahoo.com": "imap.mail.yahoo.com",
        # Microsoft
        "hotmail.com": "imap-mail.outlook.com",
        "outlook.com": "imap-mail.outlook.com",
        "live.com": "imap-mail.outlook.com",
        # Mail.ru network
        "mail.ru": "imap.mail.ru",
        "internet.ru": "imap.mail.ru",
        "bk.ru": "imap.mail.ru",
        "inbox.ru": "imap.mail.ru",
        "list.ru": "imap.mail.ru",
        # AOL
        "aol.com": "imap.aol.com",
        # Yandex
        "yandex.ru": "imap.yandex.ru",
        "yandex.com": "imap.yandex.ru",
        # Apple
        "icloud.com": "imap.mail.me.com",
        "me.com": "imap.mail.me.com",
        "mac.com": "imap.mail.me.com",
        # German providers
        "web.de": "imap.web.de",
        "gmx.de": "imap.gmx.net",
        "gmx.at": "imap.gmx.net",
        "gmx.ch": "imap.gmx.net",
        "gmx.net": "imap.gmx.net",
        "gmx.com": "imap.gmx.net",
        "t-online.de": "secureimap.t-online.de",
        "firemail.de": "imap.firemail.de",
        # Polish providers
        "gazeta.pl": "imap.gazeta.pl",
        # Russian providers
        "rambler.ru": "imap.rambler.ru",
        # FirstMail network
        "streetwormail.com": "imap.firstmail.ltd",
        "bonsoirmail.com": "imap.firstmail.ltd",
        "aurevoirmail.com": "imap.firstmail.ltd",
        "bonjourfmail.com": "imap.firstmail.ltd",
        "bientotmail.com": "imap.firstmail.ltd",
    }
)


def _domain_of(email: str) -> str:
    _, _, domain = email.rpartition("@")
    return domain.lower()


def discover_imap_host(email: str) -> str:
    """Resolve the IMAP host for *email* from the built-in table."""
    domain = _domain_of(email)
    return KNOWN_SERVERS.get(domain, f"imap.{domain}")


def is_known_domain(domain: str) -> bool:
    return domain.lower() in KNOWN_SERVERS


def known_domains() -> list[str]:
    return list(KNOWN_SERVERS)


class ServerRegistry:
    """Per-application domain → IMAP host overrides.

    Resolution order in :meth:`discover`:

    1. mappings added with :meth:`register`
    2. the built-in table, when created via :meth:`with_defaults`
    3. ``imap.<domain>``
    """

    def __init__(self, *, use_defaults: bool = False) -> None:
        self._custom: dict[str, str] = {}
        self._use_defaults = use_defaults

    @classmethod
    def with_defaults(cls) -> ServerRegistry:
        return cls(use_defaults=True)

    def register(self, domain: str, imap_host: str) -> None:
        self._custom[domain.lower()] = imap_host

    def register_many(self, mappings: Iterable[tuple[str, str]]) -> None:
        for domain, imap_host in mappings:
            self.register(domain, imap_host)

    def unregister(self, domain: str) -> str | None:
        """Drop a custom mapping; built-in entries are unaffected."""
        return self._custom.pop(domain.lower(), None)

    def discover(self, email: str) -> str:
        domain = _domain_of(email)
        if domain in self._custom:
            return self._custom[domain]
        if self._use_defaults and domain in KNOWN_SERVERS:
            return KNOWN_SERVERS[domain]
        return f"imap.{domain}"

    def is_known(self, domain: str) -> bool:
        domain = domain.lower()
        return domain in self._custom or (self._use_defaults and domain in KNOWN_SERVERS)

    def domains(self) -> list[str]:
        names = list(self._custom)
        if self._use_defaults:
            names.extend(d for d in KNOWN_SERVERS if d not in self._custom)
        return names

    def copy(self) -> ServerRegistry:
        clone = ServerRegistry(use_defaults=self._use_defaults)
        clone._custom = dict(self._custom)
        return clone

    def __len__(self) -> int:
        return len(self.domains())

    def __contains__(self, domain: object) -> bool:
        return isinstance(domain, str) and self.is_known(domain)

    def __repr__(self) -> str:
        return f"ServerRegistry(custom={len(self._custom)}, use_defaults={self._use_defaults})"
