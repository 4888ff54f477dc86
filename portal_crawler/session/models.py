"""
Session state held between requests and process runs.
"""

from __future__ import annotations

import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

CookieKey = tuple[str, str]


def normalize_domain(domain: str) -> str:
    return domain.strip().lstrip(".").lower()


@dataclass(frozen=True)
class StoredCookie:
    """
    One cookie as captured from a `Set-Cookie` header.
    """

    domain: str
    name: str
    value: str
    path: str = "/"
    expires: float | None = None
    secure: bool = False

    @property
    def key(self) -> CookieKey:
        return (normalize_domain(self.domain), self.name)

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires is None:
            return False
        return self.expires <= (time.time() if now is None else now)

    def matches(self, *, host: str, path: str, secure: bool) -> bool:
        domain = normalize_domain(self.domain)
        host = host.lower()
        if host != domain and not host.endswith(f".{domain}"):
            return False
        if not (path or "/").startswith(self.path or "/"):
            return False
        if self.secure and not secure:
            return False
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "name": self.name,
            "value": self.value,
            "path": self.path,
            "expires": self.expires,
            "secure": self.secure,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "StoredCookie":
        expires = payload.get("expires")
        return cls(
            domain=str(payload["domain"]),
            name=str(payload["name"]),
            value=str(payload.get("value", "")),
            path=str(payload.get("path") or "/"),
            expires=float(expires) if expires is not None else None,
            secure=bool(payload.get("secure", False)),
        )


@dataclass
class PortalSession:
    """
    Authenticated cookie state plus validity flag. Holds no behavior beyond
    bookkeeping; mutation discipline lives in ``SharedSession``.
    """

    cookies: dict[CookieKey, StoredCookie] = field(default_factory=dict)
    validated: bool = False
    last_validated_at: datetime | None = None

    def merge(self, cookies: Iterable[StoredCookie]) -> bool:
        """
        Overwrite cookies by (domain, name). Returns whether anything changed.
        """

        changed = False
        for cookie in cookies:
            if self.cookies.get(cookie.key) != cookie:
                self.cookies[cookie.key] = cookie
                changed = True
        return changed

    def cookie_header(self, *, host: str, path: str = "/", secure: bool = True) -> str:
        now = time.time()
        pairs = [
            f"{cookie.name}={cookie.value}"
            for cookie in self.cookies.values()
            if not cookie.is_expired(now) and cookie.matches(host=host, path=path, secure=secure)
        ]
        return "; ".join(pairs)

    def clear(self) -> None:
        self.cookies.clear()
        self.validated = False
        self.last_validated_at = None

    @property
    def is_empty(self) -> bool:
        return not self.cookies

    def to_dict(self) -> dict[str, Any]:
        return {
            "cookies": [cookie.to_dict() for cookie in self.cookies.values()],
            "validated": self.validated,
            "last_validated_at": self.last_validated_at.isoformat() if self.last_validated_at else None,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "PortalSession":
        """
        Rebuild a session from a persisted snapshot.

        A loaded session is assumed usable but unverified, so ``validated``
        always starts False.

        Raises:
            KeyError: A cookie entry lacks its domain or name.
            ValueError: A timestamp or expiry is not parseable.
        """

        session = cls()
        raw_cookies = payload.get("cookies") or []
        session.merge(StoredCookie.from_dict(item) for item in raw_cookies if isinstance(item, dict))
        raw_timestamp = payload.get("last_validated_at")
        if isinstance(raw_timestamp, str) and raw_timestamp:
            session.last_validated_at = datetime.fromisoformat(raw_timestamp)
        return session
