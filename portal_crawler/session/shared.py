"""
Thread-safe, write-through wrapper around the portal session.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from datetime import datetime, timezone
from urllib.parse import urlparse

from portal_crawler.logging_utils import log_event
from portal_crawler.session.models import PortalSession, StoredCookie
from portal_crawler.session.store import SessionStore

logger = logging.getLogger(__name__)


class SharedSession:
    """
    The one session shared by every in-flight request.

    Each mutation is applied and persisted under a single lock, so a
    snapshot written to the store always contains every merge that
    completed before it.
    """

    def __init__(self, *, session: PortalSession | None = None, store: SessionStore | None = None) -> None:
        self._session = session or PortalSession()
        self._store = store
        self._lock = threading.Lock()

    @classmethod
    def load(cls, store: SessionStore) -> "SharedSession":
        """
        Build a shared session from the store's last snapshot, if any.

        A snapshot with malformed fields is discarded; the session then
        starts empty and the next login replaces it.
        """

        snapshot = store.load()
        session = PortalSession()
        restored = False
        if snapshot:
            try:
                session = PortalSession.from_dict(snapshot)
                restored = True
            except (KeyError, TypeError, ValueError) as exc:
                log_event(
                    logger,
                    logging.WARNING,
                    "session_snapshot_unreadable",
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
        log_event(
            logger,
            logging.INFO,
            "session_loaded",
            restored=restored,
            cookie_count=len(session.cookies),
        )
        return cls(session=session, store=store)

    @property
    def validated(self) -> bool:
        with self._lock:
            return self._session.validated

    @property
    def is_empty(self) -> bool:
        with self._lock:
            return self._session.is_empty

    @property
    def last_validated_at(self) -> datetime | None:
        with self._lock:
            return self._session.last_validated_at

    def cookie_header_for(self, url: str) -> str:
        parsed = urlparse(url)
        with self._lock:
            return self._session.cookie_header(
                host=parsed.hostname or "",
                path=parsed.path or "/",
                secure=parsed.scheme == "https",
            )

    def merge_cookies(self, cookies: Iterable[StoredCookie]) -> bool:
        """
        Merge one response's cookies and persist if anything changed.
        """

        incoming = list(cookies)
        if not incoming:
            return False
        with self._lock:
            changed = self._session.merge(incoming)
            if changed:
                self._persist_locked()
        return changed

    def mark_validated(self, at: datetime | None = None) -> None:
        with self._lock:
            self._session.validated = True
            self._session.last_validated_at = at or datetime.now(timezone.utc)
            self._persist_locked()

    def invalidate(self) -> None:
        """
        Drop cookies and the validity flag after a detected expiry or logout.
        """

        with self._lock:
            self._session.clear()
            self._persist_locked()

    def snapshot(self) -> dict:
        with self._lock:
            return self._session.to_dict()

    def _persist_locked(self) -> None:
        if self._store is None:
            return
        self._store.save(self._session.to_dict())
