"""
Durable storage for session snapshots.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from portal_crawler.logging_utils import log_event

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """
    Storage abstraction for session snapshots.
    """

    @abstractmethod
    def load(self) -> dict[str, Any] | None:
        """
        Return the last persisted snapshot, or None when nothing is stored.
        """

    @abstractmethod
    def save(self, snapshot: dict[str, Any]) -> None:
        """
        Persist one full snapshot, replacing the previous one.
        """


class JSONFileSessionStore(SessionStore):
    """
    Session snapshot kept in one JSON file, replaced atomically on save.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Any] | None:
        if not self._path.exists():
            return None
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log_event(
                logger,
                logging.WARNING,
                "session_snapshot_unreadable",
                path=str(self._path),
                error=str(exc),
            )
            return None
        if not isinstance(payload, dict):
            return None
        return payload

    def save(self, snapshot: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.",
            suffix=".tmp",
            dir=str(self._path.parent),
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(snapshot, handle, indent=2, sort_keys=True)
            os.replace(tmp_name, self._path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
