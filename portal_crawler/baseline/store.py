"""
One JSON baseline file per epoch.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path

from pydantic import ValidationError

from portal_crawler.baseline.models import BaselineSnapshot
from portal_crawler.logging_utils import log_event

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class BaselineStore:
    """
    Reads and replaces ``baseline-<epoch>.json`` files in one directory.
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, epoch: str) -> Path:
        safe_epoch = _UNSAFE_FILENAME_CHARS.sub("_", epoch.strip()) or "unknown"
        return self._directory / f"baseline-{safe_epoch}.json"

    def has_any(self) -> bool:
        if not self._directory.is_dir():
            return False
        return any(self._directory.glob("baseline-*.json"))

    def load(self, epoch: str) -> BaselineSnapshot | None:
        """
        Snapshot for ``epoch``, or None when there is none or it cannot be read.
        """

        path = self.path_for(epoch)
        if not path.exists():
            return None
        try:
            return BaselineSnapshot.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValueError, ValidationError) as exc:
            log_event(logger, logging.WARNING, "baseline_unreadable", epoch=epoch, path=str(path), error=str(exc))
            return None

    def save(self, snapshot: BaselineSnapshot) -> Path:
        path = self.path_for(snapshot.epoch)
        self._directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".baseline-", suffix=".tmp", dir=self._directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(snapshot.model_dump_json(indent=2))
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        log_event(
            logger,
            logging.INFO,
            "baseline_saved",
            epoch=snapshot.epoch,
            path=str(path),
            entities=len(snapshot.entities),
            total_records=snapshot.total_records,
        )
        return path
