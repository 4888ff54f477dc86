"""
JSON file backup of each run's records.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

from portal_crawler.logging_utils import log_event
from portal_crawler.storage.base import RecordSink
from portal_crawler.types import Record, TargetKind

logger = logging.getLogger(__name__)


class JSONBackupSink(RecordSink):
    """
    Writes ``<kind>-<run_id>.json`` into the backup directory.
    """

    def __init__(self, *, directory: str | Path, kind: TargetKind) -> None:
        self._directory = Path(directory)
        self._kind = kind
        self.last_path: Path | None = None

    def store(self, records: Sequence[Record], *, run_id: str) -> int:
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self._directory / f"{self._kind.value}-{run_id}.json"
        payload = {
            "kind": self._kind.value,
            "run_id": run_id,
            "written_at": datetime.now(timezone.utc).isoformat(),
            "record_count": len(records),
            "records": [record.to_dict() for record in records],
        }
        path.write_text(json.dumps(payload, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
        self.last_path = path
        log_event(logger, logging.INFO, "records_backed_up", path=str(path), records=len(records))
        return len(records)
