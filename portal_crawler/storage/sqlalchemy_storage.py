"""
SQLAlchemy-backed record sink.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.models.crawl_record import CrawlRecord
from portal_crawler.logging_utils import log_event
from portal_crawler.storage.base import RecordSink
from portal_crawler.types import Record, TargetKind, dedupe_records

logger = logging.getLogger(__name__)

NATURAL_KEY_SEPARATOR = "|"


class SQLAlchemyRecordSink(RecordSink):
    """
    Replace stored rows for every (epoch, entity) present in the batch.

    Entities absent from ``records`` keep their previous rows, so a target
    that failed this run does not wipe what an earlier run stored.
    """

    def __init__(self, *, session: Session, kind: TargetKind, batch_size: int = 1000) -> None:
        self._session = session
        self._kind = kind
        self._batch_size = max(1, batch_size)

    def store(self, records: Sequence[Record], *, run_id: str) -> int:
        if not records:
            return 0

        unique = dedupe_records(records)
        scopes = sorted({(record.epoch, record.entity) for record in unique})
        inserted = 0
        try:
            for epoch, entity in scopes:
                self._session.execute(
                    delete(CrawlRecord).where(
                        CrawlRecord.kind == self._kind.value,
                        CrawlRecord.epoch == epoch,
                        CrawlRecord.entity == entity,
                    )
                )
            for start in range(0, len(unique), self._batch_size):
                chunk = unique[start : start + self._batch_size]
                self._session.add_all(self._to_row(record, run_id) for record in chunk)
                self._session.flush()
                inserted += len(chunk)
            self._session.commit()
        except SQLAlchemyError:
            self._session.rollback()
            raise

        log_event(
            logger,
            logging.INFO,
            "records_stored",
            kind=self._kind.value,
            run_id=run_id,
            records=inserted,
            entities=len(scopes),
        )
        return inserted

    def _to_row(self, record: Record, run_id: str) -> CrawlRecord:
        return CrawlRecord(
            run_id=run_id,
            kind=self._kind.value,
            epoch=record.epoch,
            entity=record.entity,
            natural_key=NATURAL_KEY_SEPARATOR.join(record.natural_key),
            payload=dict(record.fields),
        )
