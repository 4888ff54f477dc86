"""
db/models/crawl_record.py

One extracted portal record, replaced per (kind, epoch, entity) on each sync.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, CreatedAtMixin


class CrawlRecord(CreatedAtMixin, Base):
    __tablename__ = "crawl_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="schedule, curriculum",
    )
    epoch: Mapped[str] = mapped_column(String(64), nullable=False, comment="Term code or curriculum bucket")
    entity: Mapped[str] = mapped_column(String(120), nullable=False, comment="Department or degree code")
    natural_key: Mapped[str] = mapped_column(String(512), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    __table_args__ = (
        UniqueConstraint("kind", "epoch", "entity", "natural_key", name="uq_crawl_records_identity"),
        Index("ix_crawl_records_kind_epoch", "kind", "epoch"),
        Index("ix_crawl_records_entity", "entity"),
    )

    def __repr__(self) -> str:
        return f"<CrawlRecord kind={self.kind!r} epoch={self.epoch!r} entity={self.entity!r} key={self.natural_key!r}>"
