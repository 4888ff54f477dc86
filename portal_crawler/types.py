"""
Shared crawl runtime data models.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class TargetKind(str, Enum):
    SCHEDULE = "schedule"
    CURRICULUM = "curriculum"


@dataclass(frozen=True)
class CrawlTarget:
    """
    One (epoch, entity) unit of work.
    """

    epoch: str
    entity: str
    kind: TargetKind = TargetKind.SCHEDULE
    params: tuple[tuple[str, str], ...] = ()
    label: str | None = None

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.kind.value, self.epoch, self.entity)

    @property
    def expected_identity(self) -> str | None:
        """
        Identity the response must carry; only curriculum pages embed one.
        """

        if self.kind is TargetKind.CURRICULUM:
            return self.entity
        return None

    def describe(self) -> str:
        return f"{self.kind.value}:{self.epoch}:{self.entity}"


@dataclass(frozen=True)
class Record:
    """
    One extracted row tagged with its source entity and epoch.
    """

    epoch: str
    entity: str
    natural_key: tuple[str, ...]
    fields: Mapping[str, Any] = field(default_factory=dict)

    @property
    def identity(self) -> tuple[str, str, tuple[str, ...]]:
        return (self.epoch, self.entity, self.natural_key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "epoch": self.epoch,
            "entity": self.entity,
            "natural_key": list(self.natural_key),
            **dict(self.fields),
        }


def dedupe_records(records: Iterable[Record]) -> list[Record]:
    """
    Drop duplicate identities; the last occurrence wins.
    """

    by_identity: dict[tuple[str, str, tuple[str, ...]], Record] = {}
    for record in records:
        by_identity.pop(record.identity, None)
        by_identity[record.identity] = record
    return list(by_identity.values())


def group_by_entity(records: Iterable[Record]) -> dict[str, list[Record]]:
    grouped: dict[str, list[Record]] = {}
    for record in records:
        grouped.setdefault(record.entity, []).append(record)
    return grouped
