"""
Baseline snapshot and regression report models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

BASELINE_SCHEMA_VERSION = 1


class EntityBaseline(BaseModel):
    record_count: int = Field(ge=0)
    category_breakdown: dict[str, int] = Field(default_factory=dict)
    timestamp: datetime


class BaselineSnapshot(BaseModel):
    """
    Known-good per-entity counts for one epoch. Replaced wholesale on save.
    """

    schema_version: int = BASELINE_SCHEMA_VERSION
    epoch: str
    timestamp: datetime
    entities: dict[str, EntityBaseline] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def total_records(self) -> int:
        return sum(entity.record_count for entity in self.entities.values())


@dataclass(frozen=True)
class EntityCounts:
    record_count: int
    category_breakdown: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class EntityRegression:
    entity: str
    previous_count: int
    current_count: int
    percent_drop: float
    missing_categories: list[str] = field(default_factory=list)
    is_critical: bool = False
    threshold_exceeded: bool = False


@dataclass(frozen=True)
class EntityDisappearance:
    entity: str
    previous_count: int
    current_count: int = 0


@dataclass
class RegressionReport:
    epoch: str
    has_previous: bool
    threshold: float
    previous_timestamp: datetime | None = None
    previous_total: int | None = None
    current_total: int = 0
    total_percent_change: float | None = None
    total_threshold: float = 0.0
    total_regression: bool = False
    regressions: list[EntityRegression] = field(default_factory=list)
    warnings: list[EntityDisappearance] = field(default_factory=list)

    @property
    def has_critical_regressions(self) -> bool:
        return any(regression.is_critical for regression in self.regressions)

    @property
    def requires_review(self) -> bool:
        return self.has_critical_regressions or self.total_regression

    def to_dict(self) -> dict[str, Any]:
        return {
            "epoch": self.epoch,
            "has_previous": self.has_previous,
            "previous_timestamp": self.previous_timestamp.isoformat() if self.previous_timestamp else None,
            "threshold": self.threshold,
            "has_critical_regressions": self.has_critical_regressions,
            "previous_total": self.previous_total,
            "current_total": self.current_total,
            "total_percent_change": (
                round(self.total_percent_change, 4) if self.total_percent_change is not None else None
            ),
            "total_threshold": self.total_threshold,
            "total_regression": self.total_regression,
            "regressions": [
                {
                    "entity": item.entity,
                    "previous_count": item.previous_count,
                    "current_count": item.current_count,
                    "percent_drop": round(item.percent_drop, 4),
                    "missing_categories": list(item.missing_categories),
                    "is_critical": item.is_critical,
                }
                for item in self.regressions
            ],
            "warnings": [
                {
                    "entity": item.entity,
                    "previous_count": item.previous_count,
                    "current_count": item.current_count,
                }
                for item in self.warnings
            ],
        }
