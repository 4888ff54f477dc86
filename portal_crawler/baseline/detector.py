"""
Regression detection against the last known-good baseline for an epoch.

Comparison is a pure function of (previous snapshot, current counts,
thresholds, critical allowlist); only ``compare`` and ``update_baseline``
touch the store.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

from portal_crawler.baseline.models import (
    BaselineSnapshot,
    EntityBaseline,
    EntityCounts,
    EntityDisappearance,
    EntityRegression,
    RegressionReport,
)
from portal_crawler.baseline.store import BaselineStore
from portal_crawler.config import BaselineSettings
from portal_crawler.crawl.orchestrator import CrawlRunResult
from portal_crawler.errors import BaselineRequiredError
from portal_crawler.logging_utils import log_event
from portal_crawler.types import Record

logger = logging.getLogger(__name__)

PrefixRule = Callable[[Record], "str | None"]

_CODE_SEPARATORS = re.compile(r"[\s./]+")


def default_prefix_rule(record: Record) -> str | None:
    """
    Leading token of the subject or course code: ``PEPC 10`` -> ``PEPC``.
    """

    code = record.fields.get("subject_code") or record.fields.get("course_code")
    if not code and record.natural_key:
        code = record.natural_key[0]
    if not code:
        return None
    token = _CODE_SEPARATORS.split(str(code).strip(), maxsplit=1)[0]
    return token.upper() or None


class RegressionDetector:
    """
    Builds, compares and replaces per-epoch baseline snapshots.
    """

    def __init__(
        self,
        *,
        store: BaselineStore,
        drop_threshold: float = 0.5,
        total_drop_threshold: float = 0.05,
        critical_entities: Iterable[str] = (),
        prefix_rule: PrefixRule = default_prefix_rule,
        require_baselines: bool = False,
        warn_only: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not 0.0 <= drop_threshold <= 1.0:
            raise ValueError(f"drop_threshold must be within [0, 1], got {drop_threshold}")
        if not 0.0 <= total_drop_threshold <= 1.0:
            raise ValueError(f"total_drop_threshold must be within [0, 1], got {total_drop_threshold}")
        self._store = store
        self._drop_threshold = drop_threshold
        self._total_drop_threshold = total_drop_threshold
        self._critical_entities = frozenset(critical_entities)
        self._prefix_rule = prefix_rule
        self._require_baselines = require_baselines
        self._warn_only = warn_only
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @classmethod
    def from_settings(cls, settings: BaselineSettings, **overrides: Any) -> "RegressionDetector":
        options: dict[str, Any] = {
            "store": BaselineStore(settings.baseline_dir),
            "drop_threshold": settings.drop_threshold,
            "total_drop_threshold": settings.total_drop_threshold,
            "critical_entities": settings.critical_entities,
            "require_baselines": settings.require_baselines,
            "warn_only": settings.warn_only,
        }
        options.update(overrides)
        return cls(**options)

    @property
    def drop_threshold(self) -> float:
        return self._drop_threshold

    @property
    def total_drop_threshold(self) -> float:
        return self._total_drop_threshold

    @property
    def store(self) -> BaselineStore:
        return self._store

    def build_snapshot_data(self, entities: Mapping[str, Sequence[Record]]) -> dict[str, EntityCounts]:
        data: dict[str, EntityCounts] = {}
        for entity, records in entities.items():
            breakdown: dict[str, int] = {}
            for record in records:
                category = self._prefix_rule(record)
                if category:
                    breakdown[category] = breakdown.get(category, 0) + 1
            data[entity] = EntityCounts(record_count=len(records), category_breakdown=breakdown)
        return data

    def save(
        self,
        epoch: str,
        data: Mapping[str, EntityCounts],
        *,
        metadata: Mapping[str, Any] | None = None,
    ) -> BaselineSnapshot:
        now = self._clock()
        snapshot = BaselineSnapshot(
            epoch=epoch,
            timestamp=now,
            entities={
                entity: EntityBaseline(
                    record_count=counts.record_count,
                    category_breakdown=dict(counts.category_breakdown),
                    timestamp=now,
                )
                for entity, counts in data.items()
            },
            metadata=dict(metadata or {}),
        )
        self._store.save(snapshot)
        return snapshot

    def load(self, epoch: str) -> BaselineSnapshot | None:
        return self._store.load(epoch)

    def compare(self, epoch: str, current: Mapping[str, EntityCounts]) -> RegressionReport:
        report = self.compare_snapshots(self._store.load(epoch), current, epoch=epoch)
        if not report.has_previous:
            log_event(logger, logging.INFO, "baseline_missing", epoch=epoch)
        elif report.total_regression:
            log_event(
                logger,
                logging.ERROR,
                "total_regression_detected",
                epoch=epoch,
                previous_total=report.previous_total,
                current_total=report.current_total,
                percent_change=round(report.total_percent_change or 0.0, 4),
                threshold=self._total_drop_threshold,
            )
        for regression in report.regressions:
            log_event(
                logger,
                logging.ERROR if regression.is_critical else logging.WARNING,
                "regression_detected",
                epoch=epoch,
                entity=regression.entity,
                previous_count=regression.previous_count,
                current_count=regression.current_count,
                percent_drop=round(regression.percent_drop, 4),
                missing_categories=regression.missing_categories,
                is_critical=regression.is_critical,
            )
        for warning in report.warnings:
            log_event(
                logger,
                logging.WARNING,
                "entity_disappeared",
                epoch=epoch,
                entity=warning.entity,
                previous_count=warning.previous_count,
            )
        return report

    def compare_snapshots(
        self,
        previous: BaselineSnapshot | None,
        current: Mapping[str, EntityCounts],
        *,
        epoch: str,
    ) -> RegressionReport:
        current_total = sum(counts.record_count for counts in current.values())
        if previous is None:
            return RegressionReport(
                epoch=epoch,
                has_previous=False,
                threshold=self._drop_threshold,
                current_total=current_total,
                total_threshold=self._total_drop_threshold,
            )

        previous_total = previous.total_records
        change = (current_total - previous_total) / previous_total if previous_total > 0 else 0.0
        report = RegressionReport(
            epoch=epoch,
            has_previous=True,
            threshold=self._drop_threshold,
            previous_timestamp=previous.timestamp,
            previous_total=previous_total,
            current_total=current_total,
            total_percent_change=change,
            total_threshold=self._total_drop_threshold,
            total_regression=change < 0 and -change > self._total_drop_threshold,
        )
        for entity, before in previous.entities.items():
            now = current.get(entity)
            if now is None:
                report.warnings.append(EntityDisappearance(entity=entity, previous_count=before.record_count))
                continue

            percent_drop = 0.0
            if before.record_count > 0:
                percent_drop = (before.record_count - now.record_count) / before.record_count
            exceeded = percent_drop > self._drop_threshold
            missing = sorted(
                category
                for category, count in before.category_breakdown.items()
                if count > 0 and now.category_breakdown.get(category, 0) <= 0
            )
            if not exceeded and not missing:
                continue
            report.regressions.append(
                EntityRegression(
                    entity=entity,
                    previous_count=before.record_count,
                    current_count=now.record_count,
                    percent_drop=percent_drop,
                    missing_categories=missing,
                    is_critical=entity in self._critical_entities,
                    threshold_exceeded=exceeded,
                )
            )
        return report

    def validate_baselines_exist(self) -> bool:
        """
        Check for any baseline before a run.

        Raises:
            BaselineRequiredError: Baselines are required, none exist, and
                warn-only mode is off.
        """

        exists = self._store.has_any()
        if exists or not self._require_baselines:
            return exists
        message = f"No baseline files found in {self._store.directory} while baselines are required."
        if not self._warn_only:
            log_event(logger, logging.ERROR, "baseline_required_missing", directory=str(self._store.directory))
            raise BaselineRequiredError(message)
        log_event(
            logger,
            logging.WARNING,
            "baseline_bootstrap_mode",
            directory=str(self._store.directory),
        )
        return False

    def should_fail_run(self, report: RegressionReport) -> bool:
        """
        Critical entity regressions or a term-wide drop fail the run unless
        warn-only mode is on.
        """

        return report.requires_review and not self._warn_only

    def update_baseline(
        self,
        epoch: str,
        run_result: CrawlRunResult,
        *,
        metadata: Mapping[str, Any] | None = None,
    ) -> BaselineSnapshot | None:
        """
        Replace the epoch's baseline with counts from a completed run.

        Aborted runs and runs without records leave the stored baseline
        untouched. Only entities whose target succeeded are written.
        """

        if run_result.aborted or not run_result.records:
            log_event(
                logger,
                logging.WARNING,
                "baseline_update_skipped",
                epoch=epoch,
                aborted=run_result.aborted,
                records=len(run_result.records),
            )
            return None

        by_entity = run_result.records_by_entity()
        succeeded = {
            entity: by_entity.get(entity, [])
            for entity in run_result.succeeded_entities
            if by_entity.get(entity)
        }
        return self.save(
            epoch,
            self.build_snapshot_data(succeeded),
            metadata={
                "total_records": len(run_result.records),
                "failed_targets": run_result.failed_count,
                **dict(metadata or {}),
            },
        )
