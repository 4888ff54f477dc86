"""
portal_crawler/services/crawl_service.py

Service orchestration for one full portal crawl: session, discovery,
orchestrated fetch, regression check, baseline update and record sinks.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

import requests
from sqlalchemy.orm import Session

from portal_crawler.baseline import EntityCounts, RegressionDetector
from portal_crawler.classification import FetchOutcome, classify_response
from portal_crawler.config import (
    BaselineSettings,
    CrawlSettings,
    PortalSettings,
    get_baseline_settings,
    get_crawl_settings,
    get_portal_settings,
)
from portal_crawler.crawl import (
    CrawlOrchestrator,
    CrawlRunResult,
    PortalRequestBuilder,
    TargetStatus,
    curriculum_targets,
    schedule_targets,
)
from portal_crawler.crawl.targets import CURRICULUM_EPOCH
from portal_crawler.errors import BackendUnavailableError, ConfigurationError, DiscoveryError, SessionExpiredError
from portal_crawler.extraction import (
    CurriculumExtractor,
    Extractor,
    ScheduleExtractor,
    SelectOption,
    current_epoch,
    parse_select_options,
)
from portal_crawler.logging_utils import log_event
from portal_crawler.session.manager import SessionManager
from portal_crawler.session.shared import SharedSession
from portal_crawler.session.store import JSONFileSessionStore
from portal_crawler.storage import JSONBackupSink, RecordSink, SQLAlchemyRecordSink
from portal_crawler.terms import find_next_available_term, year_terms
from portal_crawler.transport import RequestExecutor, RequestSpec
from portal_crawler.types import CrawlTarget, TargetKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CrawlRunSummary:
    """
    Summary for one crawl run over one epoch.
    """

    kind: str
    epoch: str
    run_id: str
    status: str
    targets: int
    succeeded: int
    empty: int
    failed: int
    records_scraped: int
    records_stored: int
    aborted: bool = False
    abort_reason: str | None = None
    requires_review: bool = False
    fail_run: bool = False
    baseline_updated: bool = False
    regression_report: dict[str, Any] | None = None
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _new_run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _run_status(result: CrawlRunResult) -> str:
    if result.aborted:
        return "aborted"
    if not result.records:
        return "failed"
    if result.failed_count > 0:
        return "partial_success"
    return "success"


class PortalCrawlService:
    """
    Wires the crawl components from settings and runs schedule or
    curriculum crawls end to end.
    """

    def __init__(
        self,
        *,
        portal_settings: PortalSettings | None = None,
        crawl_settings: CrawlSettings | None = None,
        baseline_settings: BaselineSettings | None = None,
        http: requests.Session | None = None,
        detector: RegressionDetector | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._portal_settings = portal_settings or get_portal_settings()
        self._crawl_settings = crawl_settings or get_crawl_settings()
        self._baseline_settings = baseline_settings or get_baseline_settings()
        self._sleep = sleep

        self._session = SharedSession.load(JSONFileSessionStore(self._crawl_settings.session_path))
        self._executor = RequestExecutor(
            session=self._session,
            base_url=self._portal_settings.base_url,
            http=http,
            timeout_seconds=self._crawl_settings.request_timeout_seconds,
            max_redirects=self._crawl_settings.max_redirects,
            user_agent=self._portal_settings.user_agent,
        )
        self._session_manager = SessionManager(
            session=self._session,
            executor=self._executor,
            settings=self._portal_settings,
            max_attempts=self._crawl_settings.max_attempts,
            retry_backoff_seconds=self._crawl_settings.retry_backoff_seconds,
            sleep=sleep,
        )
        self._detector = detector or RegressionDetector.from_settings(self._baseline_settings)

    def connect(self) -> None:
        """
        Make sure an authenticated session exists.

        Raises:
            CredentialError: The portal rejected the credentials.
            SessionExpiredError: Login could not be confirmed by the probe.
        """

        if not self._session_manager.ensure_session():
            raise SessionExpiredError("Login could not be confirmed against a protected page.")

    def discover_terms(self) -> list[SelectOption]:
        return self._discover(self._portal_settings.schedule_path, "applicablePeriod")

    def discover_degrees(self) -> list[SelectOption]:
        return self._discover(self._portal_settings.curriculum_path, "degCode")

    def run_schedule(
        self,
        *,
        epoch: str | None = None,
        include_next: bool = False,
        year: int | str | None = None,
        departments: Sequence[str] | None = None,
        db: Session | None = None,
    ) -> list[CrawlRunSummary]:
        """
        Crawl class schedules for the current (or given) term, and
        optionally the following term when the portal already lists it.

        With ``year`` every term of that academic year is crawled in order
        (intersession, first and second semester), each against its own
        baseline.

        Raises:
            ConfigurationError: ``year`` is invalid or combined with ``epoch``.
        """

        if year is not None and (epoch or include_next):
            raise ConfigurationError("A full-year crawl cannot be combined with an epoch or the next term.")
        full_year = year_terms(year) if year is not None else None

        self.connect()
        self._detector.validate_baselines_exist()

        epochs: list[str] = []
        if full_year:
            epochs = full_year
        elif epoch and not include_next:
            epochs = [epoch]
        else:
            options = self.discover_terms()
            first = epoch or current_epoch(options)
            epochs = [first]
            if include_next:
                following = find_next_available_term(options, first)
                if following:
                    epochs.append(following)
                else:
                    log_event(logger, logging.INFO, "next_term_unavailable", current=first)

        codes = list(departments or self._crawl_settings.departments)
        summaries: list[CrawlRunSummary] = []
        for term in epochs:
            summaries.append(
                self._run(
                    kind=TargetKind.SCHEDULE,
                    epoch=term,
                    targets=schedule_targets(term, codes),
                    extractor=ScheduleExtractor(
                        expected_prefixes=self._crawl_settings.expected_prefixes,
                        minimum_matches=self._crawl_settings.minimum_matches,
                    ),
                    db=db,
                )
            )
        return summaries

    def run_curriculum(
        self,
        *,
        degrees: Sequence[str] | None = None,
        db: Session | None = None,
    ) -> CrawlRunSummary:
        self.connect()
        self._detector.validate_baselines_exist()

        if degrees:
            selected: list[str | tuple[str, str]] = list(degrees)
        else:
            selected = [(option.value, option.label) for option in self.discover_degrees()]
        return self._run(
            kind=TargetKind.CURRICULUM,
            epoch=CURRICULUM_EPOCH,
            targets=curriculum_targets(selected),
            extractor=CurriculumExtractor(),
            db=db,
        )

    def _run(
        self,
        *,
        kind: TargetKind,
        epoch: str,
        targets: list[CrawlTarget],
        extractor: Extractor,
        db: Session | None,
    ) -> CrawlRunSummary:
        run_id = _new_run_id()
        log_event(logger, logging.INFO, "crawl_run_started", kind=kind.value, epoch=epoch, targets=len(targets))
        orchestrator = CrawlOrchestrator(
            executor=self._executor,
            session_manager=self._session_manager,
            request_builder=PortalRequestBuilder(self._portal_settings),
            extractor=extractor,
            settings=self._crawl_settings,
            sleep=self._sleep,
        )
        result = orchestrator.run(targets)
        errors = [f"{item.target.describe()}: {item.error}" for item in result.results if item.error]

        if result.aborted:
            return CrawlRunSummary(
                kind=kind.value,
                epoch=epoch,
                run_id=run_id,
                status=_run_status(result),
                targets=len(targets),
                succeeded=result.success_count,
                empty=result.empty_count,
                failed=result.failed_count,
                records_scraped=0,
                records_stored=0,
                aborted=True,
                abort_reason=result.abort_reason,
                errors=errors,
            )

        report = self._detector.compare(epoch, self._current_counts(result))
        fail_run = self._detector.should_fail_run(report)
        baseline_updated = False
        if report.requires_review:
            reason = "critical_regressions" if report.has_critical_regressions else "total_regression"
            log_event(logger, logging.WARNING, "baseline_update_held", epoch=epoch, reason=reason)
        else:
            baseline_updated = self._detector.update_baseline(epoch, result, metadata={"run_id": run_id}) is not None

        stored = 0
        for sink in self._sinks(kind, db):
            stored = max(stored, sink.store(result.records, run_id=run_id))

        summary = CrawlRunSummary(
            kind=kind.value,
            epoch=epoch,
            run_id=run_id,
            status=_run_status(result),
            targets=len(targets),
            succeeded=result.success_count,
            empty=result.empty_count,
            failed=result.failed_count,
            records_scraped=len(result.records),
            records_stored=stored,
            requires_review=report.requires_review,
            fail_run=fail_run,
            baseline_updated=baseline_updated,
            regression_report=report.to_dict(),
            errors=errors,
        )
        log_event(
            logger,
            logging.INFO,
            "crawl_run_completed",
            kind=kind.value,
            epoch=epoch,
            run_id=run_id,
            status=summary.status,
            records=summary.records_scraped,
            requires_review=summary.requires_review,
        )
        return summary

    def _current_counts(self, result: CrawlRunResult) -> dict[str, EntityCounts]:
        """
        Counts for every entity whose target resolved; failed entities are
        left out so they surface as disappearances, not as drops to zero.
        """

        by_entity = result.records_by_entity()
        resolved = {
            item.target.entity: by_entity.get(item.target.entity, [])
            for item in result.results
            if item.status is not TargetStatus.FAILED
        }
        return self._detector.build_snapshot_data(resolved)

    def _sinks(self, kind: TargetKind, db: Session | None) -> list[RecordSink]:
        sinks: list[RecordSink] = [JSONBackupSink(directory=self._crawl_settings.backup_dir, kind=kind)]
        if db is not None:
            sinks.append(SQLAlchemyRecordSink(session=db, kind=kind))
        return sinks

    def _discover(self, path: str, select_name: str) -> list[SelectOption]:
        for _ in range(2):
            generation = self._session_manager.generation
            response = self._executor.execute(RequestSpec.get(path))
            outcome = classify_response(response)
            if outcome is FetchOutcome.SESSION_EXPIRED:
                self._session_manager.relogin(generation)
                continue
            if outcome is FetchOutcome.SYSTEM_ERROR:
                raise BackendUnavailableError(f"Discovery page {path} returned the portal error page.")
            if outcome is not FetchOutcome.SUCCESS:
                raise DiscoveryError(f"Discovery page {path} returned {outcome.value}.")
            options = parse_select_options(response.body, select_name)
            log_event(logger, logging.INFO, "discovery_completed", select=select_name, options=len(options))
            return options
        raise DiscoveryError(f"Discovery page {path} kept returning the login page.")

