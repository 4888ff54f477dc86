"""
Crawl orchestration: per-target retry state machine, canary probe and
batched fan-out over the shared session.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum

from portal_crawler.classification.classifier import FetchOutcome, classify_response
from portal_crawler.config import CrawlSettings
from portal_crawler.crawl.targets import unique_targets
from portal_crawler.errors import ContentIntegrityError, CredentialError, TransientNetworkError
from portal_crawler.extraction.base import Extractor
from portal_crawler.logging_utils import log_event
from portal_crawler.session.manager import SessionManager
from portal_crawler.transport.executor import RequestExecutor, RequestSpec
from portal_crawler.types import CrawlTarget, Record, dedupe_records, group_by_entity

logger = logging.getLogger(__name__)

TRANSIENT_ERROR = "transient_error"


class TargetStatus(str, Enum):
    SUCCESS = "success"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass(frozen=True)
class FetchAttempt:
    number: int
    outcome: str
    error: str | None = None


@dataclass
class TargetResult:
    target: CrawlTarget
    status: TargetStatus
    records: list[Record] = field(default_factory=list)
    attempts: list[FetchAttempt] = field(default_factory=list)
    error: str | None = None

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)


@dataclass
class CrawlRunResult:
    """
    Aggregate outcome of one run. Consumers must not rely on record order.
    """

    records: list[Record] = field(default_factory=list)
    results: list[TargetResult] = field(default_factory=list)
    aborted: bool = False
    abort_reason: str | None = None

    def _count(self, status: TargetStatus) -> int:
        return sum(1 for result in self.results if result.status is status)

    @property
    def success_count(self) -> int:
        return self._count(TargetStatus.SUCCESS)

    @property
    def empty_count(self) -> int:
        return self._count(TargetStatus.EMPTY)

    @property
    def failed_count(self) -> int:
        return self._count(TargetStatus.FAILED)

    @property
    def succeeded_entities(self) -> list[str]:
        return [result.target.entity for result in self.results if result.status is TargetStatus.SUCCESS]

    def records_by_entity(self) -> dict[str, list[Record]]:
        return group_by_entity(self.records)


class CrawlOrchestrator:
    """
    Drives targets through executor, classifier and extractor.
    """

    def __init__(
        self,
        *,
        executor: RequestExecutor,
        session_manager: SessionManager,
        request_builder: Callable[[CrawlTarget], RequestSpec],
        extractor: Extractor,
        settings: CrawlSettings,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._executor = executor
        self._session_manager = session_manager
        self._request_builder = request_builder
        self._extractor = extractor
        self._settings = settings
        self._sleep = sleep

    def run(self, targets: Sequence[CrawlTarget]) -> CrawlRunResult:
        """
        Crawl every target and aggregate their records.

        The first target runs alone as a canary; if it fails or yields no
        records nothing else is attempted. Remaining targets run in
        sequential batches on a bounded worker pool.

        Raises:
            CredentialError: Re-login was rejected by the portal.
        """

        ordered = unique_targets(targets)
        if not ordered:
            return CrawlRunResult()

        canary = ordered[0]
        canary_result = self._crawl_guarded(canary)
        if canary_result.status is not TargetStatus.SUCCESS:
            reason = (
                f"Canary target {canary.describe()} ended as {canary_result.status.value}; "
                f"{len(ordered) - 1} remaining target(s) skipped."
            )
            log_event(
                logger,
                logging.ERROR,
                "canary_failed",
                target=canary.describe(),
                status=canary_result.status.value,
                error=canary_result.error,
                skipped_targets=len(ordered) - 1,
            )
            return CrawlRunResult(results=[canary_result], aborted=True, abort_reason=reason)

        results = [canary_result]
        remaining = ordered[1:]
        batch_size = max(1, self._settings.batch_size)
        batches = [remaining[start : start + batch_size] for start in range(0, len(remaining), batch_size)]
        for index, batch in enumerate(batches, start=1):
            self._sleep(self._settings.inter_batch_delay_seconds)
            log_event(
                logger,
                logging.INFO,
                "batch_started",
                batch=index,
                batch_count=len(batches),
                targets=[target.describe() for target in batch],
            )
            results.extend(self._run_batch(batch))

        records = dedupe_records(
            record
            for result in results
            if result.status is TargetStatus.SUCCESS
            for record in result.records
        )
        run_result = CrawlRunResult(records=records, results=results)
        log_event(
            logger,
            logging.INFO,
            "crawl_completed",
            targets=len(results),
            success=run_result.success_count,
            empty=run_result.empty_count,
            failed=run_result.failed_count,
            records=len(records),
        )
        return run_result

    def crawl_target(self, target: CrawlTarget) -> TargetResult:
        """
        Resolve one target with a bounded number of attempts.
        """

        max_attempts = max(1, self._settings.max_attempts)
        attempts: list[FetchAttempt] = []

        for number in range(1, max_attempts + 1):
            generation = self._session_manager.generation
            try:
                response = self._executor.execute(self._request_builder(target), target=target)
            except TransientNetworkError as exc:
                attempts.append(FetchAttempt(number=number, outcome=TRANSIENT_ERROR, error=str(exc)))
                if number < max_attempts:
                    self._log_retry(target, number, TRANSIENT_ERROR, max_attempts)
                    self._sleep(self._settings.retry_backoff_seconds)
                continue

            outcome = classify_response(response, expected_identity=target.expected_identity)
            error: str | None = None
            if outcome is FetchOutcome.SUCCESS:
                try:
                    records = self._extractor.extract(response.body, target)
                except ContentIntegrityError as exc:
                    outcome = FetchOutcome.VERSION_MISMATCH
                    error = str(exc)
                else:
                    attempts.append(FetchAttempt(number=number, outcome=outcome.value))
                    status = TargetStatus.SUCCESS if records else TargetStatus.EMPTY
                    log_event(
                        logger,
                        logging.INFO,
                        "target_done",
                        target=target.describe(),
                        status=status.value,
                        records=len(records),
                        attempts=number,
                    )
                    return TargetResult(target=target, status=status, records=records, attempts=attempts)

            if outcome is FetchOutcome.NO_RESULTS:
                attempts.append(FetchAttempt(number=number, outcome=outcome.value))
                log_event(logger, logging.INFO, "target_no_results", target=target.describe(), attempts=number)
                return TargetResult(target=target, status=TargetStatus.EMPTY, attempts=attempts)

            attempts.append(FetchAttempt(number=number, outcome=outcome.value, error=error))
            if number >= max_attempts:
                break
            self._log_retry(target, number, outcome.value, max_attempts)
            self._prepare_retry(target, outcome, generation)

        last = attempts[-1]
        message = f"{last.outcome} after {len(attempts)} attempt(s)"
        if last.error:
            message = f"{message}: {last.error}"
        log_event(
            logger,
            logging.ERROR,
            "target_failed",
            target=target.describe(),
            attempts=len(attempts),
            outcomes=[attempt.outcome for attempt in attempts],
            error=message,
        )
        return TargetResult(target=target, status=TargetStatus.FAILED, attempts=attempts, error=message)

    def _prepare_retry(self, target: CrawlTarget, outcome: FetchOutcome, generation: int) -> None:
        if outcome is FetchOutcome.SESSION_EXPIRED:
            try:
                self._session_manager.relogin(generation)
            except TransientNetworkError as exc:
                log_event(
                    logger,
                    logging.WARNING,
                    "relogin_failed",
                    target=target.describe(),
                    error=str(exc),
                )
        elif outcome is FetchOutcome.SYSTEM_ERROR:
            self._sleep(self._settings.retry_backoff_seconds)

    def _crawl_guarded(self, target: CrawlTarget) -> TargetResult:
        try:
            return self.crawl_target(target)
        except CredentialError:
            raise
        except Exception as exc:
            log_event(
                logger,
                logging.ERROR,
                "target_failed",
                target=target.describe(),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return TargetResult(target=target, status=TargetStatus.FAILED, error=str(exc))

    def _run_batch(self, batch: Sequence[CrawlTarget]) -> list[TargetResult]:
        workers = max(1, min(self._settings.concurrency, len(batch)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="crawl") as pool:
            futures = [pool.submit(self._crawl_guarded, target) for target in batch]
            return [future.result() for future in futures]

    @staticmethod
    def _log_retry(target: CrawlTarget, number: int, outcome: str, max_attempts: int) -> None:
        log_event(
            logger,
            logging.WARNING,
            "target_retry",
            target=target.describe(),
            attempt=number,
            max_attempts=max_attempts,
            outcome=outcome,
        )
