"""
Authentication lifecycle for the shared portal session.
"""

from __future__ import annotations

import logging
import random
import string
import threading
import time
from collections.abc import Callable
from enum import Enum

from bs4 import BeautifulSoup

from portal_crawler.classification.classifier import (
    is_authenticated_page,
    is_login_page,
    is_system_error_page,
)
from portal_crawler.config import PortalSettings
from portal_crawler.errors import ConfigurationError, CredentialError, TransientNetworkError
from portal_crawler.logging_utils import log_event
from portal_crawler.session.shared import SharedSession
from portal_crawler.transport.executor import RawResponse, RequestExecutor, RequestSpec

logger = logging.getLogger(__name__)

CREDENTIAL_REJECTION_MARKERS = ("Invalid password", "Invalid username", "Invalid user")


class ProbeResult(str, Enum):
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"
    INCONCLUSIVE = "inconclusive"


def _anti_automation_token() -> str:
    alphabet = string.ascii_lowercase + string.digits
    return "r" + "".join(random.choice(alphabet) for _ in range(6))


def hidden_form_fields(body: str) -> dict[str, str]:
    """
    Hidden inputs of the first form on the login page.
    """

    soup = BeautifulSoup(body or "", "html.parser")
    form = soup.find("form")
    if form is None:
        return {}
    fields: dict[str, str] = {}
    for node in form.find_all("input", attrs={"type": "hidden"}):
        name = node.get("name")
        if name:
            fields[str(name)] = str(node.get("value") or "")
    return fields


class SessionManager:
    """
    Owns the shared session: login, validation and serialized re-login.
    """

    def __init__(
        self,
        *,
        session: SharedSession,
        executor: RequestExecutor,
        settings: PortalSettings,
        max_attempts: int = 3,
        retry_backoff_seconds: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session = session
        self._executor = executor
        self._settings = settings
        self._max_attempts = max(1, max_attempts)
        self._retry_backoff_seconds = max(0.0, retry_backoff_seconds)
        self._sleep = sleep
        self._login_lock = threading.Lock()
        self._generation = 0

    @property
    def session(self) -> SharedSession:
        return self._session

    @property
    def generation(self) -> int:
        """
        Number of successful logins so far in this process.
        """

        return self._generation

    def login(self) -> bool:
        """
        Establish a fresh authenticated session.

        Returns True only when the credential submission and an independent
        probe of a protected page agree. An inconclusive probe is accepted
        with a warning.

        Raises:
            ConfigurationError: Credentials are not configured.
            CredentialError: The portal rejected the credentials.
            TransientNetworkError: Network failures persisted across attempts.
        """

        if not self._settings.has_credentials:
            raise ConfigurationError("Portal credentials are not configured; set PORTAL_USERNAME and PORTAL_PASSWORD.")

        self._session.invalidate()
        log_event(logger, logging.INFO, "login_started", base_url=self._settings.base_url)

        submission = self._with_retries("login_submit", self._submit_credentials)
        if is_login_page(submission.body) or any(
            marker in submission.body for marker in CREDENTIAL_REJECTION_MARKERS
        ):
            log_event(logger, logging.ERROR, "login_rejected", status_code=submission.status_code)
            raise CredentialError("Authentication failed: the portal rejected the credentials.")

        probe = self._with_retries("login_probe", self._probe)
        result = self._interpret_probe(probe)
        if result is ProbeResult.EXPIRED:
            self._session.invalidate()
            log_event(logger, logging.ERROR, "login_probe_disagrees", probe_url=probe.url)
            return False

        if result is ProbeResult.INCONCLUSIVE:
            log_event(
                logger,
                logging.WARNING,
                "login_probe_inconclusive",
                probe_url=probe.url,
                status_code=probe.status_code,
            )
        self._session.mark_validated()
        self._generation += 1
        log_event(logger, logging.INFO, "login_succeeded", generation=self._generation)
        return True

    def validate_existing(self) -> bool:
        """
        Probe the protected page with the loaded session.

        Any outcome other than an affirmative authenticated page invalidates
        the session.
        """

        if self._session.is_empty:
            log_event(logger, logging.INFO, "session_validation_skipped", reason="no_cookies")
            return False

        try:
            probe = self._probe()
        except TransientNetworkError as exc:
            self._session.invalidate()
            log_event(logger, logging.WARNING, "session_validation_failed", error=str(exc))
            return False

        if self._interpret_probe(probe) is ProbeResult.AUTHENTICATED:
            self._session.mark_validated()
            log_event(logger, logging.INFO, "session_validated")
            return True

        self._session.invalidate()
        log_event(logger, logging.INFO, "session_invalid", probe_url=probe.url)
        return False

    def ensure_session(self) -> bool:
        if self._session.validated:
            return True
        if self.validate_existing():
            return True
        return self.login()

    def relogin(self, observed_generation: int) -> bool:
        """
        Re-authenticate after a SESSION_EXPIRED response.

        Concurrent callers are serialized; a caller that saw an older
        generation than the current one skips the login because another
        worker already refreshed the session.
        """

        with self._login_lock:
            if self._generation != observed_generation and self._session.validated:
                log_event(
                    logger,
                    logging.DEBUG,
                    "relogin_skipped",
                    observed_generation=observed_generation,
                    generation=self._generation,
                )
                return True
            log_event(logger, logging.INFO, "relogin_started", generation=self._generation)
            return self.login()

    def logout(self) -> None:
        self._session.invalidate()
        log_event(logger, logging.INFO, "session_logged_out")

    def _submit_credentials(self) -> RawResponse:
        login_page = self._executor.execute(RequestSpec.get(self._settings.display_login_path))
        form = hidden_form_fields(login_page.body)
        form.update(
            {
                "userName": self._settings.username or "",
                "password": self._settings.password or "",
                "submit": "Sign in",
                "command": "login",
            }
        )
        form.setdefault("rnd", _anti_automation_token())
        return self._executor.execute(RequestSpec.post(self._settings.login_path, form))

    def _probe(self) -> RawResponse:
        return self._executor.execute(RequestSpec.get(self._settings.probe_path))

    @staticmethod
    def _interpret_probe(probe: RawResponse) -> ProbeResult:
        if is_system_error_page(probe.body):
            return ProbeResult.INCONCLUSIVE
        if is_login_page(probe.body):
            return ProbeResult.EXPIRED
        if is_authenticated_page(probe.body):
            return ProbeResult.AUTHENTICATED
        return ProbeResult.INCONCLUSIVE

    def _with_retries(self, step: str, call: Callable[[], RawResponse]) -> RawResponse:
        for attempt in range(1, self._max_attempts + 1):
            try:
                return call()
            except TransientNetworkError as exc:
                log_event(
                    logger,
                    logging.WARNING,
                    "login_step_retry",
                    step=step,
                    attempt=attempt,
                    max_attempts=self._max_attempts,
                    error=str(exc),
                )
                if attempt >= self._max_attempts:
                    raise
            self._sleep(self._retry_backoff_seconds)

        raise RuntimeError(f"Login step {step} made no attempts")
