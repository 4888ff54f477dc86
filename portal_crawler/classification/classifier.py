"""
Content classification for portal responses.

Every body maps to exactly one ``FetchOutcome``. Checks run in a fixed
order: system error page, login page, no-results sentinel, version
mismatch, success. An error page that embeds login-like text stays a
system error.
"""

from __future__ import annotations

from enum import Enum

from bs4 import BeautifulSoup

from portal_crawler.classification.versions import extract_title, versions_match
from portal_crawler.transport.executor import RawResponse

SYSTEM_ERROR_SENTINEL = "Your Request Cannot Be Processed At This Time"
NO_RESULTS_SENTINEL = "Sorry. There are no results for your search criteria"

LOGIN_PRIMARY_MARKERS = ("Sign in", "login.do", "displayLogin.do")
LOGIN_SECONDARY_MARKERS = ("Username:", "Password:", "Forgot your password", "password reset")

AUTHENTICATED_MARKERS = ("logout.do", "Sign out", "Log Out", 'name="applicablePeriod"', 'name="degCode"')

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class FetchOutcome(str, Enum):
    SUCCESS = "success"
    NO_RESULTS = "no_results"
    SESSION_EXPIRED = "session_expired"
    SYSTEM_ERROR = "system_error"
    VERSION_MISMATCH = "version_mismatch"


def is_system_error_page(body: str | None) -> bool:
    return isinstance(body, str) and SYSTEM_ERROR_SENTINEL in body


def is_login_page(body: str | None) -> bool:
    """
    Two distinct primary markers, or one primary plus one secondary.

    A single "Sign in" on an otherwise normal page is not enough.
    """

    if not isinstance(body, str) or not body:
        return False
    primary = sum(1 for marker in LOGIN_PRIMARY_MARKERS if marker in body)
    if primary >= 2:
        return True
    if primary == 0:
        return False
    return any(marker in body for marker in LOGIN_SECONDARY_MARKERS)


def is_no_results_page(body: str | None) -> bool:
    return isinstance(body, str) and NO_RESULTS_SENTINEL in body


def is_authenticated_page(body: str | None) -> bool:
    if not isinstance(body, str) or is_login_page(body):
        return False
    return any(marker in body for marker in AUTHENTICATED_MARKERS)


def classify(body: str | None, *, expected_identity: str | None = None) -> FetchOutcome:
    if is_system_error_page(body):
        return FetchOutcome.SYSTEM_ERROR
    if is_login_page(body):
        return FetchOutcome.SESSION_EXPIRED
    if is_no_results_page(body):
        return FetchOutcome.NO_RESULTS
    if expected_identity and body:
        title = extract_title(BeautifulSoup(body, "html.parser"))
        if not versions_match(expected_identity, title):
            return FetchOutcome.VERSION_MISMATCH
    return FetchOutcome.SUCCESS


def classify_response(response: RawResponse, *, expected_identity: str | None = None) -> FetchOutcome:
    """
    Classify a full response; overload statuses on a page that would
    otherwise pass count as a system error.
    """

    outcome = classify(response.body, expected_identity=expected_identity)
    if outcome is FetchOutcome.SUCCESS and response.status_code in RETRYABLE_STATUS_CODES:
        return FetchOutcome.SYSTEM_ERROR
    return outcome
