"""
tests/test_session_manager.py

Login, validation and serialized re-login against a simulated portal.
"""

from __future__ import annotations

import threading

import pytest
import requests

from portal_crawler.config import PortalSettings
from portal_crawler.errors import ConfigurationError, CredentialError, TransientNetworkError
from portal_crawler.session import SharedSession, StoredCookie
from portal_crawler.session.manager import SessionManager, hidden_form_fields
from portal_crawler.transport import RequestExecutor
from portal_fakes import (
    BASE_URL,
    INCONCLUSIVE_PAGE,
    LOGIN_PAGE,
    SYSTEM_ERROR_PAGE,
    FakeHTTP,
    PortalSimulator,
)


@pytest.fixture()
def settings() -> PortalSettings:
    return PortalSettings(base_url=BASE_URL, username="student", password="secret")


def _manager(handler, settings: PortalSettings, *, max_attempts: int = 3):
    shared = SharedSession()
    http = FakeHTTP(handler)
    executor = RequestExecutor(session=shared, base_url=BASE_URL, http=http)
    sleeps: list[float] = []
    manager = SessionManager(
        session=shared,
        executor=executor,
        settings=settings,
        max_attempts=max_attempts,
        retry_backoff_seconds=1.5,
        sleep=sleeps.append,
    )
    return manager, shared, http, sleeps


class TestLogin:
    def test_login_submits_credentials_and_verifies_with_probe(self, settings) -> None:
        portal = PortalSimulator()
        manager, shared, http, _ = _manager(portal, settings)

        assert manager.login() is True
        assert shared.validated is True
        assert manager.generation == 1

        post = next(call for call in http.calls if call.method == "POST")
        assert post.data["userName"] == "student"
        assert post.data["password"] == "secret"
        assert post.data["command"] == "login"
        assert post.data["rnd"] == "r8f3k2a"
        assert http.paths()[-1] == "/j_aisis/J_VCSC.do"
        assert "JSESSIONID=auth-1" in shared.cookie_header_for(f"{BASE_URL}/j_aisis/J_VCSC.do")

    def test_rejected_credentials_raise_without_retry(self, settings) -> None:
        portal = PortalSimulator(password="something-else")
        manager, shared, http, sleeps = _manager(portal, settings)

        with pytest.raises(CredentialError):
            manager.login()
        assert len(http.paths("POST")) == 1
        assert sleeps == []
        assert shared.validated is False

    def test_missing_credentials_raise(self) -> None:
        manager, _, http, _ = _manager(PortalSimulator(), PortalSettings(base_url=BASE_URL))
        with pytest.raises(ConfigurationError):
            manager.login()
        assert http.calls == []

    def test_probe_showing_login_page_fails_login(self, settings) -> None:
        portal = PortalSimulator(probe_page=LOGIN_PAGE)
        manager, shared, _, _ = _manager(portal, settings)

        assert manager.login() is False
        assert shared.validated is False
        assert shared.is_empty
        assert manager.generation == 0

    @pytest.mark.parametrize("probe_page", [INCONCLUSIVE_PAGE, SYSTEM_ERROR_PAGE])
    def test_inconclusive_probe_is_accepted(self, settings, probe_page, caplog) -> None:
        portal = PortalSimulator(probe_page=probe_page)
        manager, shared, _, _ = _manager(portal, settings)

        with caplog.at_level("WARNING"):
            assert manager.login() is True
        assert shared.validated is True
        assert "login_probe_inconclusive" in caplog.text

    def test_transient_failures_are_retried(self, settings) -> None:
        portal = PortalSimulator()
        failures = {"left": 2}

        def flaky(call):
            if call.path.endswith("displayLogin.do") and failures["left"]:
                failures["left"] -= 1
                return requests.ConnectionError("reset by peer")
            return portal(call)

        manager, _, _, sleeps = _manager(flaky, settings)
        assert manager.login() is True
        assert sleeps == [1.5, 1.5]

    def test_transient_failures_exhaust_attempts(self, settings) -> None:
        manager, _, http, sleeps = _manager(lambda call: requests.ConnectTimeout("down"), settings, max_attempts=2)
        with pytest.raises(TransientNetworkError):
            manager.login()
        assert len(http.calls) == 2
        assert sleeps == [1.5]

    def test_single_attempt_reraises_the_network_error(self, settings) -> None:
        manager, _, http, sleeps = _manager(lambda call: requests.ConnectTimeout("down"), settings, max_attempts=1)
        with pytest.raises(TransientNetworkError) as excinfo:
            manager.login()
        assert "down" in str(excinfo.value)
        assert len(http.calls) == 1
        assert sleeps == []


class TestValidateExisting:
    def test_empty_session_is_not_valid(self, settings) -> None:
        manager, _, http, _ = _manager(PortalSimulator(), settings)
        assert manager.validate_existing() is False
        assert http.calls == []

    def test_live_cookie_validates(self, settings) -> None:
        manager, shared, _, _ = _manager(PortalSimulator(), settings)
        shared.merge_cookies([StoredCookie(domain="aisis.test", name="JSESSIONID", value="auth-9")])
        assert manager.validate_existing() is True
        assert shared.validated is True

    def test_expired_cookie_is_invalidated(self, settings) -> None:
        manager, shared, _, _ = _manager(PortalSimulator(), settings)
        shared.merge_cookies([StoredCookie(domain="aisis.test", name="JSESSIONID", value="stale")])
        assert manager.validate_existing() is False
        assert shared.is_empty

    def test_inconclusive_probe_does_not_validate(self, settings) -> None:
        manager, shared, _, _ = _manager(PortalSimulator(probe_page=INCONCLUSIVE_PAGE), settings)
        shared.merge_cookies([StoredCookie(domain="aisis.test", name="JSESSIONID", value="auth-9")])
        assert manager.validate_existing() is False

    def test_ensure_session_falls_back_to_login(self, settings) -> None:
        manager, shared, http, _ = _manager(PortalSimulator(), settings)
        shared.merge_cookies([StoredCookie(domain="aisis.test", name="JSESSIONID", value="stale")])
        assert manager.ensure_session() is True
        assert "/j_aisis/login.do" in http.paths("POST")

    def test_ensure_session_skips_probe_when_validated(self, settings) -> None:
        manager, shared, http, _ = _manager(PortalSimulator(), settings)
        shared.mark_validated()
        assert manager.ensure_session() is True
        assert http.calls == []


class TestRelogin:
    def test_stale_generation_skips_second_login(self, settings) -> None:
        manager, _, http, _ = _manager(PortalSimulator(), settings)
        observed = manager.generation
        assert manager.relogin(observed) is True
        logins_after_first = len(http.paths("POST"))
        assert manager.relogin(observed) is True
        assert len(http.paths("POST")) == logins_after_first
        assert manager.generation == 1

    def test_concurrent_relogins_log_in_once(self, settings) -> None:
        manager, _, http, _ = _manager(PortalSimulator(), settings)
        observed = manager.generation
        barrier = threading.Barrier(5)
        results: list[bool] = []

        def worker() -> None:
            barrier.wait()
            results.append(manager.relogin(observed))

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results == [True] * 5
        assert http.paths("POST") == ["/j_aisis/login.do"]
        assert manager.generation == 1

    def test_logout_clears_session(self, settings) -> None:
        manager, shared, _, _ = _manager(PortalSimulator(), settings)
        manager.login()
        manager.logout()
        assert shared.is_empty
        assert shared.validated is False


def test_hidden_form_fields() -> None:
    assert hidden_form_fields(LOGIN_PAGE) == {"rnd": "r8f3k2a"}
    assert hidden_form_fields("<p>no form</p>") == {}
