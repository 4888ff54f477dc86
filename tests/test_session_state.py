"""
tests/test_session_state.py

Cookie bookkeeping, snapshot persistence and the serialized shared
session, including a concurrent merge race.
"""

from __future__ import annotations

import json
import threading
import time
from datetime import datetime, timezone

import pytest

from portal_crawler.session import JSONFileSessionStore, PortalSession, SharedSession, StoredCookie
from portal_crawler.session.store import SessionStore


class RecordingStore(SessionStore):
    def __init__(self) -> None:
        self.saved: list[dict] = []
        self.initial: dict | None = None

    def load(self):
        return self.initial

    def save(self, snapshot) -> None:
        self.saved.append(json.loads(json.dumps(snapshot)))


def _cookie(name: str, value: str, **kwargs) -> StoredCookie:
    return StoredCookie(domain=kwargs.pop("domain", "aisis.test"), name=name, value=value, **kwargs)


# ---------------------------------------------------------------------------
# PortalSession
# ---------------------------------------------------------------------------


class TestPortalSession:
    def test_merge_overwrites_by_domain_and_name(self) -> None:
        session = PortalSession()
        assert session.merge([_cookie("JSESSIONID", "a")]) is True
        assert session.merge([_cookie("JSESSIONID", "b", domain=".AISIS.test")]) is True
        assert len(session.cookies) == 1
        assert session.cookie_header(host="aisis.test") == "JSESSIONID=b"

    def test_merge_reports_no_change_for_identical_cookie(self) -> None:
        session = PortalSession()
        session.merge([_cookie("JSESSIONID", "a")])
        assert session.merge([_cookie("JSESSIONID", "a")]) is False

    def test_cookie_header_filters_host_path_secure_and_expiry(self) -> None:
        session = PortalSession()
        session.merge(
            [
                _cookie("root", "1"),
                _cookie("scoped", "2", path="/j_aisis"),
                _cookie("secure", "3", secure=True),
                _cookie("stale", "4", expires=time.time() - 10),
                _cookie("other", "5", domain="example.org"),
            ]
        )
        header = session.cookie_header(host="www.aisis.test", path="/other", secure=False)
        assert header == "root=1"
        header = session.cookie_header(host="aisis.test", path="/j_aisis/J_VCSC.do", secure=True)
        assert sorted(header.split("; ")) == ["root=1", "scoped=2", "secure=3"]

    def test_loaded_snapshot_starts_unvalidated(self) -> None:
        session = PortalSession()
        session.merge([_cookie("JSESSIONID", "a")])
        session.validated = True
        session.last_validated_at = datetime(2025, 1, 1, tzinfo=timezone.utc)

        restored = PortalSession.from_dict(session.to_dict())
        assert restored.validated is False
        assert restored.last_validated_at == session.last_validated_at
        assert restored.cookies == session.cookies

    def test_clear(self) -> None:
        session = PortalSession(validated=True)
        session.merge([_cookie("JSESSIONID", "a")])
        session.clear()
        assert session.is_empty
        assert session.validated is False


# ---------------------------------------------------------------------------
# JSONFileSessionStore
# ---------------------------------------------------------------------------


class TestJSONFileSessionStore:
    def test_missing_file_loads_none(self, tmp_path) -> None:
        assert JSONFileSessionStore(tmp_path / "session.json").load() is None

    def test_round_trip(self, tmp_path) -> None:
        store = JSONFileSessionStore(tmp_path / "nested" / "session.json")
        store.save({"cookies": [], "validated": False})
        assert store.load() == {"cookies": [], "validated": False}
        assert [path.name for path in store.path.parent.iterdir()] == ["session.json"]

    def test_corrupt_file_loads_none(self, tmp_path) -> None:
        path = tmp_path / "session.json"
        path.write_text("{not json", encoding="utf-8")
        assert JSONFileSessionStore(path).load() is None


# ---------------------------------------------------------------------------
# SharedSession
# ---------------------------------------------------------------------------


class TestSharedSession:
    def test_merge_persists_only_on_change(self) -> None:
        store = RecordingStore()
        shared = SharedSession(store=store)
        shared.merge_cookies([_cookie("JSESSIONID", "a")])
        shared.merge_cookies([_cookie("JSESSIONID", "a")])
        shared.merge_cookies([])
        assert len(store.saved) == 1

    def test_every_state_transition_is_persisted(self) -> None:
        store = RecordingStore()
        shared = SharedSession(store=store)
        shared.merge_cookies([_cookie("JSESSIONID", "a")])
        shared.mark_validated()
        shared.invalidate()
        assert [snapshot["validated"] for snapshot in store.saved] == [False, True, False]
        assert store.saved[-1]["cookies"] == []

    def test_load_restores_cookies_unvalidated(self, tmp_path) -> None:
        store = JSONFileSessionStore(tmp_path / "session.json")
        first = SharedSession(store=store)
        first.merge_cookies([_cookie("JSESSIONID", "abc")])
        first.mark_validated()

        second = SharedSession.load(store)
        assert second.validated is False
        assert second.cookie_header_for("https://aisis.test/j_aisis/J_VCSC.do") == "JSESSIONID=abc"

    @pytest.mark.parametrize(
        "snapshot",
        [
            {"cookies": [{"name": "JSESSIONID", "value": "abc"}]},
            {"cookies": [], "last_validated_at": "yesterday"},
            {"cookies": [{"domain": "aisis.test", "name": "JSESSIONID", "expires": "soon"}]},
        ],
    )
    def test_malformed_snapshot_starts_empty(self, snapshot, caplog) -> None:
        store = RecordingStore()
        store.initial = snapshot
        with caplog.at_level("WARNING"):
            shared = SharedSession.load(store)

        assert shared.is_empty
        assert shared.validated is False
        assert "session_snapshot_unreadable" in caplog.text
        shared.merge_cookies([_cookie("JSESSIONID", "fresh")])
        assert store.saved[-1]["cookies"][0]["value"] == "fresh"

    def test_concurrent_merges_never_lose_an_update(self, tmp_path) -> None:
        store = JSONFileSessionStore(tmp_path / "session.json")
        shared = SharedSession(store=store)
        workers = 8
        rounds = 25
        barrier = threading.Barrier(workers)

        def worker(index: int) -> None:
            barrier.wait()
            for round_number in range(rounds):
                shared.merge_cookies([_cookie(f"c{index}", str(round_number))])

        threads = [threading.Thread(target=worker, args=(index,)) for index in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        persisted = PortalSession.from_dict(store.load() or {})
        values = {cookie.name: cookie.value for cookie in persisted.cookies.values()}
        assert values == {f"c{index}": str(rounds - 1) for index in range(workers)}
