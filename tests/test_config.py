"""
tests/test_config.py

Environment parsing for crawl, portal and baseline settings.
"""

from __future__ import annotations

import pytest

from portal_crawler import config
from portal_crawler.config import DEFAULT_DEPARTMENTS


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    monkeypatch.setattr(config, "load_env_files", lambda: None)
    for getter in (config._load_env_once, config.get_portal_settings, config.get_crawl_settings, config.get_baseline_settings):
        getter.cache_clear()
    yield
    for getter in (config._load_env_once, config.get_portal_settings, config.get_crawl_settings, config.get_baseline_settings):
        getter.cache_clear()


def test_crawl_defaults(monkeypatch) -> None:
    for name in ("CRAWL_CONCURRENCY", "CRAWL_BATCH_SIZE", "CRAWL_MAX_ATTEMPTS", "CRAWL_DEPARTMENTS"):
        monkeypatch.delenv(name, raising=False)
    settings = config.get_crawl_settings()
    assert settings.concurrency == 4
    assert settings.batch_size == 5
    assert settings.max_attempts == 3
    assert settings.departments == DEFAULT_DEPARTMENTS


def test_crawl_overrides_and_clamping(monkeypatch) -> None:
    monkeypatch.setenv("CRAWL_CONCURRENCY", "0")
    monkeypatch.setenv("CRAWL_BATCH_SIZE", "not-a-number")
    monkeypatch.setenv("CRAWL_INTER_BATCH_DELAY_SECONDS", "1.25")
    monkeypatch.setenv("CRAWL_DEPARTMENTS", "MA, PE ,,NSTP (OSCI)")
    monkeypatch.setenv("CRAWL_SESSION_PATH", "/tmp/portal-session.json")
    settings = config.get_crawl_settings()
    assert settings.concurrency == 1
    assert settings.batch_size == 5
    assert settings.inter_batch_delay_seconds == 1.25
    assert settings.departments == ("MA", "PE", "NSTP (OSCI)")
    assert settings.session_path == "/tmp/portal-session.json"


def test_portal_settings(monkeypatch) -> None:
    monkeypatch.setenv("PORTAL_BASE_URL", "https://portal.example/")
    monkeypatch.setenv("PORTAL_USERNAME", "student")
    monkeypatch.delenv("PORTAL_PASSWORD", raising=False)
    settings = config.get_portal_settings()
    assert settings.base_url == "https://portal.example"
    assert settings.has_credentials is False


def test_baseline_settings(monkeypatch) -> None:
    monkeypatch.setenv("BASELINE_DEPT_DROP_THRESHOLD", "1.7")
    monkeypatch.setenv("BASELINE_CRITICAL_ENTITIES", "MA,PE")
    monkeypatch.setenv("BASELINE_WARN_ONLY", "false")
    monkeypatch.setenv("REQUIRE_BASELINES", "yes")
    monkeypatch.delenv("BASELINE_DROP_THRESHOLD", raising=False)
    settings = config.get_baseline_settings()
    assert settings.drop_threshold == 0.5
    assert settings.critical_entities == ("MA", "PE")
    assert settings.warn_only is False
    assert settings.require_baselines is True
    assert settings.total_drop_threshold == 0.05


@pytest.mark.parametrize(("raw", "expected"), [("10", 0.10), ("0", 0.0), ("250", 0.05), ("-1", 0.05), ("lots", 0.05)])
def test_total_drop_threshold_is_a_percentage(monkeypatch, raw: str, expected: float) -> None:
    monkeypatch.setenv("BASELINE_DROP_THRESHOLD", raw)
    assert config.get_baseline_settings().total_drop_threshold == pytest.approx(expected)


def test_database_url_falls_back_to_database_url(monkeypatch) -> None:
    monkeypatch.delenv("CRAWL_DATABASE_URL", raising=False)
    monkeypatch.setenv("DATABASE_URL", "postgres://crawler@db.example/aisis")
    assert config.get_crawl_settings().database_url == "postgresql+psycopg://crawler@db.example/aisis"


def test_crawl_database_url_takes_priority(monkeypatch) -> None:
    monkeypatch.setenv("CRAWL_DATABASE_URL", "postgresql://crawler@primary/aisis")
    monkeypatch.setenv("DATABASE_URL", "postgres://crawler@fallback/aisis")
    assert config.get_crawl_settings().database_url == "postgresql+psycopg://crawler@primary/aisis"


def test_database_url_unset(monkeypatch) -> None:
    monkeypatch.delenv("CRAWL_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    assert config.get_crawl_settings().database_url is None


def test_target_year(monkeypatch) -> None:
    monkeypatch.setenv("TARGET_YEAR", " 2024 ")
    assert config.get_crawl_settings().target_year == "2024"


def test_department_prefix_defaults(monkeypatch) -> None:
    monkeypatch.delenv("CRAWL_EXPECTED_PREFIXES", raising=False)
    monkeypatch.delenv("CRAWL_MIN_PREFIX_ROWS", raising=False)
    settings = config.get_crawl_settings()
    assert settings.expected_prefixes["MA"] == ("MATH",)
    assert {"PEPC", "PHYED"} <= set(settings.expected_prefixes["PE"])
    assert settings.minimum_matches == {"MA": 50}


def test_department_prefix_overrides(monkeypatch) -> None:
    monkeypatch.setenv("CRAWL_EXPECTED_PREFIXES", "MA=MATH; PE = PEPC | PHYED ;broken;EN=")
    monkeypatch.setenv("CRAWL_MIN_PREFIX_ROWS", "MA=40;PE=many;EN=-3")
    settings = config.get_crawl_settings()
    assert settings.expected_prefixes == {"MA": ("MATH",), "PE": ("PEPC", "PHYED")}
    assert settings.minimum_matches == {"MA": 40, "EN": 0}


def test_unusable_prefix_overrides_keep_defaults(monkeypatch) -> None:
    monkeypatch.setenv("CRAWL_EXPECTED_PREFIXES", "nothing useful")
    monkeypatch.setenv("CRAWL_MIN_PREFIX_ROWS", "MA=lots")
    settings = config.get_crawl_settings()
    assert settings.expected_prefixes == config.DEFAULT_EXPECTED_PREFIXES
    assert settings.minimum_matches == config.DEFAULT_MINIMUM_MATCHES
