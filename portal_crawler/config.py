"""
portal_crawler/config.py

Environment-driven settings for the portal crawler.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

from db.config import configured_database_url, load_env_files

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_DEPARTMENTS: tuple[str, ...] = (
    "BIO", "CH", "CHN", "COM", "CEPP", "CPA", "ELM", "DS",
    "EC", "ECE", "EN", "ES", "EU", "FIL", "FAA", "FA", "HSP",
    "HI", "SOHUM", "DISCS", "SALT", "INTAC", "IS", "JSP", "KSP",
    "LAS", "MAL", "MA", "ML", "NSTP (ADAST)", "NSTP (OSCI)",
    "PH", "PE", "PS", "POS", "PSY", "QMIT", "SB", "SOCSCI",
    "SA", "TH", "TMP",
)

DEFAULT_CRITICAL_ENTITIES: tuple[str, ...] = ("MA", "PE", "NSTP (ADAST)", "NSTP (OSCI)")

DEFAULT_EXPECTED_PREFIXES: dict[str, tuple[str, ...]] = {
    "MA": ("MATH",),
    "PE": ("PEPC", "PHYED", "NSTP"),
    "NSTP (ADAST)": ("NSTP",),
    "NSTP (OSCI)": ("NSTP",),
}

DEFAULT_MINIMUM_MATCHES: dict[str, int] = {"MA": 50}


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    _load_env_once()
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    _load_env_once()
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    _load_env_once()
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    _load_env_once()
    raw = os.getenv(name)
    if raw is None:
        return default
    stripped = raw.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    _load_env_once()
    raw = os.getenv(name)
    if raw is None:
        return None
    stripped = raw.strip()
    return stripped if stripped else None


def _get_list_env(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """
    Read a comma-separated list; blank entries are dropped.
    """

    _load_env_once()
    raw = os.getenv(name)
    if raw is None:
        return default
    items = tuple(item.strip() for item in raw.split(",") if item.strip())
    return items or default


def _parse_mapping(raw: str) -> dict[str, tuple[str, ...]]:
    """
    Parse ``MA=MATH;PE=PEPC|PHYED``; entries without ``=`` or values are skipped.
    """

    mapping: dict[str, tuple[str, ...]] = {}
    for entry in raw.split(";"):
        key, sep, value = entry.partition("=")
        values = tuple(item.strip() for item in value.split("|") if item.strip())
        if sep and key.strip() and values:
            mapping[key.strip()] = values
    return mapping


def _get_mapping_env(name: str, default: dict[str, tuple[str, ...]]) -> dict[str, tuple[str, ...]]:
    _load_env_once()
    raw = os.getenv(name)
    if raw is None:
        return dict(default)
    return _parse_mapping(raw) or dict(default)


def _get_count_mapping_env(name: str, default: dict[str, int]) -> dict[str, int]:
    _load_env_once()
    raw = os.getenv(name)
    if raw is None:
        return dict(default)
    counts: dict[str, int] = {}
    for key, values in _parse_mapping(raw).items():
        try:
            counts[key] = max(0, int(values[0]))
        except ValueError:
            continue
    return counts or dict(default)


def _project_root() -> Path:
    return Path(__file__).resolve().parents[1]


def resolve_path(raw_path: str) -> Path:
    candidate = Path(raw_path)
    if candidate.is_absolute():
        return candidate
    return (_project_root() / candidate).resolve()


@dataclass(frozen=True)
class PortalSettings:
    """
    Portal endpoints and credentials.
    """

    base_url: str = "https://aisis.ateneo.edu"
    username: str | None = None
    password: str | None = None
    user_agent: str = DEFAULT_USER_AGENT
    display_login_path: str = "/j_aisis/displayLogin.do"
    login_path: str = "/j_aisis/login.do"
    probe_path: str = "/j_aisis/J_VCSC.do"
    schedule_path: str = "/j_aisis/J_VCSC.do"
    curriculum_path: str = "/j_aisis/J_VOFC.do"

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)


@dataclass(frozen=True)
class CrawlSettings:
    """
    Retry, batching and transport settings for one crawl run.
    """

    concurrency: int = 4
    batch_size: int = 5
    inter_batch_delay_seconds: float = 0.5
    max_attempts: int = 3
    retry_backoff_seconds: float = 2.0
    request_timeout_seconds: float = 15.0
    max_redirects: int = 5
    session_path: str = "data/session.json"
    backup_dir: str = "data"
    database_url: str | None = None
    target_year: str | None = None
    departments: tuple[str, ...] = DEFAULT_DEPARTMENTS
    expected_prefixes: dict[str, tuple[str, ...]] = field(default_factory=lambda: dict(DEFAULT_EXPECTED_PREFIXES))
    minimum_matches: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_MINIMUM_MATCHES))


@dataclass(frozen=True)
class BaselineSettings:
    """
    Regression detection settings.
    """

    baseline_dir: str = "logs/baselines"
    drop_threshold: float = 0.5
    total_drop_threshold: float = 0.05
    critical_entities: tuple[str, ...] = field(default=DEFAULT_CRITICAL_ENTITIES)
    warn_only: bool = True
    require_baselines: bool = False


@lru_cache(maxsize=1)
def get_portal_settings() -> PortalSettings:
    """
    Return cached portal settings from environment variables.
    """

    return PortalSettings(
        base_url=_get_str_env("PORTAL_BASE_URL", "https://aisis.ateneo.edu").rstrip("/"),
        username=_get_optional_str_env("PORTAL_USERNAME"),
        password=_get_optional_str_env("PORTAL_PASSWORD"),
        user_agent=_get_str_env("PORTAL_USER_AGENT", DEFAULT_USER_AGENT),
    )


@lru_cache(maxsize=1)
def get_crawl_settings() -> CrawlSettings:
    """
    Return cached crawl settings from environment variables.
    """

    return CrawlSettings(
        concurrency=max(1, _get_int_env("CRAWL_CONCURRENCY", 4)),
        batch_size=max(1, _get_int_env("CRAWL_BATCH_SIZE", 5)),
        inter_batch_delay_seconds=max(0.0, _get_float_env("CRAWL_INTER_BATCH_DELAY_SECONDS", 0.5)),
        max_attempts=max(1, _get_int_env("CRAWL_MAX_ATTEMPTS", 3)),
        retry_backoff_seconds=max(0.0, _get_float_env("CRAWL_RETRY_BACKOFF_SECONDS", 2.0)),
        request_timeout_seconds=max(1.0, _get_float_env("CRAWL_REQUEST_TIMEOUT_SECONDS", 15.0)),
        max_redirects=max(0, _get_int_env("CRAWL_MAX_REDIRECTS", 5)),
        session_path=str(resolve_path(_get_str_env("CRAWL_SESSION_PATH", "data/session.json"))),
        backup_dir=str(resolve_path(_get_str_env("CRAWL_BACKUP_DIR", "data"))),
        database_url=configured_database_url(),
        target_year=_get_optional_str_env("TARGET_YEAR"),
        departments=_get_list_env("CRAWL_DEPARTMENTS", DEFAULT_DEPARTMENTS),
        expected_prefixes=_get_mapping_env("CRAWL_EXPECTED_PREFIXES", DEFAULT_EXPECTED_PREFIXES),
        minimum_matches=_get_count_mapping_env("CRAWL_MIN_PREFIX_ROWS", DEFAULT_MINIMUM_MATCHES),
    )


@lru_cache(maxsize=1)
def get_baseline_settings() -> BaselineSettings:
    """
    Return cached baseline settings from environment variables.

    Out-of-range thresholds fall back to their defaults. The per-entity
    threshold is a fraction; ``BASELINE_DROP_THRESHOLD`` is a percentage of
    the term total.
    """

    threshold = _get_float_env("BASELINE_DEPT_DROP_THRESHOLD", 0.5)
    if not 0.0 <= threshold <= 1.0:
        threshold = 0.5
    total_percent = _get_float_env("BASELINE_DROP_THRESHOLD", 5.0)
    if not 0.0 <= total_percent <= 100.0:
        total_percent = 5.0
    return BaselineSettings(
        baseline_dir=str(resolve_path(_get_str_env("BASELINE_DIR", "logs/baselines"))),
        drop_threshold=threshold,
        total_drop_threshold=total_percent / 100.0,
        critical_entities=_get_list_env("BASELINE_CRITICAL_ENTITIES", DEFAULT_CRITICAL_ENTITIES),
        warn_only=_get_bool_env("BASELINE_WARN_ONLY", True),
        require_baselines=_get_bool_env("REQUIRE_BASELINES", False),
    )
