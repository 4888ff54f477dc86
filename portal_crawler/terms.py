"""
Academic term codes (``YYYY-S``; S is 0 intersession, 1 or 2 semester).
"""

from __future__ import annotations

from collections.abc import Iterable

from portal_crawler.errors import ConfigurationError
from portal_crawler.extraction.discovery import SelectOption

SEMESTER_LABELS = {0: "Intersession", 1: "First Semester", 2: "Second Semester"}
MIN_ACADEMIC_YEAR = 2000
MAX_ACADEMIC_YEAR = 2100


def parse_term_code(term_code: str | None) -> tuple[int, int] | None:
    if not term_code or not isinstance(term_code, str):
        return None
    parts = term_code.strip().split("-")
    if len(parts) != 2:
        return None
    try:
        return int(parts[0]), int(parts[1])
    except ValueError:
        return None


def next_term(term_code: str | None) -> str | None:
    """
    ``2025-0 -> 2025-1 -> 2025-2 -> 2026-0``; None for unknown semesters.
    """

    parsed = parse_term_code(term_code)
    if parsed is None:
        return None
    year, semester = parsed
    if semester == 0:
        return f"{year}-1"
    if semester == 1:
        return f"{year}-2"
    if semester == 2:
        return f"{year + 1}-0"
    return None


def current_and_next_terms(current: str | None) -> list[str]:
    if not current:
        return []
    following = next_term(current)
    return [current, following] if following else [current]


def year_terms(year: int | str) -> list[str]:
    """
    Every term of one academic year: ``2025 -> [2025-0, 2025-1, 2025-2]``.

    Raises:
        ConfigurationError: ``year`` is not a whole number within
            2000..2100.
    """

    try:
        value = int(str(year).strip())
    except ValueError:
        raise ConfigurationError(f"Invalid academic year: {year!r}") from None
    if not MIN_ACADEMIC_YEAR <= value <= MAX_ACADEMIC_YEAR:
        raise ConfigurationError(
            f"Academic year {value} is outside {MIN_ACADEMIC_YEAR}..{MAX_ACADEMIC_YEAR}."
        )
    return [f"{value}-{semester}" for semester in sorted(SEMESTER_LABELS)]


def find_next_available_term(options: Iterable[SelectOption], current: str | None) -> str | None:
    """
    The next term after ``current`` if the portal actually lists it.
    """

    expected = next_term(current)
    if expected is None:
        return None
    for option in options:
        if option.value == expected:
            return option.value
    return None


def semester_label(semester: int) -> str:
    return SEMESTER_LABELS.get(semester, f"Semester {semester}")


def format_term_label(term_code: str) -> str:
    parsed = parse_term_code(term_code)
    if parsed is None:
        return term_code
    year, semester = parsed
    return f"{year}-{year + 1} {semester_label(semester)}"
