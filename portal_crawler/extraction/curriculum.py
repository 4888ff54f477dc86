"""
Curriculum page parsing and row validation.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any

from bs4 import BeautifulSoup

from portal_crawler.classification.versions import extract_title, version_from_code, versions_match
from portal_crawler.errors import ContentIntegrityError
from portal_crawler.extraction.base import Extractor, cell_text
from portal_crawler.logging_utils import log_event
from portal_crawler.types import CrawlTarget, Record

logger = logging.getLogger(__name__)

_YEAR_WORDS = {"first": 1, "second": 2, "third": 3, "fourth": 4}
_YEAR_ORDINAL = re.compile(r"(\d+)(?:st|nd|rd|th)\s*year")
_UNITS_SUFFIX = re.compile(r"\s*units?\s*", flags=re.IGNORECASE)
_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")


def parse_year_level(text: str | None) -> int | None:
    if not text:
        return None
    lowered = text.lower()
    for word, level in _YEAR_WORDS.items():
        if word in lowered:
            return level
    match = _YEAR_ORDINAL.search(lowered)
    if match and 1 <= int(match.group(1)) <= 4:
        return int(match.group(1))
    return None


def parse_semester(text: str | None) -> int | None:
    if not text:
        return None
    lowered = text.lower()
    if "first semester" in lowered or "1st semester" in lowered:
        return 1
    if "second semester" in lowered or "2nd semester" in lowered:
        return 2
    return None


def parse_units(text: str | None) -> float:
    if not text:
        return 0.0
    match = _NUMBER.match(_UNITS_SUFFIX.sub("", text).strip())
    return float(match.group(0)) if match else 0.0


def validate_curriculum_record(fields: Mapping[str, Any]) -> list[str]:
    """
    Problems with one curriculum row; an empty list means the row is usable.
    """

    errors: list[str] = []
    for name in ("deg_code", "course_code", "course_title"):
        value = fields.get(name)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"Missing required field: {name}")

    units = fields.get("units")
    if not isinstance(units, (int, float)) or units < 0:
        errors.append("Invalid units (must be a non-negative number)")

    year_level = fields.get("year_level")
    if year_level is not None and (not isinstance(year_level, int) or not 1 <= year_level <= 4):
        errors.append("Invalid year_level (must be 1-4 if present)")

    semester = fields.get("semester")
    if semester is not None and semester not in (1, 2):
        errors.append("Invalid semester (must be 1 or 2 if present)")
    return errors


class CurriculumExtractor(Extractor):
    """
    Flattens a curriculum page into course rows under their year and
    semester headers.

    The page title is checked against the requested degree code before
    anything is parsed, so a page for another version never yields records.
    """

    def __init__(self, *, drop_invalid: bool = True) -> None:
        self._drop_invalid = drop_invalid

    def extract(self, body: str, target: CrawlTarget) -> list[Record]:
        soup = BeautifulSoup(body or "", "html.parser")
        title = extract_title(soup)
        if not versions_match(target.entity, title):
            raise ContentIntegrityError(
                f"Curriculum page for {target.entity} carries title {title!r} "
                f"(expected version {version_from_code(target.entity)})",
                expected=target.entity,
                actual=title,
            )

        program_title = title or target.label or target.entity
        year_level: int | None = None
        semester: int | None = None
        records: list[Record] = []
        invalid = 0

        for row in soup.find_all("tr"):
            year_cell = row.select_one("td.text06")
            if year_cell is not None:
                parsed_year = parse_year_level(cell_text(year_cell))
                if parsed_year is not None:
                    year_level = parsed_year
                    semester = None
                continue

            semester_cell = row.select_one("td.text04")
            if semester_cell is not None:
                parsed_semester = parse_semester(cell_text(semester_cell))
                if parsed_semester is not None:
                    semester = parsed_semester
                continue

            cells = [cell_text(cell) for cell in row.select("td.text02")]
            if len(cells) < 2 or not cells[0]:
                continue
            cells.extend([""] * (5 - len(cells)))
            fields = {
                "deg_code": target.entity,
                "program_label": target.label,
                "program_title": program_title,
                "year_level": year_level,
                "semester": semester,
                "course_code": cells[0],
                "course_title": cells[1],
                "units": parse_units(cells[2]),
                "prerequisites": cells[3] or None,
                "category": cells[4] or None,
            }
            if self._drop_invalid and validate_curriculum_record(fields):
                invalid += 1
                continue
            records.append(
                Record(
                    epoch=target.epoch,
                    entity=target.entity,
                    natural_key=(cells[0], str(year_level or ""), str(semester or "")),
                    fields=fields,
                )
            )

        if invalid:
            log_event(
                logger,
                logging.WARNING,
                "curriculum_rows_dropped",
                target=target.describe(),
                dropped=invalid,
            )
        return records
