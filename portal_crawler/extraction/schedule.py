"""
Class schedule table parsing.

Departments listed in ``expected_prefixes`` are checked after parsing: a
page whose rows carry none of the department's subject prefixes was served
for another department and is rejected as a whole.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from collections.abc import Mapping, Sequence

from bs4 import BeautifulSoup

from portal_crawler.errors import ContentIntegrityError
from portal_crawler.extraction.base import Extractor, cell_text
from portal_crawler.logging_utils import log_event
from portal_crawler.types import CrawlTarget, Record

logger = logging.getLogger(__name__)

SCHEDULE_FIELDS = (
    "subject_code",
    "section",
    "title",
    "units",
    "time",
    "room",
    "instructor",
    "max_slots",
    "language",
    "level",
    "free_slots",
    "remarks",
)
MIN_SCHEDULE_CELLS = 11

_HEADER_TEXT = re.compile(r"subject|code", flags=re.IGNORECASE)
_BANNER_TEXT = "Ateneo Integrated"
_PREFIX = re.compile(r"^[A-Za-z]+")


def _is_header_or_banner(subject: str) -> bool:
    return not subject or bool(_HEADER_TEXT.search(subject)) or _BANNER_TEXT in subject


def subject_prefix(subject_code: str) -> str:
    match = _PREFIX.match(subject_code.strip())
    return match.group(0).upper() if match else ""


class ScheduleExtractor(Extractor):
    """
    One record per class row; rows with fewer than eleven cells are layout.
    """

    def __init__(
        self,
        *,
        expected_prefixes: Mapping[str, Sequence[str]] | None = None,
        minimum_matches: Mapping[str, int] | None = None,
    ) -> None:
        self._expected_prefixes = {
            entity: tuple(prefix.upper() for prefix in prefixes)
            for entity, prefixes in (expected_prefixes or {}).items()
        }
        self._minimum_matches = dict(minimum_matches or {})

    def extract(self, body: str, target: CrawlTarget) -> list[Record]:
        soup = BeautifulSoup(body or "", "html.parser")
        records: list[Record] = []
        for row in soup.select("table tr"):
            cells = row.find_all("td", recursive=False)
            if len(cells) < MIN_SCHEDULE_CELLS:
                continue
            values = [cell_text(cell) for cell in cells[: len(SCHEDULE_FIELDS)]]
            values.extend([""] * (len(SCHEDULE_FIELDS) - len(values)))
            fields = dict(zip(SCHEDULE_FIELDS, values))
            if _is_header_or_banner(fields["subject_code"]):
                continue
            fields["department"] = target.entity
            records.append(
                Record(
                    epoch=target.epoch,
                    entity=target.entity,
                    natural_key=(fields["subject_code"], fields["section"]),
                    fields=fields,
                )
            )
        if records:
            self._check_department(target, records)
        return records

    def _check_department(self, target: CrawlTarget, records: list[Record]) -> None:
        """
        Raises:
            ContentIntegrityError: No row carries an expected subject prefix.
        """

        expected = self._expected_prefixes.get(target.entity)
        if not expected:
            return
        found = Counter(subject_prefix(record.fields["subject_code"]) for record in records)
        matching = sum(count for prefix, count in found.items() if prefix in expected)
        if matching == 0:
            raise ContentIntegrityError(
                f"Schedule page for {target.entity} has no {'/'.join(expected)} rows; "
                f"found {', '.join(sorted(found))}",
                expected=target.entity,
                actual=",".join(sorted(found)),
            )
        minimum = self._minimum_matches.get(target.entity, 0)
        if matching < minimum:
            log_event(
                logger,
                logging.WARNING,
                "department_rows_below_minimum",
                target=target.describe(),
                expected_prefixes=list(expected),
                matching=matching,
                minimum=minimum,
            )
