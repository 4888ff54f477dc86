"""
Curriculum version parsing.

Requested codes carry the version as a suffix (``BS MGT_2025_1``); pages
carry it in the program title (``... (Ver Sem 1, Ver Year 2025)``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from bs4 import BeautifulSoup

_CODE_VERSION = re.compile(r"_(\d{4})_(\d+)\s*$")
_TITLE_YEAR = re.compile(r"Ver\.?\s*Year\s*(\d{4})", flags=re.IGNORECASE)
_TITLE_SEM = re.compile(r"Ver\.?\s*Sem\s*(\d+)", flags=re.IGNORECASE)

TITLE_SELECTORS = ("td.header06", "div.pageHeader", "td.header", "h1", "h2")


@dataclass(frozen=True)
class EntityVersion:
    year: int | None = None
    sem: int | None = None

    @property
    def is_known(self) -> bool:
        return self.year is not None

    def __str__(self) -> str:
        if not self.is_known:
            return "unversioned"
        return f"{self.year}-{self.sem}" if self.sem is not None else str(self.year)


def version_from_code(code: str | None) -> EntityVersion:
    if not code:
        return EntityVersion()
    match = _CODE_VERSION.search(code)
    if match is None:
        return EntityVersion()
    return EntityVersion(year=int(match.group(1)), sem=int(match.group(2)))


def version_from_title(title: str | None) -> EntityVersion:
    if not title:
        return EntityVersion()
    year_match = _TITLE_YEAR.search(title)
    if year_match is None:
        return EntityVersion()
    sem_match = _TITLE_SEM.search(title)
    return EntityVersion(
        year=int(year_match.group(1)),
        sem=int(sem_match.group(1)) if sem_match else None,
    )


def extract_title(soup: BeautifulSoup) -> str | None:
    """
    First header text that looks like a program title.
    """

    for selector in TITLE_SELECTORS:
        node = soup.select_one(selector)
        if node is None:
            continue
        text = " ".join(node.get_text(" ", strip=True).split())
        if 5 < len(text) < 200:
            return text
    return None


def versions_match(requested_code: str | None, document_title: str | None) -> bool:
    """
    True unless both sides carry a version and they differ.
    """

    requested = version_from_code(requested_code)
    found = version_from_title(document_title)
    if not requested.is_known or not found.is_known:
        return True
    if requested.year != found.year:
        return False
    if requested.sem is not None and found.sem is not None and requested.sem != found.sem:
        return False
    return True
