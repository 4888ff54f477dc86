"""
Extractor interface: turn one SUCCESS page into records.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from bs4 import Tag

from portal_crawler.types import CrawlTarget, Record


class Extractor(ABC):
    """
    Parses a classified page body for one target.
    """

    @abstractmethod
    def extract(self, body: str, target: CrawlTarget) -> list[Record]:
        """
        Return the records on the page.

        Raises:
            ContentIntegrityError: The page belongs to another entity or version.
        """


def cell_text(node: Tag) -> str:
    """
    Cell text with `<br>` breaks and runs of whitespace collapsed to one space.
    """

    return " ".join(node.get_text(" ", strip=True).split())
