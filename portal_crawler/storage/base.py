"""
Storage layer interfaces for extracted crawl records.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence

from portal_crawler.types import Record


class RecordSink(ABC):
    """
    Storage abstraction for record writes.
    """

    @abstractmethod
    def store(self, records: Sequence[Record], *, run_id: str) -> int:
        """
        Persist records and return the stored row count.
        """
