"""
Page extractors and dropdown discovery.
"""

from portal_crawler.extraction.base import Extractor
from portal_crawler.extraction.curriculum import CurriculumExtractor, validate_curriculum_record
from portal_crawler.extraction.discovery import SelectOption, current_epoch, parse_select_options
from portal_crawler.extraction.schedule import ScheduleExtractor

__all__ = [
    "CurriculumExtractor",
    "Extractor",
    "ScheduleExtractor",
    "SelectOption",
    "current_epoch",
    "parse_select_options",
    "validate_curriculum_record",
]
