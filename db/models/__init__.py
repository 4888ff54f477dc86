"""
Model package exports.

Import all SQLAlchemy models here so metadata registration works without
extra imports.
"""

from db.models.crawl_record import CrawlRecord

__all__ = ["CrawlRecord"]
