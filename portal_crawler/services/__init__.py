"""
Service exports.
"""

from portal_crawler.services.crawl_service import CrawlRunSummary, PortalCrawlService

__all__ = ["CrawlRunSummary", "PortalCrawlService"]
