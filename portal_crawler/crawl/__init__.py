"""
Crawl orchestration exports.
"""

from portal_crawler.crawl.orchestrator import (
    CrawlOrchestrator,
    CrawlRunResult,
    FetchAttempt,
    TargetResult,
    TargetStatus,
)
from portal_crawler.crawl.targets import (
    PortalRequestBuilder,
    curriculum_targets,
    schedule_targets,
    unique_targets,
)

__all__ = [
    "CrawlOrchestrator",
    "CrawlRunResult",
    "FetchAttempt",
    "PortalRequestBuilder",
    "TargetResult",
    "TargetStatus",
    "curriculum_targets",
    "schedule_targets",
    "unique_targets",
]
