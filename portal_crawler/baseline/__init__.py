"""
Baseline snapshots and regression detection.
"""

from portal_crawler.baseline.detector import RegressionDetector, default_prefix_rule
from portal_crawler.baseline.models import (
    BaselineSnapshot,
    EntityBaseline,
    EntityCounts,
    EntityDisappearance,
    EntityRegression,
    RegressionReport,
)
from portal_crawler.baseline.store import BaselineStore

__all__ = [
    "BaselineSnapshot",
    "BaselineStore",
    "EntityBaseline",
    "EntityCounts",
    "EntityDisappearance",
    "EntityRegression",
    "RegressionDetector",
    "RegressionReport",
    "default_prefix_rule",
]
