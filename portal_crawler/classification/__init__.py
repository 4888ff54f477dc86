"""
Response classification.
"""

from portal_crawler.classification.classifier import (
    FetchOutcome,
    classify,
    classify_response,
    is_authenticated_page,
    is_login_page,
)

__all__ = [
    "FetchOutcome",
    "classify",
    "classify_response",
    "is_authenticated_page",
    "is_login_page",
]
