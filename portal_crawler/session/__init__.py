"""
Session state and persistence.
"""

from portal_crawler.session.models import PortalSession, StoredCookie
from portal_crawler.session.shared import SharedSession
from portal_crawler.session.store import JSONFileSessionStore, SessionStore

__all__ = [
    "JSONFileSessionStore",
    "PortalSession",
    "SessionStore",
    "SharedSession",
    "StoredCookie",
]
