"""
Storage layer exports.
"""

from portal_crawler.storage.base import RecordSink
from portal_crawler.storage.json_backup import JSONBackupSink
from portal_crawler.storage.sqlalchemy_storage import SQLAlchemyRecordSink

__all__ = ["JSONBackupSink", "RecordSink", "SQLAlchemyRecordSink"]
