"""Data access backends"""

from insurance_sales.db.base import DatabaseInterface, FileStoreInterface, NotificationSink
from insurance_sales.db.memory import MemoryDatabase, MemoryFileStore, MemoryNotificationSink
from insurance_sales.db.supabase import (
    SupabaseDatabase,
    SupabaseFileStore,
    SupabaseNotificationSink,
    get_database,
    get_file_store,
    get_notification_sink,
)

__all__ = [
    "DatabaseInterface",
    "FileStoreInterface",
    "NotificationSink",
    "MemoryDatabase",
    "MemoryFileStore",
    "MemoryNotificationSink",
    "SupabaseDatabase",
    "SupabaseFileStore",
    "SupabaseNotificationSink",
    "get_database",
    "get_file_store",
    "get_notification_sink",
]
