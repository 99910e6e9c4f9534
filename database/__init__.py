"""Database package - models and connection management."""
from database.db import Database, db, insert_if_absent
from database.models import (
    Base,
    ChatScriptEntry,
    JobStatus,
    NotificationJob,
    NotificationTrigger,
    Registration,
    ScheduleConfig,
    ScheduleMode,
    SessionType,
    WebinarSession,
)

__all__ = [
    "Database",
    "db",
    "insert_if_absent",
    "Base",
    "ChatScriptEntry",
    "JobStatus",
    "NotificationJob",
    "NotificationTrigger",
    "Registration",
    "ScheduleConfig",
    "ScheduleMode",
    "SessionType",
    "WebinarSession",
]
