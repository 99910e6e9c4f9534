"""Database models - schedule configs, sessions, registrations, chat script, notification jobs."""
import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class ScheduleMode(str, enum.Enum):
    FIXED = "FIXED"
    INTERVAL = "INTERVAL"


class SessionType(str, enum.Enum):
    LIVE = "LIVE"
    EVERGREEN = "EVERGREEN"


class NotificationTrigger(str, enum.Enum):
    REGISTERED = "REGISTERED"
    REMINDER_BEFORE = "REMINDER_BEFORE"
    STARTED = "STARTED"
    NO_SHOW = "NO_SHOW"
    COMPLETED = "COMPLETED"


class JobStatus(str, enum.Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


def _enum_column(enum_cls, **kwargs) -> Column:
    return Column(Enum(enum_cls, native_enum=False, length=32, validate_strings=True), **kwargs)


class ScheduleConfig(Base):
    """Per-webinar recurrence rule. Owned by admin configuration, read-only here."""

    __tablename__ = "schedule_configs"

    webinar_id = Column(String, primary_key=True)
    mode = _enum_column(ScheduleMode, nullable=False)
    interval_minutes = Column(Integer, nullable=True)  # INTERVAL only
    anchor_time = Column(DateTime, nullable=False)  # UTC
    timezone = Column(String, nullable=False, default="UTC")
    horizon_days = Column(Integer, nullable=False, default=7)
    duration_seconds = Column(Integer, nullable=False, default=3600)
    session_type = _enum_column(SessionType, nullable=True)  # None -> derived from mode
    replay_enabled = Column(Boolean, nullable=False, default=True)
    blackout_dates = Column(Text, nullable=False, default="[]")  # JSON list of YYYY-MM-DD (local)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<ScheduleConfig(webinar_id={self.webinar_id}, mode={self.mode})>"


class WebinarSession(Base):
    """A concrete, immutable session instance. Created only by the session scheduler."""

    __tablename__ = "webinar_sessions"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    webinar_id = Column(String, nullable=False)
    scheduled_at = Column(DateTime, nullable=False)  # UTC
    session_type = _enum_column(SessionType, nullable=False)
    duration_seconds = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    registrations = relationship("Registration", back_populates="session")

    __table_args__ = (
        Index("uq_webinar_session_start", "webinar_id", "scheduled_at", unique=True),
    )

    def __repr__(self):
        return f"<WebinarSession(id={self.id}, webinar_id={self.webinar_id}, scheduled_at={self.scheduled_at})>"


class Registration(Base):
    """A registrant bound to one session, addressed by an opaque access token."""

    __tablename__ = "webinar_registrations"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    webinar_id = Column(String, nullable=False)
    session_id = Column(BigInteger, ForeignKey("webinar_sessions.id"), nullable=False)
    email = Column(String, nullable=False)
    first_name = Column(String, nullable=True)
    access_token = Column(String, nullable=False, unique=True)
    max_video_position = Column(Float, nullable=False, default=0.0)  # seconds, never decreases
    registered_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    attended_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    session = relationship("WebinarSession", back_populates="registrations")

    __table_args__ = (
        Index("uq_registration_webinar_email", "webinar_id", "email", unique=True),
        Index("idx_registration_session", "session_id"),
    )

    def __repr__(self):
        return f"<Registration(id={self.id}, webinar_id={self.webinar_id}, session_id={self.session_id})>"


class ChatScriptEntry(Base):
    """Author-defined scripted chat line, replayed at a fixed playback offset."""

    __tablename__ = "chat_script_entries"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    webinar_id = Column(String, nullable=False)
    sender_name = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    appears_at = Column(Integer, nullable=False)  # seconds from session start
    is_from_moderator = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_chat_script_window", "webinar_id", "appears_at"),
    )


class NotificationJob(Base):
    """One trigger-based message for one registrant. Unique per (registration, trigger)."""

    __tablename__ = "notification_jobs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    registration_id = Column(BigInteger, ForeignKey("webinar_registrations.id"), nullable=False)
    trigger = _enum_column(NotificationTrigger, nullable=False)
    due_at = Column(DateTime, nullable=False)
    status = _enum_column(JobStatus, nullable=False, default=JobStatus.PENDING)
    attempts = Column(Integer, nullable=False, default=0)
    retry_at = Column(DateTime, nullable=True)  # next retry for FAILED jobs, None once terminal
    locked_at = Column(DateTime, nullable=True)
    locked_by = Column(String, nullable=True)
    last_error = Column(Text, nullable=True)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    registration = relationship("Registration")

    __table_args__ = (
        Index("uq_notification_job_trigger", "registration_id", "trigger", unique=True),
        Index("idx_notification_jobs_due", "status", "due_at"),
    )

    def __repr__(self):
        return f"<NotificationJob(id={self.id}, trigger={self.trigger}, status={self.status})>"
