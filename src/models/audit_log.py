"""Audit log database model.

Rows are append-only: nothing in the service updates or deletes them.
"""

import enum

from sqlalchemy import Column, Index, Integer, String
from .base import Base


class AuditAction(str, enum.Enum):
    CREATE_CLASS = "CREATE_CLASS"
    ROTATE_INVITE = "ROTATE_INVITE"
    JOIN_CLASS = "JOIN_CLASS"
    LEAVE_CLASS = "LEAVE_CLASS"
    ADD_MEMBER = "ADD_MEMBER"
    KICK_MEMBER = "KICK_MEMBER"
    QUERY_AUDIT = "QUERY_AUDIT"
    EXPORT_AUDIT = "EXPORT_AUDIT"
    ACCESS_DENIED = "ACCESS_DENIED"


class AuditResult(str, enum.Enum):
    SUCCESS = "success"
    FAIL = "fail"


class AuditLogModel(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_timestamp_id", "timestamp", "id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(String, nullable=False, index=True)  # ISO format string, UTC
    actor_id = Column(String, nullable=False, index=True)
    actor_role = Column(String, nullable=False, index=True)
    action = Column(String, nullable=False, index=True)
    # Free-form reference, e.g. "classId/code" or "classId/studentId"
    target = Column(String, nullable=False, index=True)
    result = Column(String, nullable=False)
    reason = Column(String, nullable=True)
    request_id = Column(String, nullable=True)
    origin = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
