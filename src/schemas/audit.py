"""Audit log schema definitions."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class RequestContext(BaseModel):
    """Where a request came from, copied onto every audit entry it writes."""

    request_id: Optional[str] = None
    origin: Optional[str] = None
    user_agent: Optional[str] = None


class AuditFilters(BaseModel):
    """Filters shared by audit queries and exports. All bounds are inclusive."""

    class_id: Optional[str] = Field(
        default=None,
        description="Entries whose target is the class or starts with '<classId>/'.",
    )
    actor_id: Optional[str] = None
    action: Optional[str] = None
    actor_role: Optional[str] = None
    from_time: Optional[datetime] = None
    to_time: Optional[datetime] = None


class AuditLogEntryInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    timestamp: str
    actor_id: str
    actor_role: str
    action: str
    target: str
    result: str
    reason: Optional[str] = None
    request_id: Optional[str] = None
    origin: Optional[str] = None
    user_agent: Optional[str] = None


class AuditLogListResponse(BaseModel):
    items: List[AuditLogEntryInfo]
    total: int = Field(description="Number of entries matching the filters, across all pages.")
    limit: int
    offset: int


ExportMode = Literal["page", "all"]
SortOrder = Literal["asc", "desc"]
