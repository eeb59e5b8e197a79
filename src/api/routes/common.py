"""Helpers shared by the teacher and admin audit routes."""

from datetime import datetime
from typing import Optional

from fastapi import HTTPException, Query, status
from fastapi.responses import Response, StreamingResponse
from sqlalchemy.orm import sessionmaker

from core.exceptions import NotAuthorizedError
from schemas.audit import AuditFilters, ExportMode, SortOrder
from utils.audit_manager import AuditManager, stream_export
from utils.clock import Clock

CSV_MEDIA_TYPE = "text/csv"


def forbidden(exc: NotAuthorizedError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))


def audit_filters(
    class_id: Optional[str] = Query(default=None, alias="classId"),
    actor_id: Optional[str] = Query(default=None),
    action: Optional[str] = Query(default=None),
    actor_role: Optional[str] = Query(default=None),
    from_time: Optional[datetime] = Query(
        default=None, alias="from", description="ISO-8601 or Unix time, inclusive."
    ),
    to_time: Optional[datetime] = Query(
        default=None, alias="to", description="ISO-8601 or Unix time, inclusive."
    ),
) -> AuditFilters:
    """Parse the audit filter query parameters."""
    return AuditFilters(
        class_id=class_id or None,
        actor_id=actor_id or None,
        action=action or None,
        actor_role=actor_role or None,
        from_time=from_time,
        to_time=to_time,
    )


def export_filename(prefix: str, clock: Clock) -> str:
    return f"{prefix}_{clock.now().strftime('%Y%m%dT%H%M%S')}.csv"


def csv_export_response(
    mode: ExportMode,
    filters: AuditFilters,
    order: SortOrder,
    audit_manager: AuditManager,
    session_factory: sessionmaker,
    filename: str,
) -> Response:
    """Build the CSV response for an export.

    ``page`` renders one bounded payload; ``all`` streams batches from a
    session owned by the stream. The caller validates ``all`` ranges first.
    """
    headers = {"Content-Disposition": f"attachment; filename={filename}"}
    if mode == "all":
        return StreamingResponse(
            stream_export(session_factory, filters, order, audit_manager.clock),
            media_type=CSV_MEDIA_TYPE,
            headers=headers,
        )
    return Response(
        content=audit_manager.export_page(filters, order),
        media_type=CSV_MEDIA_TYPE,
        headers=headers,
    )
