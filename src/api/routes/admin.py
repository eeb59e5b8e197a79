"""Admin routes: global audit query and export.

Access is checked first, then the request shape, then the audit rate
limiter. Denials and rate-limit rejections are written to the audit log.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response

import config
from api.routes.auth import CurrentUser
from api.routes.common import audit_filters, csv_export_response, export_filename, forbidden
from core.dependencies import (
    AuditManagerDep,
    AuditRateLimiterDep,
    ClockDep,
    RequestContextDep,
    SessionFactoryDep,
)
from core.exceptions import NotAuthorizedError, RateLimitedError, ValidationError
from models.audit_log import AuditAction, AuditResult
from schemas.audit import (
    AuditFilters,
    AuditLogEntryInfo,
    AuditLogListResponse,
    ExportMode,
    RequestContext,
    SortOrder,
)
from schemas.user import Identity
from utils import access_control
from utils.audit_manager import AuditManager, require_bounded_range
from utils.rate_limiter import RateLimiter, make_key

router = APIRouter(prefix="/api/admin", tags=["Admin"])

AUDIT_TARGET = "audit"


def _authorize_global_audit(
    action: AuditAction,
    audit_manager: AuditManager,
    context: RequestContext,
    current_user: Identity,
) -> None:
    try:
        access_control.authorize(current_user, access_control.GLOBAL_AUDIT)
    except NotAuthorizedError as exc:
        audit_manager.record(
            current_user.user_id,
            current_user.role,
            AuditAction.ACCESS_DENIED,
            target=AUDIT_TARGET,
            result=AuditResult.FAIL,
            reason=f"{action.value} forbidden",
            context=context,
        )
        raise forbidden(exc)


def _enforce_rate_limit(
    action: AuditAction,
    rate_limiter: RateLimiter,
    audit_manager: AuditManager,
    context: RequestContext,
    current_user: Identity,
) -> None:
    try:
        rate_limiter.enforce(make_key(current_user.user_id, context.origin))
    except RateLimitedError as exc:
        audit_manager.record(
            current_user.user_id,
            current_user.role,
            action,
            target=AUDIT_TARGET,
            result=AuditResult.FAIL,
            reason="Rate limit exceeded",
            context=context,
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(exc),
        )


@router.get("/audit", response_model=AuditLogListResponse, summary="Query the global audit log")
def query_audit(
    audit_manager: AuditManagerDep,
    rate_limiter: AuditRateLimiterDep,
    context: RequestContextDep,
    current_user: CurrentUser,
    filters: AuditFilters = Depends(audit_filters),
    limit: int = Query(
        default=config.AUDIT_QUERY_DEFAULT_LIMIT, ge=1, le=config.AUDIT_QUERY_MAX_LIMIT
    ),
    offset: int = Query(default=0, ge=0),
    order: SortOrder = Query(default="desc"),
) -> AuditLogListResponse:
    """Query audit entries across all classes.

    Args:
        audit_manager: Injected AuditManager instance.
        rate_limiter: Limiter for admin audit access.
        context: Request metadata for audit entries.
        current_user: Current authenticated user.
        filters: Optional class, actor, action, role and time filters.
        limit: Page size.
        offset: Entries to skip.
        order: "desc" (newest first) or "asc".

    Returns:
        One page of entries plus the total number of matches.

    Raises:
        HTTPException: 403 for non-admins, 429 when rate-limited.
    """
    _authorize_global_audit(AuditAction.QUERY_AUDIT, audit_manager, context, current_user)
    _enforce_rate_limit(AuditAction.QUERY_AUDIT, rate_limiter, audit_manager, context, current_user)
    items, total = audit_manager.query(filters, limit=limit, offset=offset, order=order)
    return AuditLogListResponse(
        items=[AuditLogEntryInfo.model_validate(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/audit/export", summary="Export the global audit log as CSV")
def export_audit(
    audit_manager: AuditManagerDep,
    rate_limiter: AuditRateLimiterDep,
    session_factory: SessionFactoryDep,
    clock: ClockDep,
    context: RequestContextDep,
    current_user: CurrentUser,
    filters: AuditFilters = Depends(audit_filters),
    order: SortOrder = Query(default="desc"),
    mode: ExportMode = Query(default="page"),
) -> Response:
    """Export audit entries as CSV.

    ``mode=page`` returns at most one capped page; ``mode=all`` streams every
    match and requires both ``from`` and ``to``.
    """
    _authorize_global_audit(AuditAction.EXPORT_AUDIT, audit_manager, context, current_user)
    if mode == "all":
        try:
            require_bounded_range(filters)
        except ValidationError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(exc),
            )
    _enforce_rate_limit(AuditAction.EXPORT_AUDIT, rate_limiter, audit_manager, context, current_user)
    audit_manager.record(
        current_user.user_id,
        current_user.role,
        AuditAction.EXPORT_AUDIT,
        target=AUDIT_TARGET,
        result=AuditResult.SUCCESS,
        reason=f"mode={mode}",
        context=context,
    )
    return csv_export_response(
        mode,
        filters,
        order,
        audit_manager,
        session_factory,
        export_filename("audit", clock),
    )
