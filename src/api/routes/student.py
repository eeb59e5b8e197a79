"""Student routes: redeem an invite code and leave a class.

Redemption runs through the rate limiter before the code is looked up, and
every outcome (joined, invalid code, rate-limited) is audited exactly once.
"""

from fastapi import APIRouter, HTTPException, status

from api.routes.auth import CurrentUser
from api.routes.common import forbidden
from core.dependencies import (
    AuditManagerDep,
    ClassManagerDep,
    JoinRateLimiterDep,
    RequestContextDep,
)
from core.exceptions import InvalidInviteError, NotAuthorizedError, RateLimitedError
from models.audit_log import AuditAction, AuditResult
from schemas.class_schema import (
    JoinClassRequest,
    JoinClassResponse,
    LeaveClassRequest,
    MembershipChangeResponse,
)
from utils import access_control
from utils.invite_manager import normalize_code
from utils.rate_limiter import make_key

router = APIRouter(prefix="/api/student", tags=["Student"])


@router.post("/join", response_model=JoinClassResponse, summary="Join a class with an invite code")
def join_class(
    req: JoinClassRequest,
    class_manager: ClassManagerDep,
    audit_manager: AuditManagerDep,
    rate_limiter: JoinRateLimiterDep,
    context: RequestContextDep,
    current_user: CurrentUser,
) -> JoinClassResponse:
    """Join a class using an invitation code.

    Args:
        req: Join request with the invite code.
        class_manager: Injected ClassManager instance.
        audit_manager: Injected AuditManager instance.
        rate_limiter: Limiter for redemption attempts.
        context: Request metadata for the audit entry.
        current_user: Current authenticated user.

    Returns:
        The joined class id.

    Raises:
        HTTPException: 400 without a code, 403 for non-students, 429 when
            rate-limited, 404 for any code that cannot be redeemed.
    """
    try:
        access_control.authorize(current_user, access_control.JOIN_CLASS)
    except NotAuthorizedError as exc:
        raise forbidden(exc)

    code = (req.code or "").strip()
    if not code:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invite code required",
        )

    try:
        rate_limiter.enforce(make_key(current_user.user_id, context.origin))
    except RateLimitedError as exc:
        audit_manager.record(
            current_user.user_id,
            current_user.role,
            AuditAction.JOIN_CLASS,
            target=code,
            result=AuditResult.FAIL,
            reason="Rate limit exceeded",
            context=context,
        )
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(exc),
        )

    try:
        class_id = class_manager.join_by_invitation_code(code, current_user.user_id)
    except InvalidInviteError as exc:
        audit_manager.record(
            current_user.user_id,
            current_user.role,
            AuditAction.JOIN_CLASS,
            target=code,
            result=AuditResult.FAIL,
            reason="Invalid/expired/limit code",
            context=context,
        )
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        )

    audit_manager.record(
        current_user.user_id,
        current_user.role,
        AuditAction.JOIN_CLASS,
        target=f"{class_id}/{normalize_code(code)}",
        result=AuditResult.SUCCESS,
        context=context,
    )
    return JoinClassResponse(class_id=class_id)


@router.post("/leave", response_model=MembershipChangeResponse, summary="Leave a class")
def leave_class(
    req: LeaveClassRequest,
    class_manager: ClassManagerDep,
    audit_manager: AuditManagerDep,
    context: RequestContextDep,
    current_user: CurrentUser,
) -> MembershipChangeResponse:
    """Leave a class (remove the caller's own membership).

    Leaving a class the caller is not in succeeds with ``changed`` false.
    """
    try:
        access_control.authorize(current_user, access_control.LEAVE_CLASS)
    except NotAuthorizedError as exc:
        raise forbidden(exc)

    class_id = (req.class_id or "").strip()
    if not class_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="classId required",
        )

    removed = class_manager.remove_member(class_id, current_user.user_id)
    audit_manager.record(
        current_user.user_id,
        current_user.role,
        AuditAction.LEAVE_CLASS,
        target=class_id,
        result=AuditResult.SUCCESS,
        reason=None if removed else "Not a member",
        context=context,
    )
    return MembershipChangeResponse(changed=removed)


@router.get("/classes", summary="List the classes I belong to")
def list_my_classes(
    class_manager: ClassManagerDep,
    current_user: CurrentUser,
) -> dict:
    try:
        access_control.authorize(current_user, access_control.LIST_MY_CLASSES)
    except NotAuthorizedError as exc:
        raise forbidden(exc)
    return {"class_ids": class_manager.list_class_ids_for_student(current_user.user_id)}
