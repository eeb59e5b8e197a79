"""Teacher routes: classes, invites, members and class-scoped audit."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response

import config
from api.routes.auth import CurrentUser
from api.routes.common import audit_filters, csv_export_response, export_filename, forbidden
from core.dependencies import (
    AuditManagerDep,
    ClassManagerDep,
    ClockDep,
    InviteManagerDep,
    RequestContextDep,
    SessionFactoryDep,
)
from core.exceptions import ClassNotFoundError, NotAuthorizedError, ValidationError
from models.audit_log import AuditAction, AuditResult
from models.class_model import ClassModel
from schemas.audit import (
    AuditFilters,
    AuditLogEntryInfo,
    AuditLogListResponse,
    ExportMode,
    RequestContext,
    SortOrder,
)
from schemas.class_schema import (
    AddMemberRequest,
    ClassInfo,
    ClassInvitationCodeInfo,
    ClassInvitationCodeListResponse,
    ClassMemberInfo,
    CreateClassRequest,
    GenerateClassInvitationCodeRequest,
    MembershipChangeResponse,
)
from schemas.user import Identity
from utils import access_control
from utils.audit_manager import AuditManager, require_bounded_range
from utils.class_manager import ClassManager

router = APIRouter(prefix="/api/teacher", tags=["Teacher"])


def _load_class(
    class_manager: ClassManager,
    current_user: Identity,
    class_id: str,
    operation: str,
) -> ClassModel:
    """Fetch a class and check the caller may perform ``operation`` on it.

    The role is checked before the lookup so callers without the role cannot
    probe which class ids exist.
    """
    try:
        access_control.require_role(current_user, operation)
        class_model = class_manager.get_class(class_id)
        access_control.authorize(current_user, operation, class_model=class_model)
    except NotAuthorizedError as exc:
        raise forbidden(exc)
    except ClassNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Class not found",
        )
    return class_model


@router.post("/classes", response_model=ClassInfo, summary="Create a class")
def create_class(
    req: CreateClassRequest,
    class_manager: ClassManagerDep,
    audit_manager: AuditManagerDep,
    context: RequestContextDep,
    current_user: CurrentUser,
) -> ClassInfo:
    try:
        access_control.authorize(current_user, access_control.CREATE_CLASS)
    except NotAuthorizedError as exc:
        raise forbidden(exc)
    name = (req.name or "").strip()
    if not name:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Class name required",
        )
    class_model = class_manager.create_class(name, current_user.user_id)
    audit_manager.record(
        current_user.user_id,
        current_user.role,
        AuditAction.CREATE_CLASS,
        target=class_model.class_id,
        result=AuditResult.SUCCESS,
        context=context,
    )
    return ClassInfo.model_validate(class_model)


@router.get("/classes", response_model=List[ClassInfo], summary="List my classes")
def list_classes(
    class_manager: ClassManagerDep,
    current_user: CurrentUser,
) -> List[ClassInfo]:
    try:
        access_control.authorize(current_user, access_control.LIST_CLASSES)
    except NotAuthorizedError as exc:
        raise forbidden(exc)
    models = class_manager.list_classes_for_owner(current_user.user_id)
    return [ClassInfo.model_validate(model) for model in models]


@router.post(
    "/classes/{class_id}/invite",
    response_model=ClassInvitationCodeInfo,
    summary="Rotate the class invite code",
)
def generate_class_invitation(
    class_id: str,
    class_manager: ClassManagerDep,
    invite_manager: InviteManagerDep,
    audit_manager: AuditManagerDep,
    context: RequestContextDep,
    current_user: CurrentUser,
    req: Optional[GenerateClassInvitationCodeRequest] = None,
) -> ClassInvitationCodeInfo:
    """Revoke the current invite code of a class and mint a new one.

    Omitting ``usageLimit`` applies the default limit; an explicit null makes
    the code unlimited.
    """
    _load_class(class_manager, current_user, class_id, access_control.ROTATE_INVITE)
    req = req or GenerateClassInvitationCodeRequest()
    unlimited = "usage_limit" in req.model_fields_set and req.usage_limit is None
    try:
        model = invite_manager.generate(
            class_id=class_id,
            created_by=current_user.user_id,
            usage_limit=req.usage_limit,
            expires_at=req.expires_at,
            unlimited=unlimited,
        )
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        )
    audit_manager.record(
        current_user.user_id,
        current_user.role,
        AuditAction.ROTATE_INVITE,
        target=f"{class_id}/{model.code}",
        result=AuditResult.SUCCESS,
        context=context,
    )
    return ClassInvitationCodeInfo.model_validate(model)


@router.get(
    "/classes/{class_id}/invite",
    response_model=ClassInvitationCodeInfo,
    summary="Get the active class invite code",
)
def get_class_invitation(
    class_id: str,
    class_manager: ClassManagerDep,
    invite_manager: InviteManagerDep,
    current_user: CurrentUser,
) -> ClassInvitationCodeInfo:
    _load_class(class_manager, current_user, class_id, access_control.VIEW_INVITE)
    model = invite_manager.get_active_invite(class_id)
    if model is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No active invite code for this class.",
        )
    return ClassInvitationCodeInfo.model_validate(model)


@router.get(
    "/classes/{class_id}/invites",
    response_model=ClassInvitationCodeListResponse,
    summary="List the invite codes of a class, newest first",
)
def list_class_invitations(
    class_id: str,
    class_manager: ClassManagerDep,
    invite_manager: InviteManagerDep,
    current_user: CurrentUser,
) -> ClassInvitationCodeListResponse:
    _load_class(class_manager, current_user, class_id, access_control.VIEW_INVITE)
    models = invite_manager.list_invites(class_id)
    return ClassInvitationCodeListResponse(
        invitation_codes=[ClassInvitationCodeInfo.model_validate(m) for m in models]
    )


@router.post(
    "/classes/{class_id}/members",
    response_model=MembershipChangeResponse,
    summary="Add a student to a class directly",
)
def add_class_member(
    class_id: str,
    req: AddMemberRequest,
    class_manager: ClassManagerDep,
    audit_manager: AuditManagerDep,
    context: RequestContextDep,
    current_user: CurrentUser,
) -> MembershipChangeResponse:
    _load_class(class_manager, current_user, class_id, access_control.ADD_MEMBER)
    student_id = (req.student_id or "").strip()
    if not student_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="studentId required",
        )
    created = class_manager.add_member(class_id, student_id)
    audit_manager.record(
        current_user.user_id,
        current_user.role,
        AuditAction.ADD_MEMBER,
        target=f"{class_id}/{student_id}",
        result=AuditResult.SUCCESS,
        reason=None if created else "Already a member",
        context=context,
    )
    return MembershipChangeResponse(changed=created)


@router.get(
    "/classes/{class_id}/members",
    response_model=List[ClassMemberInfo],
    summary="List class members",
)
def list_class_members(
    class_id: str,
    class_manager: ClassManagerDep,
    current_user: CurrentUser,
) -> List[ClassMemberInfo]:
    _load_class(class_manager, current_user, class_id, access_control.LIST_MEMBERS)
    return [ClassMemberInfo.model_validate(m) for m in class_manager.list_members(class_id)]


@router.delete(
    "/classes/{class_id}/members/{student_id}",
    response_model=MembershipChangeResponse,
    summary="Remove a student from a class",
)
def kick_class_member(
    class_id: str,
    student_id: str,
    class_manager: ClassManagerDep,
    audit_manager: AuditManagerDep,
    context: RequestContextDep,
    current_user: CurrentUser,
) -> MembershipChangeResponse:
    """Remove a student from a class owned by the caller.

    Removing a student who is not a member succeeds without a change and
    without an audit entry.
    """
    _load_class(class_manager, current_user, class_id, access_control.KICK_MEMBER)
    removed = class_manager.remove_member(class_id, student_id)
    if removed:
        audit_manager.record(
            current_user.user_id,
            current_user.role,
            AuditAction.KICK_MEMBER,
            target=f"{class_id}/{student_id}",
            result=AuditResult.SUCCESS,
            context=context,
        )
    return MembershipChangeResponse(changed=removed)


def _authorize_class_audit(
    filters: AuditFilters,
    action: AuditAction,
    class_manager: ClassManager,
    audit_manager: AuditManager,
    context: RequestContext,
    current_user: Identity,
) -> None:
    """Require a classId the caller owns; denials are audited."""
    if not filters.class_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="classId required",
        )
    try:
        _load_class(class_manager, current_user, filters.class_id, access_control.CLASS_AUDIT)
    except HTTPException as exc:
        if exc.status_code == status.HTTP_403_FORBIDDEN:
            audit_manager.record(
                current_user.user_id,
                current_user.role,
                AuditAction.ACCESS_DENIED,
                target=f"audit/{filters.class_id}",
                result=AuditResult.FAIL,
                reason=f"{action.value} forbidden",
                context=context,
            )
        raise


@router.get("/audit", response_model=AuditLogListResponse, summary="Query class audit log")
def query_class_audit(
    class_manager: ClassManagerDep,
    audit_manager: AuditManagerDep,
    context: RequestContextDep,
    current_user: CurrentUser,
    filters: AuditFilters = Depends(audit_filters),
    limit: int = Query(
        default=config.AUDIT_QUERY_DEFAULT_LIMIT, ge=1, le=config.AUDIT_QUERY_MAX_LIMIT
    ),
    offset: int = Query(default=0, ge=0),
    order: SortOrder = Query(default="desc"),
) -> AuditLogListResponse:
    _authorize_class_audit(
        filters, AuditAction.QUERY_AUDIT, class_manager, audit_manager, context, current_user
    )
    items, total = audit_manager.query(filters, limit=limit, offset=offset, order=order)
    return AuditLogListResponse(
        items=[AuditLogEntryInfo.model_validate(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/audit/export", summary="Export class audit log as CSV")
def export_class_audit(
    class_manager: ClassManagerDep,
    audit_manager: AuditManagerDep,
    session_factory: SessionFactoryDep,
    clock: ClockDep,
    context: RequestContextDep,
    current_user: CurrentUser,
    filters: AuditFilters = Depends(audit_filters),
    order: SortOrder = Query(default="desc"),
    mode: ExportMode = Query(default="page"),
) -> Response:
    _authorize_class_audit(
        filters, AuditAction.EXPORT_AUDIT, class_manager, audit_manager, context, current_user
    )
    if mode == "all":
        try:
            require_bounded_range(filters)
        except ValidationError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(exc),
            )
    audit_manager.record(
        current_user.user_id,
        current_user.role,
        AuditAction.EXPORT_AUDIT,
        target=f"audit/{filters.class_id}",
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
        export_filename(f"class_audit_{filters.class_id}", clock),
    )
