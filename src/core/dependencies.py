"""Dependency injection module for FastAPI.

This module provides dependency injection functions for FastAPI routes.
Managers are request-scoped; rate limiters and the clock live on
``app.state`` and are created by ``create_app``.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session, sessionmaker

from core.database import get_db, get_session_factory
from schemas.audit import RequestContext
from utils import audit_manager
from utils import class_manager
from utils import invite_manager
from utils.clock import Clock
from utils.rate_limiter import RateLimiter


def get_clock(request: Request) -> Clock:
    """Get the application clock."""
    return request.app.state.clock


def get_class_manager(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> class_manager.ClassManager:
    """Get ClassManager instance with request-scoped DB session.

    Args:
        db: Database session.
        clock: Application clock.

    Returns:
        ClassManager instance.
    """
    return class_manager.ClassManager(db, clock)


def get_invite_manager(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> invite_manager.InviteManager:
    """Get InviteManager instance with request-scoped DB session."""
    return invite_manager.InviteManager(db, clock)


def get_audit_manager(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> audit_manager.AuditManager:
    """Get AuditManager instance with request-scoped DB session."""
    return audit_manager.AuditManager(db, clock)


def get_join_rate_limiter(request: Request) -> RateLimiter:
    """Get the limiter guarding invite redemption."""
    return request.app.state.join_rate_limiter


def get_audit_rate_limiter(request: Request) -> RateLimiter:
    """Get the limiter guarding admin audit access."""
    return request.app.state.audit_rate_limiter


def get_request_context(request: Request) -> RequestContext:
    """Collect request metadata recorded on audit entries."""
    return RequestContext(
        request_id=request.headers.get("x-request-id"),
        origin=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


# Type aliases for dependency injection
ClockDep = Annotated[Clock, Depends(get_clock)]
SessionFactoryDep = Annotated[sessionmaker, Depends(get_session_factory)]
ClassManagerDep = Annotated[
    class_manager.ClassManager, Depends(get_class_manager)
]
InviteManagerDep = Annotated[
    invite_manager.InviteManager, Depends(get_invite_manager)
]
AuditManagerDep = Annotated[
    audit_manager.AuditManager, Depends(get_audit_manager)
]
JoinRateLimiterDep = Annotated[RateLimiter, Depends(get_join_rate_limiter)]
AuditRateLimiterDep = Annotated[RateLimiter, Depends(get_audit_rate_limiter)]
RequestContextDep = Annotated[RequestContext, Depends(get_request_context)]
