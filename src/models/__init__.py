"""Database models.

Importing this package registers every table with ``Base.metadata``.
"""

from .base import Base
from .class_model import ClassModel
from .class_membership import ClassMembershipModel
from .class_invitation_code import ClassInvitationCodeModel, InviteStatus
from .audit_log import AuditLogModel, AuditAction, AuditResult

__all__ = [
    "Base",
    "ClassModel",
    "ClassMembershipModel",
    "ClassInvitationCodeModel",
    "InviteStatus",
    "AuditLogModel",
    "AuditAction",
    "AuditResult",
]
