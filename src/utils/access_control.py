"""Role and ownership checks per operation category.

Every failure raises the same NotAuthorizedError so a denied caller cannot
tell a role mismatch from an ownership mismatch.
"""

import logging
from typing import Dict, FrozenSet, Optional

from core.exceptions import NotAuthorizedError
from models.class_model import ClassModel
from schemas.user import Identity

logger = logging.getLogger(__name__)

CREATE_CLASS = "create_class"
LIST_CLASSES = "list_classes"
ROTATE_INVITE = "rotate_invite"
VIEW_INVITE = "view_invite"
ADD_MEMBER = "add_member"
LIST_MEMBERS = "list_members"
KICK_MEMBER = "kick_member"
JOIN_CLASS = "join_class"
LEAVE_CLASS = "leave_class"
LIST_MY_CLASSES = "list_my_classes"
CLASS_AUDIT = "class_audit"
GLOBAL_AUDIT = "global_audit"

OPERATION_ROLES: Dict[str, FrozenSet[str]] = {
    CREATE_CLASS: frozenset({"teacher"}),
    LIST_CLASSES: frozenset({"teacher"}),
    ROTATE_INVITE: frozenset({"teacher"}),
    VIEW_INVITE: frozenset({"teacher"}),
    ADD_MEMBER: frozenset({"teacher"}),
    LIST_MEMBERS: frozenset({"teacher"}),
    KICK_MEMBER: frozenset({"teacher"}),
    JOIN_CLASS: frozenset({"student"}),
    LEAVE_CLASS: frozenset({"student"}),
    LIST_MY_CLASSES: frozenset({"student"}),
    CLASS_AUDIT: frozenset({"teacher"}),
    GLOBAL_AUDIT: frozenset({"admin"}),
}

# Class-scoped operations: the caller must also own the class
OWNER_OPERATIONS: FrozenSet[str] = frozenset(
    {ROTATE_INVITE, VIEW_INVITE, ADD_MEMBER, LIST_MEMBERS, KICK_MEMBER, CLASS_AUDIT}
)


def is_class_owner(identity: Identity, class_model: ClassModel) -> bool:
    return class_model.owner_id == identity.user_id


def require_role(identity: Identity, operation: str) -> None:
    """Check only the role half of ``operation``.

    Raises:
        NotAuthorizedError: On role mismatch or an unknown operation.
    """
    allowed = OPERATION_ROLES.get(operation)
    if allowed is None or identity.role not in allowed:
        logger.info("Denied %s to %s (%s): role", operation, identity.user_id, identity.role)
        raise NotAuthorizedError(operation)


def authorize(
    identity: Identity,
    operation: str,
    class_model: Optional[ClassModel] = None,
) -> None:
    """Allow or deny ``identity`` for ``operation``.

    Args:
        identity: Resolved caller identity.
        operation: One of the operation constants in this module.
        class_model: The class being acted on, for class-scoped operations.

    Raises:
        NotAuthorizedError: On role mismatch, ownership mismatch, or an
            unknown operation.
        ValueError: If a class-scoped operation is checked without a class.
    """
    require_role(identity, operation)
    if operation not in OWNER_OPERATIONS:
        return
    if class_model is None:
        raise ValueError(f"Operation '{operation}' needs the class to check ownership")
    if not is_class_owner(identity, class_model):
        logger.info(
            "Denied %s on class %s to %s: ownership",
            operation,
            class_model.class_id,
            identity.user_id,
        )
        raise NotAuthorizedError(operation)
