"""Class invitation code lifecycle.

An invite is either ``active`` or ``revoked``. Expired and exhausted are
derived when the invite is read: verification and consumption both compute
them from ``expires_at`` and ``usage_count``/``usage_limit``. Rotation is the
only way to mint a new code and it always revokes the previous one.
"""

import logging
import secrets
from datetime import datetime
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

import config
from core.exceptions import (
    InvalidInviteError,
    InviteGenerationError,
    StoreFailureError,
    ValidationError,
)
from models.class_invitation_code import ClassInvitationCodeModel, InviteStatus
from utils.clock import Clock, SYSTEM_CLOCK, ensure_utc, parse_iso, to_iso

logger = logging.getLogger(__name__)


def generate_invite_code() -> str:
    """Draw a fresh code from the unambiguous alphabet."""
    return "".join(
        secrets.choice(config.INVITE_CODE_ALPHABET)
        for _ in range(config.INVITE_CODE_LENGTH)
    )


def normalize_code(code: str) -> str:
    return code.strip().upper()


class InviteManager:
    """Manages invite rotation, verification and usage accounting."""

    def __init__(self, db: Session, clock: Clock = SYSTEM_CLOCK):
        """Initialize InviteManager.

        Args:
            db: SQLAlchemy Session.
            clock: Source of timestamps.
        """
        self.db = db
        self.clock = clock

    def generate(
        self,
        class_id: str,
        created_by: str,
        usage_limit: Optional[int] = None,
        expires_at: Optional[datetime] = None,
        unlimited: bool = False,
    ) -> ClassInvitationCodeModel:
        """Rotate the class invite: revoke the active one and create a new one.

        The caller must already have checked that ``created_by`` owns the
        class. Revoke and insert happen in one transaction. A uniqueness
        conflict (code collision, or a concurrent rotation that took the
        active slot first) rolls back and retries with a fresh code.

        Args:
            class_id: Class to rotate the invite for.
            created_by: User ID of the class owner.
            usage_limit: Maximum redemptions. Defaults to
                INVITE_DEFAULT_USAGE_LIMIT when not given.
            expires_at: Optional expiry instant. None means never.
            unlimited: Store no usage limit at all.

        Returns:
            The new active ClassInvitationCodeModel.

        Raises:
            ValidationError: If usage_limit or expires_at is out of range.
            InviteGenerationError: If every attempt hit a uniqueness conflict.
            StoreFailureError: If the store fails for any other reason.
        """
        if unlimited:
            usage_limit = None
        elif usage_limit is None:
            usage_limit = config.INVITE_DEFAULT_USAGE_LIMIT
        elif usage_limit < 1:
            raise ValidationError("usageLimit must be at least 1")

        expires_at = ensure_utc(expires_at)
        if expires_at is not None and expires_at <= self.clock.now():
            raise ValidationError("expiresAt must be in the future")
        expires_at_iso = to_iso(expires_at) if expires_at is not None else None

        attempts = config.INVITE_CODE_MAX_ATTEMPTS
        for attempt in range(1, attempts + 1):
            now = self.clock.now_iso()
            model = ClassInvitationCodeModel(
                code=generate_invite_code(),
                class_id=class_id,
                created_by=created_by,
                status=InviteStatus.ACTIVE.value,
                usage_limit=usage_limit,
                usage_count=0,
                created_at=now,
                expires_at=expires_at_iso,
            )
            try:
                revoked = (
                    self.db.query(ClassInvitationCodeModel)
                    .filter(
                        ClassInvitationCodeModel.class_id == class_id,
                        ClassInvitationCodeModel.status == InviteStatus.ACTIVE.value,
                    )
                    .update(
                        {
                            ClassInvitationCodeModel.status: InviteStatus.REVOKED.value,
                            ClassInvitationCodeModel.revoked_at: now,
                        },
                        synchronize_session=False,
                    )
                )
                self.db.add(model)
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning(
                    "Invite rotation for class %s hit a uniqueness conflict (attempt %d/%d)",
                    class_id,
                    attempt,
                    attempts,
                )
                continue
            except SQLAlchemyError as exc:
                self.db.rollback()
                raise StoreFailureError(f"Failed to rotate invite for class '{class_id}'") from exc

            self.db.refresh(model)
            logger.info(
                "Rotated invite for class %s (revoked %d, usage_limit=%s, expires_at=%s)",
                class_id,
                revoked,
                usage_limit,
                expires_at_iso,
            )
            return model

        logger.error("Giving up on invite rotation for class %s", class_id)
        raise InviteGenerationError(class_id, attempts)

    def is_redeemable(self, model: ClassInvitationCodeModel) -> bool:
        """Whether an invite can still be redeemed right now."""
        if model.status != InviteStatus.ACTIVE.value:
            return False
        if model.expires_at and parse_iso(model.expires_at) <= self.clock.now():
            return False
        if model.usage_limit is not None and model.usage_count >= model.usage_limit:
            return False
        return True

    def verify(self, code: str) -> ClassInvitationCodeModel:
        """Look up a redeemable invite by code.

        Args:
            code: Invite code as typed by the student.

        Returns:
            The active ClassInvitationCodeModel.

        Raises:
            InvalidInviteError: For unknown, revoked, expired or exhausted
                codes alike.
        """
        model = (
            self.db.query(ClassInvitationCodeModel)
            .filter(
                ClassInvitationCodeModel.code == normalize_code(code),
                ClassInvitationCodeModel.status == InviteStatus.ACTIVE.value,
            )
            .first()
        )
        if model is None or not self.is_redeemable(model):
            raise InvalidInviteError()
        return model

    def consume(self, code: str, commit: bool = True) -> bool:
        """Atomically count one redemption of ``code``.

        The update only matches an active, unexpired invite with a free usage
        slot, so two requests racing for the last slot cannot both win.

        Args:
            code: Invite code.
            commit: Commit the update. Pass False to fold it into a larger
                transaction owned by the caller.

        Returns:
            True if a slot was consumed, False if the code stopped being
            redeemable since it was verified.

        Raises:
            StoreFailureError: If the update fails.
        """
        now = self.clock.now_iso()
        try:
            updated = (
                self.db.query(ClassInvitationCodeModel)
                .filter(
                    ClassInvitationCodeModel.code == normalize_code(code),
                    ClassInvitationCodeModel.status == InviteStatus.ACTIVE.value,
                    or_(
                        ClassInvitationCodeModel.usage_limit.is_(None),
                        ClassInvitationCodeModel.usage_count
                        < ClassInvitationCodeModel.usage_limit,
                    ),
                    or_(
                        ClassInvitationCodeModel.expires_at.is_(None),
                        ClassInvitationCodeModel.expires_at > now,
                    ),
                )
                .update(
                    {
                        ClassInvitationCodeModel.usage_count:
                            ClassInvitationCodeModel.usage_count + 1
                    },
                    synchronize_session=False,
                )
            )
            if commit:
                self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreFailureError("Failed to record invite usage") from exc
        return updated > 0

    def get_invite(self, code: str) -> Optional[ClassInvitationCodeModel]:
        return (
            self.db.query(ClassInvitationCodeModel)
            .filter(ClassInvitationCodeModel.code == normalize_code(code))
            .first()
        )

    def get_active_invite(self, class_id: str) -> Optional[ClassInvitationCodeModel]:
        """Return the class's active invite row, if any.

        The row may still be expired or exhausted; use ``is_redeemable``.
        """
        return (
            self.db.query(ClassInvitationCodeModel)
            .filter(
                ClassInvitationCodeModel.class_id == class_id,
                ClassInvitationCodeModel.status == InviteStatus.ACTIVE.value,
            )
            .first()
        )

    def list_invites(self, class_id: str) -> List[ClassInvitationCodeModel]:
        return (
            self.db.query(ClassInvitationCodeModel)
            .filter(ClassInvitationCodeModel.class_id == class_id)
            .order_by(ClassInvitationCodeModel.created_at.desc())
            .all()
        )
