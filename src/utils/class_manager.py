"""Class and membership management utilities."""

import logging
from typing import List

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import ClassNotFoundError, InvalidInviteError, StoreFailureError
from models.class_model import ClassModel
from models.class_membership import ClassMembershipModel
from utils.clock import Clock, SYSTEM_CLOCK
from utils.invite_manager import InviteManager

logger = logging.getLogger(__name__)


class ClassManager:
    """Manages classes, memberships and invite redemption."""

    def __init__(self, db: Session, clock: Clock = SYSTEM_CLOCK):
        self.db = db
        self.clock = clock
        self.invites = InviteManager(db, clock)

    def create_class(self, name: str, owner_id: str) -> ClassModel:
        """Create a new class owned by ``owner_id``."""
        class_model = ClassModel(
            class_id=self.clock.new_id(),
            name=name,
            owner_id=owner_id,
            created_at=self.clock.now_iso(),
        )
        try:
            self.db.add(class_model)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreFailureError("Failed to create class") from exc
        self.db.refresh(class_model)
        logger.info("Created class %s for owner %s", class_model.class_id, owner_id)
        return class_model

    def get_class(self, class_id: str) -> ClassModel:
        model = (
            self.db.query(ClassModel)
            .filter(ClassModel.class_id == class_id)
            .first()
        )
        if not model:
            raise ClassNotFoundError(class_id)
        return model

    def list_classes_for_owner(self, owner_id: str) -> List[ClassModel]:
        return (
            self.db.query(ClassModel)
            .filter(ClassModel.owner_id == owner_id)
            .order_by(ClassModel.created_at.desc())
            .all()
        )

    def list_class_ids_for_student(self, student_id: str) -> List[str]:
        memberships = (
            self.db.query(ClassMembershipModel)
            .filter(ClassMembershipModel.student_id == student_id)
            .all()
        )
        return [m.class_id for m in memberships]

    def is_member(self, class_id: str, student_id: str) -> bool:
        return (
            self.db.query(ClassMembershipModel)
            .filter(
                ClassMembershipModel.class_id == class_id,
                ClassMembershipModel.student_id == student_id,
            )
            .first()
            is not None
        )

    def _stage_membership(self, class_id: str, student_id: str) -> bool:
        """Add a membership row to the current transaction unless it exists."""
        if self.is_member(class_id, student_id):
            return False
        self.db.add(
            ClassMembershipModel(
                class_id=class_id,
                student_id=student_id,
                joined_at=self.clock.now_iso(),
            )
        )
        self.db.flush()
        return True

    def add_member(self, class_id: str, student_id: str) -> bool:
        """Add a student to a class.

        Adding an existing member is a successful no-op.

        Args:
            class_id: Class ID.
            student_id: Student user ID.

        Returns:
            True if a membership was created, False if it already existed.

        Raises:
            StoreFailureError: If the write fails.
        """
        try:
            created = self._stage_membership(class_id, student_id)
            self.db.commit()
        except IntegrityError:
            # Handle potential race condition: a concurrent add inserted the
            # same (class_id, student_id) between our check and insert
            self.db.rollback()
            logger.info("Student %s already a member of class %s", student_id, class_id)
            return False
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreFailureError("Failed to add class member") from exc
        if created:
            logger.info("Added student %s to class %s", student_id, class_id)
        return created

    def remove_member(self, class_id: str, student_id: str) -> bool:
        """Remove a student from a class.

        Shared by self-service leave and teacher kick. Removing a non-member
        is not an error.

        Returns:
            True if a membership row was deleted.
        """
        try:
            deleted = (
                self.db.query(ClassMembershipModel)
                .filter(
                    ClassMembershipModel.class_id == class_id,
                    ClassMembershipModel.student_id == student_id,
                )
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreFailureError("Failed to remove class member") from exc
        if deleted:
            logger.info("Removed student %s from class %s", student_id, class_id)
        return deleted > 0

    def list_members(self, class_id: str) -> List[ClassMembershipModel]:
        return (
            self.db.query(ClassMembershipModel)
            .filter(ClassMembershipModel.class_id == class_id)
            .order_by(
                ClassMembershipModel.joined_at.asc(),
                ClassMembershipModel.student_id.asc(),
            )
            .all()
        )

    def join_by_invitation_code(self, code: str, student_id: str) -> str:
        """Join a class using an invitation code.

        Verifies the code, consumes one usage slot and adds the membership in
        a single transaction. Joining a class the student already belongs to
        still counts as a redemption.

        Args:
            code: Invitation code.
            student_id: Student user ID joining the class.

        Returns:
            Class ID that was joined.

        Raises:
            InvalidInviteError: If the code is unknown, revoked, expired,
                exhausted, or was exhausted by a concurrent redemption.
            StoreFailureError: If the store fails.
        """
        invite = self.invites.verify(code)
        class_id = invite.class_id
        try:
            if not self.invites.consume(invite.code, commit=False):
                self.db.rollback()
                logger.info("Invite for class %s lost a redemption race", class_id)
                raise InvalidInviteError()
            self._stage_membership(class_id, student_id)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(
                "Concurrent join already added student %s to class %s",
                student_id,
                class_id,
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreFailureError("Failed to redeem invite") from exc
        logger.info("Student %s joined class %s", student_id, class_id)
        return class_id
