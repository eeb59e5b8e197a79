"""Class invitation code database model."""

import enum

from sqlalchemy import Column, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship
from .base import Base


class InviteStatus(str, enum.Enum):
    """Stored invite status.

    Expired and exhausted are derived on read and never stored.
    """

    ACTIVE = "active"
    REVOKED = "revoked"


class ClassInvitationCodeModel(Base):
    __tablename__ = "class_invitation_codes"
    __table_args__ = (
        # At most one active invite per class
        Index(
            "uq_class_invitation_codes_active_class",
            "class_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    code = Column(String, primary_key=True, index=True)
    class_id = Column(
        String, ForeignKey("classes.class_id", ondelete="CASCADE"), index=True
    )
    created_by = Column(String, nullable=False)
    status = Column(String, nullable=False, default=InviteStatus.ACTIVE.value)
    usage_limit = Column(Integer, nullable=True)  # NULL = unlimited
    usage_count = Column(Integer, nullable=False, default=0)
    created_at = Column(String, nullable=False)  # ISO format string
    expires_at = Column(String, nullable=True)  # ISO format string, NULL = never
    revoked_at = Column(String, nullable=True)

    class_ = relationship("ClassModel", back_populates="invitations")
