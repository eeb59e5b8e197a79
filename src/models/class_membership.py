from sqlalchemy import Column, String, ForeignKey
from sqlalchemy.orm import relationship
from .base import Base


class ClassMembershipModel(Base):
    __tablename__ = "class_memberships"

    # Composite key: a student is a member of a class at most once
    class_id = Column(
        String,
        ForeignKey("classes.class_id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    student_id = Column(String, primary_key=True, index=True)
    joined_at = Column(String, nullable=False)

    class_ = relationship("ClassModel", back_populates="memberships")
