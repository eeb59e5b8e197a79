"""Class, membership and invite schema definitions.

Request bodies accept the camelCase keys used by the mobile clients as well
as snake_case.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CreateClassRequest(BaseModel):
    name: Optional[str] = None


class ClassInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    class_id: str
    name: str
    owner_id: str
    created_at: str


class GenerateClassInvitationCodeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    usage_limit: Optional[int] = Field(
        default=None,
        alias="usageLimit",
        description="Maximum redemptions. Omit for the default; send null for unlimited.",
    )
    expires_at: Optional[datetime] = Field(
        default=None,
        alias="expiresAt",
        description="Expiry instant. Omit or null for a code that never expires.",
    )


class ClassInvitationCodeInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    class_id: str
    created_by: str
    status: str
    usage_limit: Optional[int] = None
    usage_count: int
    expires_at: Optional[str] = None
    created_at: str
    revoked_at: Optional[str] = None


class ClassInvitationCodeListResponse(BaseModel):
    invitation_codes: List[ClassInvitationCodeInfo]


class JoinClassRequest(BaseModel):
    code: Optional[str] = None


class JoinClassResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    class_id: str = Field(alias="classId")


class LeaveClassRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    class_id: Optional[str] = Field(default=None, alias="classId")


class AddMemberRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    student_id: Optional[str] = Field(default=None, alias="studentId")


class ClassMemberInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    class_id: str
    student_id: str
    joined_at: str


class MembershipChangeResponse(BaseModel):
    success: bool = True
    changed: bool
