"""Caller identity schema."""

from typing import Literal

from pydantic import BaseModel, Field

Role = Literal["admin", "teacher", "student"]


class Identity(BaseModel):
    """Resolved (user id, role) pair for the current request."""

    user_id: str = Field(min_length=1)
    role: Role
