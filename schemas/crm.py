"""Project, contact and association payloads.

Every field except the identity keys is optional: absence means
"leave the stored value alone", an explicit null means "clear it".
Repositories read these with ``model_dump(exclude_unset=True)``.
"""
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

Channel = Literal["phone", "email", "sms"]


class ProjectIn(BaseModel):
    external_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    address: Optional[str] = None
    suburb: Optional[str] = None
    postcode: Optional[str] = None
    state: Optional[str] = None
    category: Optional[str] = None
    awarded_date: Optional[date] = None
    distance: Optional[float] = None
    budget: Optional[str] = None
    quotes_due_date: Optional[date] = None
    country: Optional[str] = None
    priority_score: Optional[int] = None
    call_suppressed: Optional[bool] = None


class ContactIn(BaseModel):
    external_id: Optional[str] = None
    name: str = Field(min_length=1)
    phone: Optional[str] = None
    email: Optional[str] = None
    company_name: Optional[str] = None
    global_role: Optional[str] = None
    authority_level: Optional[str] = None
    preferred_channel: Optional[Channel] = None
    do_not_call: Optional[bool] = None
    last_ai_contact: Optional[datetime] = None

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.lower().strip() or None

    @field_validator("phone", "external_id")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    @model_validator(mode="after")
    def _require_identity(self) -> "ContactIn":
        if not (self.external_id or self.phone or self.email):
            raise ValueError("At least one of external_id, phone or email is required")
        return self


class ProjectContactIn(BaseModel):
    """Per-pair preferences for an association."""

    role_for_project: Optional[str] = None
    role_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    role_confirmed: Optional[bool] = None
    preferred_channel_project: Optional[Channel] = None
    suppress_for_project: Optional[bool] = None
    last_contacted_at: Optional[datetime] = None
