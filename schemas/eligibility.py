"""Eligibility decisions and bulk-candidate output."""
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class EligibilityResult(BaseModel):
    eligible: bool
    reason: Optional[str] = None
    # Name of the rule that denied the call, e.g. "cooldown"
    check: Optional[str] = None

    @classmethod
    def allow(cls) -> "EligibilityResult":
        return cls(eligible=True)

    @classmethod
    def deny(cls, check: str, reason: str) -> "EligibilityResult":
        return cls(eligible=False, check=check, reason=reason)


class TerminalCheck(BaseModel):
    active: bool
    reason: Optional[str] = None
    terminal_id: Optional[uuid.UUID] = None


class EligibleCall(BaseModel):
    project_id: uuid.UUID
    project_external_id: str
    project_name: str
    priority_score: int
    next_call_eligible_at: Optional[datetime] = None
    contact_id: uuid.UUID
    contact_external_id: Optional[str] = None
    contact_name: str
    phone: str
    role_for_project: Optional[str] = None
    role_confidence: Optional[float] = None
    preferred_channel: str = "phone"
