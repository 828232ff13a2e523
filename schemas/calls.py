"""Call-session and terminal-session payloads."""
import uuid
from datetime import datetime
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

from db.models import CallType, TerminalScope

# An internal key (uuid.UUID) or an external id (str)
ContactRef = Union[uuid.UUID, str]

Sentiment = Literal["positive", "neutral", "negative"]


class CallSessionCreate(BaseModel):
    external_id: Optional[str] = None
    project_external_id: str = Field(min_length=1)
    contact: Optional[ContactRef] = None
    call_type: CallType
    call_status: str = Field(min_length=1)
    detected_role: Optional[str] = None
    role_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    outcome: Optional[str] = None
    sentiment: Optional[Sentiment] = None
    escalated: bool = False
    escalation_reason: Optional[str] = None
    transcript: Optional[str] = None
    recording_url: Optional[str] = None
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None


class CallSessionUpdate(BaseModel):
    """Outcome fields that may be appended while a call is still open.

    Identity, ownership and start time are deliberately absent.
    """

    call_status: Optional[str] = Field(default=None, min_length=1)
    detected_role: Optional[str] = None
    role_confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    outcome: Optional[str] = None
    sentiment: Optional[Sentiment] = None
    escalated: Optional[bool] = None
    escalation_reason: Optional[str] = None
    transcript: Optional[str] = None
    recording_url: Optional[str] = None
    ended_at: Optional[datetime] = None


class TerminalSessionCreate(BaseModel):
    external_id: Optional[str] = None
    scope: TerminalScope
    project_external_id: Optional[str] = None
    contact: Optional[ContactRef] = None
    reason: str = Field(min_length=1)
    created_by: str = "system"
    expires_at: Optional[datetime] = None
    override_allowed: bool = False
