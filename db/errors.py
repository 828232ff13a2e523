"""Error taxonomy for the calling CRM core.

Every error carries a stable ``code`` so callers can map it onto the
``{success, error, details}`` envelope without string matching.
"""
from typing import Any, Optional


class CrmError(Exception):
    """Base class for errors the core raises on purpose."""

    code = "crm_error"

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(CrmError):
    """A referenced Project, Contact, CallSession or TerminalSession does not exist."""

    code = "not_found"


class ValidationConflict(CrmError):
    """Input contradicts a data rule (scope/ID mismatch, write to an ended call)."""

    code = "validation_conflict"


class PermissionDenied(CrmError):
    """The row exists but the operation is not allowed on it."""

    code = "permission_denied"


class TransientConflict(CrmError):
    """A unique-constraint race that survived the single local retry."""

    code = "transient_conflict"


class UpstreamUnavailable(CrmError):
    """The persistent store could not be reached. Never treat as an allow."""

    code = "upstream_unavailable"


__all__ = [
    "CrmError",
    "NotFound",
    "ValidationConflict",
    "PermissionDenied",
    "TransientConflict",
    "UpstreamUnavailable",
]
