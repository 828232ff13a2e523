from .crm import (
    ProjectIn,
    ContactIn,
    ProjectContactIn,
)
from .calls import (
    ContactRef,
    CallSessionCreate,
    CallSessionUpdate,
    TerminalSessionCreate,
)
from .eligibility import (
    EligibilityResult,
    TerminalCheck,
    EligibleCall,
)

__all__ = [
    "ProjectIn", "ContactIn", "ProjectContactIn",
    "ContactRef", "CallSessionCreate", "CallSessionUpdate", "TerminalSessionCreate",
    "EligibilityResult", "TerminalCheck", "EligibleCall",
]
