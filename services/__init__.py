from .config import CallPolicy
from .eligibility import EligibilityEngine
from .events import EventBus, OutboundEvent, bus

__all__ = ["CallPolicy", "EligibilityEngine", "EventBus", "OutboundEvent", "bus"]
