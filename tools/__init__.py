from .hubspot_tools import (
    hubspot_sync_project, hubspot_sync_contact, hubspot_associate_contact,
    hubspot_log_call, hubspot_sync_terminal, handle_event, register,
)

__all__ = [
    "hubspot_sync_project", "hubspot_sync_contact", "hubspot_associate_contact",
    "hubspot_log_call", "hubspot_sync_terminal", "handle_event", "register",
]
