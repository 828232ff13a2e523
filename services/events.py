"""Outbound events for best-effort collaborators (CRM sync).

Writes publish an OutboundEvent after their transaction commits. Each
subscriber runs as its own asyncio task: a slow or failing subscriber
never delays or fails the write that produced the event.
"""
import asyncio
import inspect
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from db.models import Base, to_dict, utcnow

logger = logging.getLogger(__name__)

PROJECT_UPSERTED = "project.upserted"
CONTACT_UPSERTED = "contact.upserted"
ASSOCIATION_UPSERTED = "project_contact.upserted"
CALL_SESSION_CREATED = "call_session.created"
CALL_SESSION_UPDATED = "call_session.updated"
TERMINAL_SESSION_CREATED = "terminal_session.created"
TERMINAL_SESSION_REMOVED = "terminal_session.removed"


class OutboundEvent(BaseModel):
    name: str
    entity_id: UUID
    payload: dict[str, Any]
    occurred_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def for_row(cls, name: str, row: Base, **extra: Any) -> "OutboundEvent":
        return cls(name=name, entity_id=row.id, payload={**to_dict(row), **extra})


Handler = Callable[[OutboundEvent], Union[Awaitable[None], None]]


class EventBus:
    def __init__(self) -> None:
        self._handlers: list[Handler] = []
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, handler: Handler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: Handler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def publish(self, event: OutboundEvent) -> None:
        """Schedule every subscriber and return immediately."""
        for handler in list(self._handlers):
            task = asyncio.get_running_loop().create_task(self._deliver(handler, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, handler: Handler, event: OutboundEvent) -> None:
        try:
            result = handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Outbound handler %r failed for %s %s", handler, event.name, event.entity_id)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight deliveries (shutdown, tests)."""
        if self._pending:
            await asyncio.wait(set(self._pending), timeout=timeout)


bus = EventBus()
