"""In-process domain event dispatch.

Workflow services publish events such as ``DocumentFullySigned``; handlers
registered at import time consume them inside the caller's DB session so
the trigger condition and its side effects stay independently testable.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger()


@dataclass(frozen=True)
class DomainEvent:
    occurred_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc), kw_only=True
    )

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class DocumentFullySigned(DomainEvent):
    """Every signature request on a document is ``signed``."""

    document_id: uuid.UUID
    room_id: uuid.UUID
    actor_id: uuid.UUID | None = None


Handler = Callable[[AsyncSession, Any], Awaitable[Any]]


class EventDispatcher:
    """Routes events to the handlers subscribed for their exact type."""

    def __init__(self) -> None:
        self._handlers: dict[type[DomainEvent], list[Handler]] = {}

    def subscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)
            logger.debug("event_handler_registered", event_type=event_type.__name__, handler=handler.__qualname__)

    def unsubscribe(self, event_type: type[DomainEvent], handler: Handler) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def handlers_for(self, event_type: type[DomainEvent]) -> list[Handler]:
        return list(self._handlers.get(event_type, []))

    async def dispatch(self, db: AsyncSession, event: DomainEvent) -> list[Any]:
        """Run every handler in registration order; handler errors propagate."""
        handlers = self.handlers_for(type(event))
        if not handlers:
            logger.warning("event_without_handlers", event_type=event.name)
            return []

        results = []
        for handler in handlers:
            logger.info("event_dispatched", event_type=event.name, handler=handler.__qualname__)
            results.append(await handler(db, event))
        return results


# Module-level singleton
dispatcher = EventDispatcher()
