from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger("solarflow.events")

WILDCARD = "*"


@dataclass(frozen=True)
class DomainEvent:
    type: str
    tenant_id: str
    data: dict[str, Any] = field(default_factory=dict)


Handler = Callable[[DomainEvent], None]


class EventBus:
    """In-process publish/subscribe.

    Handlers run synchronously in registration order. A failing handler is logged and
    skipped; it never aborts the emitter.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def on(self, event_type: str, handler: Handler) -> Callable[[], None]:
        self._handlers[event_type].append(handler)

        def _unsubscribe() -> None:
            try:
                self._handlers[event_type].remove(handler)
            except ValueError:
                pass

        return _unsubscribe

    def emit(self, event: DomainEvent) -> None:
        handlers = list(self._handlers.get(event.type, ())) + list(self._handlers.get(WILDCARD, ()))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "event_handler_failed",
                    extra={"event_type": event.type, "tenant_id": event.tenant_id},
                )

    def clear(self) -> None:
        self._handlers.clear()


event_bus = EventBus()


def emit(event_type: str, tenant_id: str, data: dict[str, Any] | None = None) -> None:
    event_bus.emit(DomainEvent(type=event_type, tenant_id=tenant_id, data=dict(data or {})))
