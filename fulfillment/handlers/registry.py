"""Handler registry: event type -> handlers in registration order.

Composed once at process start and injected into the executor. There is no
register/unregister at runtime; handler sets are a deployment-time concern.
"""

from dataclasses import dataclass, field
from typing import Iterable, Mapping

from fulfillment.handlers.contract import EventHandler


@dataclass(frozen=True)
class RegistryStats:
    """Counts for observability only."""

    total_events: int
    total_handlers: int
    handlers_by_event: dict[str, int] = field(default_factory=dict)


class HandlerRegistry:
    """Read-only mapping from event type to its handler instances."""

    def __init__(self, handlers: Mapping[str, Iterable[EventHandler]] | None = None) -> None:
        self._handlers: dict[str, tuple[EventHandler, ...]] = {}
        for event_type, items in (handlers or {}).items():
            entries = tuple(items)
            self._validate(event_type, entries)
            self._handlers[event_type] = entries

    @classmethod
    def from_handlers(cls, handlers: Iterable[EventHandler]) -> "HandlerRegistry":
        """Group handlers by their declared event_type, keeping the given order."""
        grouped: dict[str, list[EventHandler]] = {}
        for handler in handlers:
            grouped.setdefault(handler.event_type, []).append(handler)
        return cls(grouped)

    @staticmethod
    def _validate(event_type: str, entries: tuple[EventHandler, ...]) -> None:
        seen: set[str] = set()
        for handler in entries:
            if not isinstance(handler, EventHandler):
                raise TypeError(
                    f"Handler for {event_type!r} must subclass EventHandler, got {type(handler).__name__}"
                )
            if handler.event_type != event_type:
                raise ValueError(
                    f"Handler {handler.name!r} declares event type {handler.event_type!r} "
                    f"but is registered under {event_type!r}"
                )
            if handler.name in seen:
                raise ValueError(f"Duplicate handler name {handler.name!r} for event {event_type!r}")
            seen.add(handler.name)

    def handlers_for(self, event_type: str) -> list[EventHandler]:
        """Handlers registered for event_type, in registration order. Empty list if none."""
        return list(self._handlers.get(event_type, ()))

    def event_types(self) -> list[str]:
        return list(self._handlers)

    def stats(self) -> RegistryStats:
        by_event = {event_type: len(items) for event_type, items in self._handlers.items()}
        return RegistryStats(
            total_events=len(by_event),
            total_handlers=sum(by_event.values()),
            handlers_by_event=by_event,
        )


def apply_overrides(
    handlers: Iterable[EventHandler], overrides: Mapping[str, Mapping[str, object]] | None
) -> list[EventHandler]:
    """Apply per-handler ``enabled``/``priority`` settings before the registry is built."""
    result = list(handlers)
    for handler in result:
        entry = (overrides or {}).get(handler.name)
        if not isinstance(entry, Mapping):
            continue
        if "enabled" in entry and entry["enabled"] is not None:
            handler.enabled = bool(entry["enabled"])
        if "priority" in entry and entry["priority"] is not None:
            handler.priority = int(entry["priority"])  # type: ignore[arg-type]
    return result
