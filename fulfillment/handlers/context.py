"""HandlerContext: per-run shared state passed by reference to every handler."""

import copy
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

M = TypeVar("M", bound=BaseModel)

DEFAULT_SOURCE = "event-bus"
DEFAULT_TRIGGERED_BY = "system"


@dataclass(frozen=True)
class RunMetadata:
    """Immutable description of one pipeline run."""

    event_type: str
    timestamp: str
    source: str = DEFAULT_SOURCE
    triggered_by: str = DEFAULT_TRIGGERED_BY

    @classmethod
    def now(
        cls,
        event_type: str,
        source: str = DEFAULT_SOURCE,
        triggered_by: str = DEFAULT_TRIGGERED_BY,
    ) -> "RunMetadata":
        return cls(
            event_type=event_type,
            timestamp=datetime.now(timezone.utc).isoformat(),
            source=source,
            triggered_by=triggered_by,
        )


@dataclass
class HandlerContext:
    """Mutable accumulator for one run: handler name -> data that handler published.

    Keys are only ever added or replaced, never removed. Readers go through
    ``read()``, which returns None when the key is absent or has another shape.
    """

    metadata: RunMetadata
    handler_data: dict[str, Any] = field(default_factory=dict)

    def publish(self, handler_name: str, data: BaseModel | dict[str, Any]) -> None:
        self.handler_data[handler_name] = data

    def has(self, handler_name: str) -> bool:
        return handler_name in self.handler_data

    def read(self, handler_name: str, model: type[M]) -> M | None:
        """Typed, fallible accessor for another handler's published data."""
        value = self.handler_data.get(handler_name)
        if value is None:
            return None
        if isinstance(value, model):
            return value
        raw = value.model_dump() if isinstance(value, BaseModel) else value
        try:
            return model.model_validate(raw)
        except ValidationError:
            return None

    def snapshot(self) -> dict[str, Any]:
        """Deep, JSON-compatible copy of handler_data."""
        return {key: to_jsonable(value) for key, value in self.handler_data.items()}


def to_jsonable(value: Any) -> Any:
    """Convert published data into plain JSON types (models dumped, everything else deep-copied)."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    try:
        return json.loads(json.dumps(value, default=str))
    except (TypeError, ValueError):
        return copy.deepcopy(value)


def context_diff(before: dict[str, Any], after: dict[str, Any]) -> dict[str, Any]:
    """Keys of ``after`` that are new or whose value changed relative to ``before``."""
    return {
        key: value
        for key, value in after.items()
        if key not in before or _canonical(before[key]) != _canonical(value)
    }


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)
