"""Event model for the in-process Event Bus."""

from dataclasses import dataclass
from typing import Any

__all__ = ["Event"]


@dataclass(frozen=True)
class Event:
    """Immutable event passed to subscribers."""

    id: str
    topic: str
    source: str
    payload: Any
    created_at: float
    correlation_id: str | None = None
