"""Handler contract: identity, gating and the single execute() entry point.

Every pipeline step subclasses EventHandler. The executor relies only on what is
declared here; it never inspects handler internals.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel

if TYPE_CHECKING:
    from fulfillment.handlers.context import HandlerContext

DEFAULT_PRIORITY = 100


class EventHandler(ABC):
    """Abstract base for pipeline steps.

    Subclasses set ``name`` and ``event_type`` as class attributes and implement
    ``execute``. ``priority`` (lower = earlier) and ``enabled`` may be overridden
    per class or per instance.
    """

    name: ClassVar[str]
    event_type: ClassVar[str]
    description: ClassVar[str] = ""
    default_priority: ClassVar[int] = DEFAULT_PRIORITY
    default_enabled: ClassVar[bool] = True
    # Shape of the data this handler publishes under its own name. None = publishes nothing.
    data_model: ClassVar[type[BaseModel] | None] = None

    def __init__(self, *, priority: int | None = None, enabled: bool | None = None) -> None:
        self.priority: int = self.default_priority if priority is None else priority
        self.enabled: bool = self.default_enabled if enabled is None else enabled

    @abstractmethod
    async def execute(self, payload: Any, context: "HandlerContext") -> None:
        """Perform the side effect. Raise to mark this handler (only) as failed."""

    def publish(self, context: "HandlerContext", data: BaseModel) -> None:
        """Store data under this handler's name in the shared context."""
        context.publish(self.name, data)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self.name!r}, event_type={self.event_type!r}, "
            f"priority={self.priority}, enabled={self.enabled})"
        )
