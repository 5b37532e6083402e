"""Handler orchestration: contract, shared context, registry and executor."""

from fulfillment.handlers.context import HandlerContext, RunMetadata
from fulfillment.handlers.contract import DEFAULT_PRIORITY, EventHandler
from fulfillment.handlers.executor import HandlerExecutor
from fulfillment.handlers.registry import HandlerRegistry, RegistryStats, apply_overrides
from fulfillment.handlers.results import ExecutionStats, HandlerExecutionResult

__all__ = [
    "DEFAULT_PRIORITY",
    "EventHandler",
    "ExecutionStats",
    "HandlerContext",
    "HandlerExecutionResult",
    "HandlerExecutor",
    "HandlerRegistry",
    "RegistryStats",
    "RunMetadata",
    "apply_overrides",
]
