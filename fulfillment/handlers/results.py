"""Per-handler results and per-run statistics produced by the executor."""

from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class HandlerExecutionResult:
    """Outcome of one handler in one run."""

    handler: str
    success: bool
    duration_ms: int
    error: str | None = None
    # Keys added or changed in handler_data during this handler's execution.
    data_added: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the audit record; absent fields are omitted."""
        out: dict[str, Any] = {
            "handler": self.handler,
            "success": self.success,
            "duration": self.duration_ms,
        }
        if self.error is not None:
            out["error"] = self.error
        if self.data_added:
            out["dataAdded"] = self.data_added
        return out


@dataclass(frozen=True)
class ExecutionStats:
    """Aggregate of one pipeline run. The only object written to the audit record."""

    handlers_executed: int
    handlers_succeeded: int
    handlers_failed: int
    total_duration_ms: int
    handler_results: list[HandlerExecutionResult] = field(default_factory=list)

    @classmethod
    def from_results(
        cls, results: list[HandlerExecutionResult], total_duration_ms: int
    ) -> "ExecutionStats":
        succeeded = sum(1 for r in results if r.success)
        return cls(
            handlers_executed=len(results),
            handlers_succeeded=succeeded,
            handlers_failed=len(results) - succeeded,
            total_duration_ms=total_duration_ms,
            handler_results=list(results),
        )

    def result_for(self, handler_name: str) -> HandlerExecutionResult | None:
        return next((r for r in self.handler_results if r.handler == handler_name), None)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["handler_results"] = [r.to_dict() for r in self.handler_results]
        return data
