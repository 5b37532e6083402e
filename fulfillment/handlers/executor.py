"""HandlerExecutor: turns one event occurrence into a completed, audited pipeline run.

- initialize() subscribes one bus listener per event type with enabled handlers,
  except the sync-only types, which are driven through run_handlers_and_emit().
- execute_handlers() gates, filters, orders and runs handlers strictly one after
  another, isolates each failure and persists a single audit record.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Iterable, Mapping, Protocol

from fulfillment.errors import HandlerTimeoutError
from fulfillment.events.bus import EventBus
from fulfillment.events.models import Event
from fulfillment.events.topics import EventTypes, PaymentStates
from fulfillment.handlers.context import (
    DEFAULT_SOURCE,
    DEFAULT_TRIGGERED_BY,
    HandlerContext,
    RunMetadata,
    context_diff,
    to_jsonable,
)
from fulfillment.handlers.contract import EventHandler
from fulfillment.handlers.registry import HandlerRegistry
from fulfillment.handlers.results import ExecutionStats, HandlerExecutionResult

logger = logging.getLogger(__name__)

SUBSCRIBER_ID = "handler-executor"

# Event types whose downstream notification must wait for the pipeline result.
SYNC_ONLY_EVENT_TYPES: frozenset[str] = frozenset({EventTypes.SALE_CREATED})

Gate = Callable[[Any], bool]


class AuditSink(Protocol):
    """Persistence collaborator: one append per completed run."""

    async def append_audit_record(
        self,
        event_type: str,
        payload: Any,
        stats: ExecutionStats,
        context_snapshot: dict[str, Any],
        source: str,
        triggered_by: str,
    ) -> None: ...


def payload_field(payload: Any, name: str) -> Any:
    """Read a field from a dict payload or an attribute-style payload."""
    if isinstance(payload, Mapping):
        return payload.get(name)
    return getattr(payload, name, None)


def sale_approved_gate(payload: Any) -> bool:
    """SALE_CREATED only runs for approved payments; any other state is a no-op."""
    return payload_field(payload, "estado_pago") == PaymentStates.APPROVED


DEFAULT_GATES: dict[str, Gate] = {EventTypes.SALE_CREATED: sale_approved_gate}


def _elapsed_ms(start: float) -> int:
    return int(round((time.perf_counter() - start) * 1000))


class HandlerExecutor:
    """Fault-isolated, priority-ordered execution engine over a HandlerRegistry."""

    def __init__(
        self,
        registry: HandlerRegistry,
        event_bus: EventBus,
        audit_sink: AuditSink | None = None,
        *,
        sync_only_event_types: Iterable[str] = SYNC_ONLY_EVENT_TYPES,
        gates: Mapping[str, Gate] | None = None,
        handler_timeout: float | None = None,
        source: str = DEFAULT_SOURCE,
        triggered_by: str = DEFAULT_TRIGGERED_BY,
    ) -> None:
        self._registry = registry
        self._event_bus = event_bus
        self._audit_sink = audit_sink
        self._sync_only = frozenset(sync_only_event_types)
        self._gates = dict(DEFAULT_GATES if gates is None else gates)
        self._handler_timeout = handler_timeout
        self._source = source
        self._triggered_by = triggered_by
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    def initialize(self) -> None:
        """Subscribe bus listeners for every event type with enabled handlers. Call once at startup."""
        if self._initialized:
            logger.warning("HandlerExecutor already initialized; ignoring second call")
            return

        for event_type in self._registry.event_types():
            enabled = [h for h in self._registry.handlers_for(event_type) if h.enabled]
            if not enabled:
                continue
            if event_type in self._sync_only:
                logger.info(
                    "HandlerExecutor: event %r runs via run_handlers_and_emit (no listener)",
                    event_type,
                )
                continue
            self._event_bus.subscribe(event_type, self._make_listener(event_type), SUBSCRIBER_ID)
            logger.info(
                "HandlerExecutor: subscribed event %r with %d handler(s)", event_type, len(enabled)
            )

        self._initialized = True
        stats = self._registry.stats()
        logger.info(
            "HandlerExecutor initialized: %d event type(s), %d handler(s) total",
            stats.total_events,
            stats.total_handlers,
        )

    def _make_listener(self, event_type: str) -> Callable[[Event], Any]:
        async def listener(event: Event) -> None:
            await self.execute_handlers(event_type, event.payload)

        return listener

    async def run_handlers_and_emit(self, event_type: str, payload: Any) -> ExecutionStats | None:
        """Run the whole pipeline, then notify independent bus subscribers of the same event."""
        if event_type not in self._sync_only:
            logger.warning(
                "run_handlers_and_emit called for %r, which also has a bus listener; "
                "its pipeline will run again on delivery",
                event_type,
            )
        stats = await self.execute_handlers(event_type, payload)
        await self._event_bus.publish(event_type, self._source, payload)
        return stats

    async def execute_handlers(self, event_type: str, payload: Any) -> ExecutionStats | None:
        """Run all enabled handlers for event_type. Returns None when the run is skipped."""
        gate = self._gates.get(event_type)
        if gate is not None and not gate(payload):
            logger.info(
                "HandlerExecutor: %s skipped by gate (estado_pago=%r)",
                event_type,
                payload_field(payload, "estado_pago"),
            )
            return None

        start = time.perf_counter()
        handlers = [h for h in self._registry.handlers_for(event_type) if h.enabled]
        if not handlers:
            logger.info("HandlerExecutor: event %r has no enabled handlers", event_type)
            return None

        # sorted() is stable: equal priorities keep registration order.
        handlers = sorted(handlers, key=lambda h: h.priority)

        context = HandlerContext(
            metadata=RunMetadata.now(event_type, source=self._source, triggered_by=self._triggered_by)
        )
        logger.info("HandlerExecutor: running %d handler(s) for %r", len(handlers), event_type)

        results: list[HandlerExecutionResult] = []
        for handler in handlers:
            results.append(await self._run_one(handler, payload, context))

        stats = ExecutionStats.from_results(results, _elapsed_ms(start))
        await self._log_event_execution(event_type, payload, stats, context)
        logger.info(
            "HandlerExecutor: %r done: %d succeeded, %d failed (%dms)",
            event_type,
            stats.handlers_succeeded,
            stats.handlers_failed,
            stats.total_duration_ms,
        )
        return stats

    async def _run_one(
        self, handler: EventHandler, payload: Any, context: HandlerContext
    ) -> HandlerExecutionResult:
        before = context.snapshot()
        started = time.perf_counter()
        try:
            if self._handler_timeout is None:
                await handler.execute(payload, context)
            else:
                await self._execute_with_timeout(handler, payload, context)
        except Exception as e:
            duration = _elapsed_ms(started)
            message = str(e) or e.__class__.__name__
            logger.error(
                "Handler %r failed: %s", handler.name, message,
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            return HandlerExecutionResult(
                handler=handler.name, success=False, duration_ms=duration, error=message
            )

        duration = _elapsed_ms(started)
        added = context_diff(before, context.snapshot())
        logger.info("Handler %r succeeded (%dms)", handler.name, duration)
        return HandlerExecutionResult(
            handler=handler.name,
            success=True,
            duration_ms=duration,
            data_added=added or None,
        )

    async def _execute_with_timeout(
        self, handler: EventHandler, payload: Any, context: HandlerContext
    ) -> None:
        task = asyncio.ensure_future(handler.execute(payload, context))
        try:
            done, _ = await asyncio.wait({task}, timeout=self._handler_timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise
        if not done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise HandlerTimeoutError(f"timed out after {self._handler_timeout}s")
        # A TimeoutError raised by the handler itself surfaces here with its own message
        task.result()

    async def _log_event_execution(
        self,
        event_type: str,
        payload: Any,
        stats: ExecutionStats,
        context: HandlerContext,
    ) -> None:
        """Persist the audit record. Failures are logged, never raised."""
        if self._audit_sink is None:
            return
        try:
            await self._audit_sink.append_audit_record(
                event_type=event_type,
                payload=to_jsonable(payload),
                stats=stats,
                context_snapshot=context.snapshot(),
                source=context.metadata.source,
                triggered_by=context.metadata.triggered_by,
            )
        except Exception as e:
            logger.exception("HandlerExecutor: failed to write audit record for %r: %s", event_type, e)
