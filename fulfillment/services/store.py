"""SQLite store for sales, pipeline audit records and pending invoices."""

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite

from fulfillment.errors import SaleNotFoundError
from fulfillment.sales.models import Sale, Shipment

if TYPE_CHECKING:
    from fulfillment.handlers.results import ExecutionStats

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS sales (
    id_venta        INTEGER PRIMARY KEY,
    estado_pago     TEXT    NOT NULL,
    document        TEXT    NOT NULL,
    created_at      REAL    NOT NULL,
    updated_at      REAL    NOT NULL
);

CREATE TABLE IF NOT EXISTS event_logs (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type          TEXT    NOT NULL,
    payload             TEXT    NOT NULL,
    handlers_executed   INTEGER NOT NULL DEFAULT 0,
    handlers_succeeded  INTEGER NOT NULL DEFAULT 0,
    handlers_failed     INTEGER NOT NULL DEFAULT 0,
    total_duration_ms   INTEGER,
    handler_results     TEXT,
    source              TEXT,
    triggered_by        TEXT,
    created_at          REAL    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_event_logs_type ON event_logs(event_type);
CREATE INDEX IF NOT EXISTS idx_event_logs_date ON event_logs(created_at);

CREATE TABLE IF NOT EXISTS pending_invoices (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    venta_id            INTEGER NOT NULL UNIQUE,
    estado              TEXT    NOT NULL DEFAULT 'pendiente',
    intentos            INTEGER NOT NULL DEFAULT 0,
    factura_encontrada  INTEGER NOT NULL DEFAULT 0,
    error_mensaje       TEXT,
    created_at          REAL    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_pending_invoices_estado ON pending_invoices(estado);
"""


@dataclass(frozen=True)
class AuditRecord:
    """One row of event_logs, decoded."""

    id: int
    event_type: str
    payload: Any
    handlers_executed: int
    handlers_succeeded: int
    handlers_failed: int
    total_duration_ms: int | None
    results: list[dict[str, Any]]
    context: dict[str, Any]
    source: str | None
    triggered_by: str | None
    created_at: float


@dataclass(frozen=True)
class PendingInvoice:
    id: int
    venta_id: int
    estado: str
    intentos: int
    factura_encontrada: bool
    created_at: float


def _row_to_audit_record(row: tuple) -> AuditRecord:
    handler_results = json.loads(row[7]) if row[7] else {}
    return AuditRecord(
        id=row[0],
        event_type=row[1],
        payload=json.loads(row[2]),
        handlers_executed=row[3],
        handlers_succeeded=row[4],
        handlers_failed=row[5],
        total_duration_ms=row[6],
        results=handler_results.get("results", []),
        context=handler_results.get("context", {}),
        source=row[8],
        triggered_by=row[9],
        created_at=row[10],
    )


class SaleStore:
    """SQLite-backed store. One connection per instance, opened lazily."""

    def __init__(self, db_path: Path, busy_timeout: int = 5000) -> None:
        self._db_path = db_path
        self._busy_timeout = busy_timeout
        self._conn: aiosqlite.Connection | None = None

    async def _ensure_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = await aiosqlite.connect(str(self._db_path))
            await self._conn.execute("PRAGMA journal_mode=WAL")
            await self._conn.execute("PRAGMA synchronous=NORMAL")
            await self._conn.execute(f"PRAGMA busy_timeout={self._busy_timeout}")
            await self._conn.executescript(_SCHEMA)
            await self._conn.commit()
        return self._conn

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    # --- sales ---

    async def save_sale(self, sale: Sale) -> None:
        """Insert or replace the full sale document."""
        conn = await self._ensure_conn()
        now = time.time()
        await conn.execute(
            """
            INSERT INTO sales (id_venta, estado_pago, document, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id_venta) DO UPDATE SET
                estado_pago = excluded.estado_pago,
                document = excluded.document,
                updated_at = excluded.updated_at
            """,
            (sale.id_venta, sale.estado_pago, sale.model_dump_json(), now, now),
        )
        await conn.commit()

    async def get_sale(self, sale_id: int) -> Sale | None:
        conn = await self._ensure_conn()
        cursor = await conn.execute("SELECT document FROM sales WHERE id_venta = ?", (sale_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return Sale.model_validate_json(row[0])

    async def require_sale(self, sale_id: int) -> Sale:
        sale = await self.get_sale(sale_id)
        if sale is None:
            raise SaleNotFoundError(sale_id)
        return sale

    async def update_payment_state(self, sale_id: int, state: str, notes: str | None = None) -> Sale:
        """Set estado_pago (and append notes to observaciones). Returns the updated sale."""
        sale = await self.require_sale(sale_id)
        update: dict[str, Any] = {"estado_pago": state}
        if notes:
            update["observaciones"] = f"{sale.observaciones or ''}\n[Pago confirmado] {notes}".strip()
        updated = sale.model_copy(update=update)
        await self.save_sale(updated)
        return updated

    async def set_shipment(self, sale_id: int, shipment: Shipment) -> Sale:
        sale = await self.require_sale(sale_id)
        updated = sale.model_copy(update={"envio": shipment})
        await self.save_sale(updated)
        return updated

    async def adjust_stock(self, sale_id: int, sign: int = -1) -> Sale:
        """Move each line item's product stock by sign * cantidad inside the sale document."""
        sale = await self.require_sale(sale_id)
        detalles = []
        for item in sale.detalles:
            if item.producto is not None and item.cantidad > 0:
                producto = item.producto.model_copy(
                    update={"stock": item.producto.stock + sign * item.cantidad}
                )
                item = item.model_copy(update={"producto": producto})
            detalles.append(item)
        updated = sale.model_copy(update={"detalles": detalles})
        await self.save_sale(updated)
        return updated

    # --- audit ---

    async def append_audit_record(
        self,
        event_type: str,
        payload: Any,
        stats: "ExecutionStats",
        context_snapshot: dict[str, Any],
        source: str,
        triggered_by: str,
    ) -> None:
        """Append one event_logs row. Never updates existing rows."""
        conn = await self._ensure_conn()
        handler_results = {
            "results": [r.to_dict() for r in stats.handler_results],
            "context": context_snapshot,
        }
        await conn.execute(
            """
            INSERT INTO event_logs (event_type, payload, handlers_executed, handlers_succeeded,
                handlers_failed, total_duration_ms, handler_results, source, triggered_by, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event_type,
                json.dumps(payload, ensure_ascii=False, default=str),
                stats.handlers_executed,
                stats.handlers_succeeded,
                stats.handlers_failed,
                stats.total_duration_ms,
                json.dumps(handler_results, ensure_ascii=False, default=str),
                source,
                triggered_by,
                time.time(),
            ),
        )
        await conn.commit()

    async def list_audit_records(
        self, event_type: str | None = None, limit: int = 50
    ) -> list[AuditRecord]:
        """Most recent audit records first."""
        conn = await self._ensure_conn()
        query = (
            "SELECT id, event_type, payload, handlers_executed, handlers_succeeded, handlers_failed, "
            "total_duration_ms, handler_results, source, triggered_by, created_at FROM event_logs"
        )
        params: list[Any] = []
        if event_type is not None:
            query += " WHERE event_type = ?"
            params.append(event_type)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)
        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()
        return [_row_to_audit_record(row) for row in rows]

    # --- pending invoices ---

    async def get_pending_invoice(self, sale_id: int) -> PendingInvoice | None:
        conn = await self._ensure_conn()
        cursor = await conn.execute(
            "SELECT id, venta_id, estado, intentos, factura_encontrada, created_at "
            "FROM pending_invoices WHERE venta_id = ?",
            (sale_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return PendingInvoice(
            id=row[0],
            venta_id=row[1],
            estado=row[2],
            intentos=row[3],
            factura_encontrada=bool(row[4]),
            created_at=row[5],
        )

    async def create_pending_invoice(self, sale_id: int) -> PendingInvoice:
        """Create the pending row; returns the existing one if already present."""
        conn = await self._ensure_conn()
        await conn.execute(
            """
            INSERT INTO pending_invoices (venta_id, estado, intentos, factura_encontrada, created_at)
            VALUES (?, 'pendiente', 0, 0, ?)
            ON CONFLICT(venta_id) DO NOTHING
            """,
            (sale_id, time.time()),
        )
        await conn.commit()
        record = await self.get_pending_invoice(sale_id)
        if record is None:
            raise RuntimeError(f"pending invoice for sale #{sale_id} vanished after insert")
        return record
