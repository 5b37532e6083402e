"""Tests for SaleStore: sale documents, append-only audit log and pending invoices."""

import pytest

from fulfillment.errors import SaleNotFoundError
from fulfillment.handlers.results import ExecutionStats, HandlerExecutionResult
from fulfillment.sales.models import Shipment
from fulfillment.services.store import SaleStore


def _stats() -> ExecutionStats:
    return ExecutionStats.from_results(
        [
            HandlerExecutionResult("trace-handler", True, 3, data_added={"trace-handler": {"ok": 1}}),
            HandlerExecutionResult("shipping-handler", False, 40, error="HTTP 500"),
        ],
        45,
    )


class TestSales:
    @pytest.mark.asyncio
    async def test_save_and_get_roundtrip(self, store: SaleStore, sale_factory) -> None:
        sale = sale_factory(sale_id=1)
        await store.save_sale(sale)
        loaded = await store.get_sale(1)
        assert loaded == sale

    @pytest.mark.asyncio
    async def test_missing_sale(self, store: SaleStore) -> None:
        assert await store.get_sale(999) is None
        with pytest.raises(SaleNotFoundError, match="#999"):
            await store.require_sale(999)

    @pytest.mark.asyncio
    async def test_update_payment_state_appends_notes(self, store: SaleStore, sale_factory) -> None:
        await store.save_sale(sale_factory(sale_id=2, observaciones="Tipo: envio"))
        updated = await store.update_payment_state(2, "aprobado", "transfer ok")
        assert updated.estado_pago == "aprobado"
        assert updated.observaciones == "Tipo: envio\n[Pago confirmado] transfer ok"
        assert (await store.get_sale(2)).estado_pago == "aprobado"

    @pytest.mark.asyncio
    async def test_adjust_stock_decrements_products(self, store: SaleStore, sale_factory) -> None:
        await store.save_sale(sale_factory(sale_id=3, stock=10, quantities=(2, 3)))
        updated = await store.adjust_stock(3, sign=-1)
        assert [d.producto.stock for d in updated.detalles] == [8, 7]

    @pytest.mark.asyncio
    async def test_set_shipment(self, store: SaleStore, sale_factory) -> None:
        await store.save_sale(sale_factory(sale_id=4))
        await store.set_shipment(4, Shipment(cod_seguimiento="360000999", empresa_envio="Andreani"))
        assert (await store.get_sale(4)).tracking_number == "360000999"


class TestAuditLog:
    @pytest.mark.asyncio
    async def test_append_and_list(self, store: SaleStore) -> None:
        await store.append_audit_record(
            event_type="SALE_CREATED",
            payload={"id_venta": 1},
            stats=_stats(),
            context_snapshot={"trace-handler": {"ok": 1}},
            source="event-bus",
            triggered_by="system",
        )
        (record,) = await store.list_audit_records()
        assert record.event_type == "SALE_CREATED"
        assert record.payload == {"id_venta": 1}
        assert (record.handlers_executed, record.handlers_succeeded, record.handlers_failed) == (2, 1, 1)
        assert record.total_duration_ms == 45
        assert record.results[0] == {
            "handler": "trace-handler",
            "success": True,
            "duration": 3,
            "dataAdded": {"trace-handler": {"ok": 1}},
        }
        assert record.results[1]["error"] == "HTTP 500"
        assert record.context == {"trace-handler": {"ok": 1}}
        assert record.source == "event-bus"

    @pytest.mark.asyncio
    async def test_list_newest_first_and_filter(self, store: SaleStore) -> None:
        for event_type, sale_id in (("SALE_CREATED", 1), ("ORDER_SHIPPED", 2), ("SALE_CREATED", 3)):
            await store.append_audit_record(
                event_type, {"id_venta": sale_id}, _stats(), {}, "event-bus", "system"
            )
        records = await store.list_audit_records("SALE_CREATED")
        assert [r.payload["id_venta"] for r in records] == [3, 1]
        assert len(await store.list_audit_records(limit=2)) == 2


class TestPendingInvoices:
    @pytest.mark.asyncio
    async def test_create_is_idempotent(self, store: SaleStore) -> None:
        first = await store.create_pending_invoice(10)
        second = await store.create_pending_invoice(10)
        assert first.id == second.id
        assert first.estado == "pendiente"
        assert first.intentos == 0
        assert first.factura_encontrada is False

    @pytest.mark.asyncio
    async def test_get_missing(self, store: SaleStore) -> None:
        assert await store.get_pending_invoice(11) is None
