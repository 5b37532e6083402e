"""Tests for PaymentConfirmationService and OrderConfirmationListener."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from fulfillment.errors import InsufficientStockError, InvalidSaleStateError, MailError, SaleNotFoundError
from fulfillment.events import EventBus, EventTypes
from fulfillment.events.models import Event
from fulfillment.handlers.context import HandlerContext
from fulfillment.handlers.contract import EventHandler
from fulfillment.handlers.executor import HandlerExecutor
from fulfillment.handlers.registry import HandlerRegistry
from fulfillment.sales.confirmation import PaymentConfirmationService, validate_stock
from fulfillment.sales.models import PaymentData, SaleCreatedPayload, Shipment
from fulfillment.sales.notifications import OrderConfirmationListener
from fulfillment.services.store import SaleStore


class PersistTracking(EventHandler):
    """Stands in for the shipping step: persists a tracking number on the sale."""

    name = "shipping-handler"
    event_type = EventTypes.SALE_CREATED

    def __init__(self, store: SaleStore) -> None:
        super().__init__(priority=20)
        self.store = store
        self.payloads: list[SaleCreatedPayload] = []

    async def execute(self, payload: Any, context: HandlerContext) -> None:
        self.payloads.append(payload)
        await self.store.set_shipment(payload.id_venta, Shipment(cod_seguimiento="360000777"))
        context.publish(self.name, {"tracking_number": "360000777"})


def _mail() -> MagicMock:
    mail = MagicMock()
    mail.render = MagicMock(return_value="<html/>")
    mail.send = AsyncMock(return_value="<msg>")
    return mail


@pytest.fixture
async def bus() -> EventBus:
    event_bus = EventBus()
    await event_bus.start()
    yield event_bus
    await event_bus.stop()


def _service(store: SaleStore, bus: EventBus) -> tuple[PaymentConfirmationService, PersistTracking]:
    handler = PersistTracking(store)
    executor = HandlerExecutor(HandlerRegistry.from_handlers([handler]), bus, store)
    executor.initialize()
    return PaymentConfirmationService(store, executor), handler


class TestConfirmPayment:
    @pytest.mark.asyncio
    async def test_approves_adjusts_stock_and_runs_pipeline(self, store, bus, sale_factory) -> None:
        await store.save_sale(sale_factory(sale_id=1, stock=5, quantities=(2,)))
        service, handler = _service(store, bus)

        sale = await service.confirm_payment(1, PaymentData(notas="transferencia recibida"))

        assert sale.estado_pago == "aprobado"
        assert sale.detalles[0].producto.stock == 3
        assert sale.tracking_number == "360000777"
        assert "[Pago confirmado] transferencia recibida" in sale.observaciones
        (payload,) = handler.payloads
        assert payload.estado_pago == "aprobado"
        assert payload.venta.id_venta == 1
        assert payload.payment_data.notas == "transferencia recibida"
        (record,) = await store.list_audit_records(EventTypes.SALE_CREATED)
        assert record.handlers_succeeded == 1

    @pytest.mark.asyncio
    async def test_already_approved_is_idempotent(self, store, bus, sale_factory) -> None:
        await store.save_sale(sale_factory(sale_id=2, estado_pago="aprobado", stock=5))
        service, handler = _service(store, bus)
        sale = await service.confirm_payment(2)
        assert sale.detalles[0].producto.stock == 5
        assert handler.payloads == []
        assert await store.list_audit_records() == []

    @pytest.mark.asyncio
    async def test_cancelled_sale_rejected(self, store, bus, sale_factory) -> None:
        await store.save_sale(sale_factory(sale_id=3, estado_pago="cancelado"))
        service, _ = _service(store, bus)
        with pytest.raises(InvalidSaleStateError, match="cancelled"):
            await service.confirm_payment(3)

    @pytest.mark.asyncio
    async def test_insufficient_stock_leaves_sale_untouched(self, store, bus, sale_factory) -> None:
        await store.save_sale(sale_factory(sale_id=4, stock=1, quantities=(2,)))
        service, handler = _service(store, bus)
        with pytest.raises(InsufficientStockError):
            await service.confirm_payment(4)
        stored = await store.get_sale(4)
        assert stored.estado_pago == "pendiente"
        assert stored.detalles[0].producto.stock == 1
        assert handler.payloads == []

    @pytest.mark.asyncio
    async def test_unknown_sale(self, store, bus) -> None:
        service, _ = _service(store, bus)
        with pytest.raises(SaleNotFoundError):
            await service.confirm_payment(404)

    @pytest.mark.asyncio
    async def test_listener_sees_tracking_number(self, store, bus, sale_factory) -> None:
        await store.save_sale(sale_factory(sale_id=5))
        service, _ = _service(store, bus)
        mail = _mail()
        OrderConfirmationListener(store, mail, store_name="Tienda").subscribe(bus)

        await service.confirm_payment(5)
        await bus.wait_idle()

        mail.send.assert_awaited_once()
        assert mail.render.call_args.kwargs["tracking_number"] == "360000777"
        to_email, subject, _html = mail.send.await_args.args
        assert to_email == "ana@example.com"
        assert subject == "Confirmación de pedido #5 - Tienda"

    def test_validate_stock_requires_line_items(self, sale_factory) -> None:
        with pytest.raises(InsufficientStockError, match="no line items"):
            validate_stock(sale_factory(detalles=[]))


class TestOrderConfirmationListener:
    @pytest.mark.asyncio
    async def test_mail_failure_is_logged_not_raised(self, store, sale_factory, caplog) -> None:
        await store.save_sale(sale_factory(sale_id=6))
        mail = _mail()
        mail.send.side_effect = MailError("HTTP 401")
        listener = OrderConfirmationListener(store, mail)
        event = Event(
            id="e1",
            topic=EventTypes.SALE_CREATED,
            source="event-bus",
            payload={"id_venta": 6, "estado_pago": "aprobado", "fecha": "2026-03-14"},
            created_at=0.0,
        )
        await listener.on_sale_created(event)
        assert "Order confirmation email failed" in caplog.text

    @pytest.mark.asyncio
    async def test_customer_without_email_is_skipped(self, store, sale_factory) -> None:
        sale = sale_factory(sale_id=7)
        sale = sale.model_copy(update={"cliente": sale.cliente.model_copy(update={"email": None})})
        await store.save_sale(sale)
        mail = _mail()
        event = Event("e2", EventTypes.SALE_CREATED, "event-bus", {"id_venta": 7, "estado_pago": "aprobado", "fecha": "x"}, 0.0)
        await OrderConfirmationListener(store, mail).on_sale_created(event)
        mail.send.assert_not_awaited()
