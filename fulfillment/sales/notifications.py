"""Order confirmation email, sent when SALE_CREATED reaches bus subscribers.

The executor publishes SALE_CREATED only after the pipeline has finished, so the
tracking number persisted by the shipping step is already on the sale.
"""

import logging

from fulfillment.events.bus import EventBus
from fulfillment.events.models import Event
from fulfillment.events.topics import EventTypes
from fulfillment.sales.models import SaleCreatedPayload
from fulfillment.services.carrier import CARRIER_NAME
from fulfillment.services.mail import ORDER_CONFIRMED_TEMPLATE, MailClient
from fulfillment.services.store import SaleStore

logger = logging.getLogger(__name__)

SUBSCRIBER_ID = "order-confirmation-mail"


class OrderConfirmationListener:
    def __init__(self, store: SaleStore, mail: MailClient, *, store_name: str = "Tienda") -> None:
        self._store = store
        self._mail = mail
        self._store_name = store_name

    def subscribe(self, event_bus: EventBus) -> None:
        event_bus.subscribe(EventTypes.SALE_CREATED, self.on_sale_created, SUBSCRIBER_ID)

    async def on_sale_created(self, event: Event) -> None:
        try:
            await self._send(SaleCreatedPayload.coerce(event.payload).id_venta)
        except Exception:
            logger.exception("Order confirmation email failed for event %s", event.id)

    async def _send(self, sale_id: int) -> None:
        sale = await self._store.require_sale(sale_id)
        cliente = sale.cliente
        if cliente is None or not cliente.email:
            logger.info("Sale #%d has no customer email, confirmation not sent", sale_id)
            return
        html = self._mail.render(
            ORDER_CONFIRMED_TEMPLATE,
            sale=sale,
            customer_name=cliente.nombre or "Cliente",
            tracking_number=sale.tracking_number,
            carrier=(sale.envio.empresa_envio if sale.envio else None) or CARRIER_NAME,
            store_name=self._store_name,
        )
        message_id = await self._mail.send(
            cliente.email,
            f"Confirmación de pedido #{sale.id_venta} - {self._store_name}",
            html,
            to_name=cliente.full_name or None,
            tags=["order-confirmed"],
        )
        logger.info(
            "Order confirmation for sale #%d sent to %s (message %s, tracking=%s)",
            sale_id,
            cliente.email,
            message_id,
            sale.tracking_number or "none",
        )
