"""Creates the carrier pre-shipment for a sale and records the tracking number."""

import logging
from typing import Any

from fulfillment.errors import FulfillmentError, InvalidSaleStateError
from fulfillment.events.topics import EventTypes
from fulfillment.handlers.context import HandlerContext
from fulfillment.handlers.contract import EventHandler
from fulfillment.handlers.sale_created.models import SHIPPING_HANDLER, ShippingData, SkipReasons
from fulfillment.sales.models import SaleCreatedPayload, Shipment
from fulfillment.services.carrier import CARRIER_NAME, CarrierClient, build_order_request
from fulfillment.services.store import SaleStore

logger = logging.getLogger(__name__)


class ShippingHandler(EventHandler):
    name = SHIPPING_HANDLER
    event_type = EventTypes.SALE_CREATED
    description = "Creates the carrier pre-shipment when a sale is approved"
    default_priority = 20
    data_model = ShippingData

    def __init__(
        self,
        carrier: CarrierClient,
        store: SaleStore,
        *,
        contract: str,
        client_code: str = "",
        priority: int | None = None,
        enabled: bool | None = None,
    ) -> None:
        super().__init__(priority=priority, enabled=enabled)
        self._carrier = carrier
        self._store = store
        self._contract = contract
        self._client_code = client_code

    async def execute(self, payload: Any, context: HandlerContext) -> None:
        event = SaleCreatedPayload.coerce(payload)
        sale = await self._store.get_sale(event.id_venta) or event.venta
        if sale is None:
            logger.warning("Sale #%d: no sale document, skipping pre-shipment", event.id_venta)
            self.publish(
                context, ShippingData(success=False, skipped=True, reason=SkipReasons.NO_SALE_DATA)
            )
            return
        if sale.is_store_pickup:
            logger.info("Sale #%d is a store pickup, no pre-shipment", sale.id_venta)
            self.publish(context, ShippingData(skipped=True, reason=SkipReasons.STORE_PICKUP))
            return

        try:
            if sale.tracking_number:
                raise InvalidSaleStateError(
                    f"Sale #{sale.id_venta} already has tracking number {sale.tracking_number}"
                )
            order = build_order_request(sale, self._contract, self._client_code)
            response = await self._carrier.create_pre_shipment(order)
        except FulfillmentError as e:
            logger.error("Sale #%d: pre-shipment failed: %s", sale.id_venta, e)
            self.publish(context, ShippingData(success=False, error=str(e)))
            return

        tracking = response.tracking_number
        self.publish(
            context,
            ShippingData(
                tracking_number=tracking,
                bundle_grouper=response.agrupador_de_bultos,
                state=response.estado,
                response=response.model_dump(mode="json", by_alias=True),
            ),
        )
        logger.info(
            "Sale #%d: pre-shipment created (tracking=%s, state=%s, packages=%d)",
            sale.id_venta,
            tracking or "N/A",
            response.estado or "N/A",
            len(response.bultos),
        )
        if tracking:
            shipment = Shipment(
                cod_seguimiento=tracking, empresa_envio=CARRIER_NAME, estado_envio=response.estado
            )
            try:
                await self._store.set_shipment(sale.id_venta, shipment)
            except FulfillmentError as e:
                logger.warning("Sale #%d: tracking number not persisted: %s", sale.id_venta, e)
