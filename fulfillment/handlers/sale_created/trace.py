"""First step of every sale run: confirms the pipeline started and records what it received."""

import logging
from typing import Any

from fulfillment.events.topics import EventTypes
from fulfillment.handlers.context import HandlerContext
from fulfillment.handlers.contract import EventHandler
from fulfillment.handlers.sale_created.models import TRACE_HANDLER, TraceData
from fulfillment.sales.models import SaleCreatedPayload

logger = logging.getLogger(__name__)


class TraceHandler(EventHandler):
    name = TRACE_HANDLER
    event_type = EventTypes.SALE_CREATED
    description = "Logs the sale that started the pipeline"
    default_priority = 1
    data_model = TraceData

    async def execute(self, payload: Any, context: HandlerContext) -> None:
        event = SaleCreatedPayload.coerce(payload)
        line_items = len(event.venta.detalles) if event.venta else 0
        logger.info(
            "Sale #%d entered pipeline (estado_pago=%s, fecha=%s, line_items=%d)",
            event.id_venta,
            event.estado_pago,
            event.fecha,
            line_items,
        )
        self.publish(
            context,
            TraceData(
                id_venta=event.id_venta,
                estado_pago=event.estado_pago,
                fecha=event.fecha,
                line_items=line_items,
            ),
        )
