"""Marks a sale as awaiting its invoice once it is in the sales spreadsheet."""

import logging
from typing import Any

from fulfillment.events.topics import EventTypes
from fulfillment.handlers.context import HandlerContext
from fulfillment.handlers.contract import EventHandler
from fulfillment.handlers.sale_created.models import (
    INVOICE_PENDING_HANDLER,
    SPREADSHEET_HANDLER,
    InvoicePendingData,
    SkipReasons,
    SpreadsheetData,
)
from fulfillment.sales.models import SaleCreatedPayload
from fulfillment.services.store import SaleStore

logger = logging.getLogger(__name__)


class InvoicePendingHandler(EventHandler):
    name = INVOICE_PENDING_HANDLER
    event_type = EventTypes.SALE_CREATED
    description = "Registers the sale as pending invoice after the spreadsheet update"
    default_priority = 40
    data_model = InvoicePendingData

    def __init__(self, store: SaleStore, *, priority: int | None = None, enabled: bool | None = None) -> None:
        super().__init__(priority=priority, enabled=enabled)
        self._store = store

    async def execute(self, payload: Any, context: HandlerContext) -> None:
        event = SaleCreatedPayload.coerce(payload)
        spreadsheet = context.read(SPREADSHEET_HANDLER, SpreadsheetData)
        if spreadsheet is None or not spreadsheet.success:
            logger.warning("Sale #%d: spreadsheet step did not succeed, not marking invoice", event.id_venta)
            self.publish(
                context,
                InvoicePendingData(success=False, skipped=True, reason=SkipReasons.SPREADSHEET_FAILED),
            )
            return

        existing = await self._store.get_pending_invoice(event.id_venta)
        if existing is not None:
            logger.info("Sale #%d already pending invoice (record %d)", event.id_venta, existing.id)
            self.publish(context, InvoicePendingData(record_id=existing.id, already_exists=True))
            return

        record = await self._store.create_pending_invoice(event.id_venta)
        self.publish(context, InvoicePendingData(record_id=record.id))
        logger.info("Sale #%d marked pending invoice (record %d)", event.id_venta, record.id)
