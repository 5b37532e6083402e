"""Handlers run for SALE_CREATED (a sale reached the approved payment state).

Order by priority: trace (1), shipping (20), shipping labels (25),
spreadsheet (30), invoice pending (40).
"""

from pathlib import Path
from typing import Any, Callable

from fulfillment.handlers.contract import EventHandler
from fulfillment.handlers.registry import apply_overrides
from fulfillment.handlers.sale_created.invoice import InvoicePendingHandler
from fulfillment.handlers.sale_created.labels import ShippingLabelsHandler
from fulfillment.handlers.sale_created.models import (
    INVOICE_PENDING_HANDLER,
    LABELS_HANDLER,
    SHIPPING_HANDLER,
    SPREADSHEET_HANDLER,
    TRACE_HANDLER,
    InvoicePendingData,
    LabelsData,
    ShippingData,
    SkipReasons,
    SpreadsheetData,
    TraceData,
)
from fulfillment.handlers.sale_created.shipping import ShippingHandler
from fulfillment.handlers.sale_created.spreadsheet import SpreadsheetHandler, build_sales_rows
from fulfillment.handlers.sale_created.trace import TraceHandler
from fulfillment.services.carrier import CarrierClient
from fulfillment.services.file_transfer import FileTransferClient
from fulfillment.services.store import SaleStore
from fulfillment.settings import get_setting


def build_sale_created_handlers(
    settings: dict[str, Any],
    *,
    store: SaleStore,
    carrier: CarrierClient,
    file_transfer: Callable[[], FileTransferClient],
) -> list[EventHandler]:
    """Instantiate the SALE_CREATED pipeline with settings and per-handler overrides applied."""
    temp_dir = Path(get_setting(settings, "file_transfer.temp_dir", "data/temp"))
    handlers: list[EventHandler] = [
        TraceHandler(),
        ShippingHandler(
            carrier,
            store,
            contract=get_setting(settings, "carrier.contract", ""),
            client_code=get_setting(settings, "carrier.client_code", ""),
        ),
        ShippingLabelsHandler(
            carrier,
            file_transfer,
            labels_dir=get_setting(settings, "file_transfer.labels_dir", "/Tekno/Andreani"),
            temp_dir=temp_dir / "labels",
        ),
        SpreadsheetHandler(
            store,
            file_transfer,
            remote_path=get_setting(settings, "file_transfer.spreadsheet_path", "/Tekno/Pedido/Ventas.xlsx"),
            temp_dir=temp_dir,
        ),
        InvoicePendingHandler(store),
    ]
    return apply_overrides(handlers, get_setting(settings, "handlers", {}))


__all__ = [
    "INVOICE_PENDING_HANDLER",
    "LABELS_HANDLER",
    "SHIPPING_HANDLER",
    "SPREADSHEET_HANDLER",
    "TRACE_HANDLER",
    "InvoicePendingData",
    "InvoicePendingHandler",
    "LabelsData",
    "ShippingData",
    "ShippingHandler",
    "ShippingLabelsHandler",
    "SkipReasons",
    "SpreadsheetData",
    "SpreadsheetHandler",
    "TraceData",
    "TraceHandler",
    "build_sale_created_handlers",
    "build_sales_rows",
]
