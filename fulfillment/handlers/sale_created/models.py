"""Data each SALE_CREATED handler publishes under its own name in the context."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

TRACE_HANDLER = "trace-handler"
SHIPPING_HANDLER = "shipping-handler"
LABELS_HANDLER = "shipping-labels-handler"
SPREADSHEET_HANDLER = "spreadsheet-handler"
INVOICE_PENDING_HANDLER = "invoice-pending-handler"


class SkipReasons:
    NO_SALE_DATA = "no_sale_data"
    STORE_PICKUP = "store_pickup"
    NO_SHIPPING_DATA = "no_shipping_data"
    NO_PACKAGES = "no_packages"
    SHIPPING_FAILED = "shipping_failed"
    NO_LINE_ITEMS = "no_line_items"
    SPREADSHEET_FAILED = "spreadsheet_failed"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StepOutcome(BaseModel):
    """Common fields: a step either succeeded, was skipped with a reason, or failed with an error."""

    success: bool = True
    skipped: bool = False
    reason: str | None = None
    error: str | None = None
    processed_at: str = Field(default_factory=utc_now)


class TraceData(BaseModel):
    id_venta: int
    estado_pago: str
    fecha: str
    line_items: int = 0
    message: str = "pipeline started"
    processed_at: str = Field(default_factory=utc_now)


class ShippingData(StepOutcome):
    tracking_number: str | None = None
    bundle_grouper: str | None = None
    state: str | None = None
    # Full carrier response as returned by the API (camelCase keys).
    response: dict[str, Any] | None = None


class LabelError(BaseModel):
    package: str
    error: str


class LabelsData(StepOutcome):
    tracking_number: str | None = None
    uploaded_paths: list[str] = Field(default_factory=list)
    total_packages: int = 0
    errors: list[LabelError] = Field(default_factory=list)


class SpreadsheetData(StepOutcome):
    file_path: str | None = None
    rows_added: int = 0
    start_row: int | None = None
    was_new_file: bool = False


class InvoicePendingData(StepOutcome):
    record_id: int | None = None
    already_exists: bool = False
