"""Exception hierarchy for the fulfillment service and its collaborators."""


class FulfillmentError(Exception):
    """Base class for domain and collaborator errors."""


class SaleNotFoundError(FulfillmentError):
    def __init__(self, sale_id: int) -> None:
        super().__init__(f"Sale #{sale_id} not found")
        self.sale_id = sale_id


class InvalidSaleStateError(FulfillmentError):
    """Sale is in a payment state that does not allow the requested transition."""


class InsufficientStockError(FulfillmentError):
    """A line item asks for more units than the product has in stock."""


class CarrierError(FulfillmentError):
    """Shipping carrier API returned an error or an unusable response."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FileTransferError(FulfillmentError):
    """File-transfer server is unreachable or rejected an operation."""


class MailError(FulfillmentError):
    """Mail API rejected the message or is not configured."""


class HandlerTimeoutError(FulfillmentError):
    """A handler exceeded the executor's configured per-handler timeout."""
