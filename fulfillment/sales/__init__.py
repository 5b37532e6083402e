"""Sale documents and the flows that produce and consume SALE_CREATED."""

from fulfillment.sales.models import (
    Address,
    Customer,
    LineItem,
    PaymentData,
    PaymentRecord,
    Product,
    Sale,
    SaleCreatedPayload,
    Shipment,
)

__all__ = [
    "Address",
    "Customer",
    "LineItem",
    "PaymentData",
    "PaymentRecord",
    "Product",
    "Sale",
    "SaleCreatedPayload",
    "Shipment",
]
