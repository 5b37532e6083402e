"""Business event types. A producer emits one of these; handlers declare which one they react to."""


class EventTypes:
    """Event-type identifiers shared by producers, handlers and the executor."""

    # Sale reached an approved payment state. Driven through run_handlers_and_emit only.
    SALE_CREATED = "SALE_CREATED"


class PaymentStates:
    """Payment states a sale can carry."""

    PENDING = "pendiente"
    APPROVED = "aprobado"
    REJECTED = "rechazado"
    CANCELLED = "cancelado"


# Payload contracts (documentation; runtime validation lives in fulfillment.sales.models)
SALE_CREATED_PAYLOAD = {
    "id_venta": "int",
    "estado_pago": "str",
    "fecha": "str (ISO 8601)",
    "venta": "dict | None",
    "payment_data": "dict | None",
}
