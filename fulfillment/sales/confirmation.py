"""Payment confirmation: the producer of SALE_CREATED.

Approving a payment adjusts stock, flips the sale to ``aprobado`` and drives the
whole sale pipeline through ``run_handlers_and_emit`` before returning, so the
caller gets the sale back with whatever the pipeline persisted (tracking number).
"""

import logging

from fulfillment.errors import InsufficientStockError, InvalidSaleStateError
from fulfillment.events.topics import EventTypes, PaymentStates
from fulfillment.handlers.executor import HandlerExecutor
from fulfillment.sales.models import PaymentData, Sale, SaleCreatedPayload
from fulfillment.services.store import SaleStore

logger = logging.getLogger(__name__)


def validate_stock(sale: Sale) -> None:
    """Raise InsufficientStockError unless every line item can be served from stock."""
    if not sale.detalles:
        raise InsufficientStockError(f"Sale #{sale.id_venta} has no line items")
    for item in sale.detalles:
        if item.producto is None:
            raise InsufficientStockError(
                f"Sale #{sale.id_venta}: line item {item.id_detalle} has no product"
            )
        if item.producto.stock < item.cantidad:
            raise InsufficientStockError(
                f"Insufficient stock for {item.producto.nombre!r}: "
                f"available {item.producto.stock:g}, required {item.cantidad}"
            )


class PaymentConfirmationService:
    def __init__(self, store: SaleStore, executor: HandlerExecutor) -> None:
        self._store = store
        self._executor = executor

    async def confirm_payment(self, sale_id: int, payment_data: PaymentData | None = None) -> Sale:
        """Approve the sale's payment and run the sale pipeline. Idempotent for approved sales."""
        sale = await self._store.require_sale(sale_id)
        if sale.estado_pago == PaymentStates.APPROVED:
            logger.info("Sale #%d already approved, nothing to do", sale_id)
            return sale
        if sale.estado_pago == PaymentStates.CANCELLED:
            raise InvalidSaleStateError(f"Cannot confirm a cancelled sale (#{sale_id})")

        validate_stock(sale)
        await self._store.adjust_stock(sale_id, sign=-1)
        notes = payment_data.notas if payment_data else None
        sale = await self._store.update_payment_state(sale_id, PaymentStates.APPROVED, notes)
        logger.info("Sale #%d payment approved", sale_id)

        payload = SaleCreatedPayload(
            id_venta=sale.id_venta,
            estado_pago=sale.estado_pago,
            fecha=sale.fecha,
            venta=sale,
            payment_data=payment_data,
        )
        stats = await self._executor.run_handlers_and_emit(EventTypes.SALE_CREATED, payload)
        if stats is not None and stats.handlers_failed:
            logger.warning(
                "Sale #%d pipeline finished with %d failed handler(s)", sale_id, stats.handlers_failed
            )
        return await self._store.require_sale(sale_id)
