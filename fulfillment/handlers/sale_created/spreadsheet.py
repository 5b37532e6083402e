"""Appends the sale's line items to the shared sales spreadsheet on the file server."""

import asyncio
import logging
import posixpath
from datetime import datetime
from pathlib import Path
from typing import Any, Callable
from zipfile import BadZipFile

from openpyxl.utils.exceptions import InvalidFileException

from fulfillment.errors import FulfillmentError
from fulfillment.events.topics import EventTypes
from fulfillment.handlers.context import HandlerContext
from fulfillment.handlers.contract import EventHandler
from fulfillment.handlers.sale_created.models import (
    SHIPPING_HANDLER,
    SPREADSHEET_HANDLER,
    ShippingData,
    SkipReasons,
    SpreadsheetData,
)
from fulfillment.sales.models import Sale, SaleCreatedPayload
from fulfillment.services.carrier import CARRIER_NAME
from fulfillment.services.file_transfer import FileTransferClient
from fulfillment.services.spreadsheet import FIRST_DATA_ROW, SalesRow, SalesWorkbook
from fulfillment.services.store import SaleStore

logger = logging.getLogger(__name__)

PAYMENT_METHOD_LABELS = {
    "mercadopago": "Mercado Pago",
    "efectivo": "Efectivo",
    "transferencia": "Transferencia",
}


def format_date(value: str | None) -> str:
    """ISO date/datetime -> dd/mm/yyyy; anything unparseable is returned as-is."""
    if not value:
        return ""
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%d/%m/%Y")
    except ValueError:
        return value


def format_amount(value: float | None) -> str:
    """Whole-number amount, as the accounting import expects."""
    if value is None:
        return "0"
    return str(int(round(value)))


def _transport(sale: Sale, tracking_number: str | None) -> str:
    if tracking_number:
        return f"{CARRIER_NAME} - Código: {tracking_number}"
    if sale.is_store_pickup:
        return "Retiro en tienda"
    if sale.envio and sale.envio.empresa_envio:
        return sale.envio.empresa_envio
    return CARRIER_NAME


def build_sales_rows(sale: Sale, tracking_number: str | None = None) -> list[SalesRow]:
    """One row per line item. Empty when the sale has no line items."""
    cliente = sale.cliente
    address = sale.direcciones[0] if sale.direcciones else None
    payment = sale.pagos[0] if sale.pagos else None
    customer_name = cliente.full_name if cliente else ""
    billing = ", ".join(
        part
        for part in (
            cliente.direccion if cliente else None,
            cliente.ciudad if cliente else None,
            cliente.cod_postal if cliente else None,
            cliente.provincia if cliente else None,
        )
        if part
    )
    shipping_address = ""
    if address:
        shipping_address = address.direccion_formateada or ", ".join(
            p for p in (address.direccion, address.cod_postal, address.ciudad, address.provincia) if p
        )
    # Multi-item sales cannot be split by item in the accounting import
    estado = "0" if len(sale.detalles) > 1 else format_amount(sale.total_neto)

    rows = []
    for item in sale.detalles:
        producto = item.producto
        rows.append(
            SalesRow(
                id_venta=str(sale.id_venta),
                fecha=format_date(sale.fecha),
                cantidad=str(item.cantidad or 1),
                subtotal=format_amount(item.sub_total if item.sub_total is not None else item.precio_unitario),
                estado=estado,
                sku=(producto.cod_sku or "") if producto else "",
                precio_unitario=format_amount(item.precio_unitario),
                cliente=customer_name,
                documento=(cliente.documento or "") if cliente else "",
                direccion_facturacion=billing,
                direccion_envio=shipping_address,
                ciudad=(address.ciudad if address else None) or (cliente.ciudad if cliente else None) or "",
                provincia=(address.provincia if address else None)
                or (cliente.provincia if cliente else None)
                or "",
                cod_postal=(address.cod_postal if address else None)
                or (cliente.cod_postal if cliente else None)
                or "",
                pais=address.pais if address else "Argentina",
                transporte=_transport(sale, tracking_number),
                medio_pago=PAYMENT_METHOD_LABELS.get(sale.metodo_pago or "", sale.metodo_pago or ""),
                pago_id=payment.payment_id if payment else None,
                pago_estado=payment.status if payment else None,
                pago_fecha=format_date(payment.date_approved) if payment and payment.date_approved else None,
                total_pagado=format_amount(payment.total_paid_amount) if payment else None,
                neto_recibido=format_amount(
                    payment.net_received_amount if payment and payment.net_received_amount else sale.total_neto
                ),
                cuotas=str(payment.installments) if payment and payment.installments else None,
            )
        )
    return rows


class SpreadsheetHandler(EventHandler):
    name = SPREADSHEET_HANDLER
    event_type = EventTypes.SALE_CREATED
    description = "Appends the sale to the sales spreadsheet on the file server"
    default_priority = 30
    data_model = SpreadsheetData

    def __init__(
        self,
        store: SaleStore,
        file_transfer: Callable[[], FileTransferClient],
        *,
        remote_path: str,
        temp_dir: Path,
        priority: int | None = None,
        enabled: bool | None = None,
    ) -> None:
        super().__init__(priority=priority, enabled=enabled)
        self._store = store
        self._file_transfer = file_transfer
        self._remote_path = remote_path
        self._temp_dir = temp_dir
        # Serializes download, append and upload of the shared remote workbook
        self._lock = asyncio.Lock()

    async def execute(self, payload: Any, context: HandlerContext) -> None:
        event = SaleCreatedPayload.coerce(payload)
        sale = await self._store.get_sale(event.id_venta) or event.venta
        if sale is None:
            self.publish(
                context, SpreadsheetData(success=False, skipped=True, reason=SkipReasons.NO_SALE_DATA)
            )
            return

        shipping = context.read(SHIPPING_HANDLER, ShippingData)
        tracking = shipping.tracking_number if shipping and shipping.success else None
        rows = build_sales_rows(sale, tracking)
        if not rows:
            logger.warning("Sale #%d has no line items, spreadsheet untouched", sale.id_venta)
            self.publish(
                context, SpreadsheetData(success=False, skipped=True, reason=SkipReasons.NO_LINE_ITEMS)
            )
            return

        name = posixpath.basename(self._remote_path)
        local_path = self._temp_dir / f"{Path(name).stem}-{sale.id_venta}{Path(name).suffix}"
        try:
            async with self._lock, self._file_transfer() as ftp:
                if await ftp.exists(self._remote_path):
                    await ftp.download(self._remote_path, local_path)
                    workbook = SalesWorkbook.load(local_path)
                    start_row = workbook.last_data_row() + 1
                    was_new_file = False
                else:
                    logger.info("%s not found on file server, creating it", self._remote_path)
                    workbook = SalesWorkbook.create()
                    start_row = FIRST_DATA_ROW
                    was_new_file = True
                workbook.append_rows(rows, start_row)
                workbook.save(local_path)
                await ftp.upload(local_path, self._remote_path)
        except (FulfillmentError, OSError, BadZipFile, InvalidFileException) as e:
            logger.error("Sale #%d: spreadsheet update failed: %s", sale.id_venta, e)
            self.publish(context, SpreadsheetData(success=False, error=str(e), file_path=self._remote_path))
            return
        finally:
            local_path.unlink(missing_ok=True)

        self.publish(
            context,
            SpreadsheetData(
                file_path=self._remote_path,
                rows_added=len(rows),
                start_row=start_row,
                was_new_file=was_new_file,
            ),
        )
        logger.info(
            "Sale #%d: %d row(s) added to %s from row %d%s",
            sale.id_venta,
            len(rows),
            self._remote_path,
            start_row,
            " (new file)" if was_new_file else "",
        )
