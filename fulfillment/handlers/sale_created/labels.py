"""Downloads each package label from the carrier and publishes it on the file server."""

import logging
import posixpath
from pathlib import Path
from typing import Any, Callable

from fulfillment.errors import FulfillmentError
from fulfillment.events.topics import EventTypes
from fulfillment.handlers.context import HandlerContext
from fulfillment.handlers.contract import EventHandler
from fulfillment.handlers.sale_created.models import (
    LABELS_HANDLER,
    SHIPPING_HANDLER,
    LabelError,
    LabelsData,
    ShippingData,
    SkipReasons,
)
from fulfillment.sales.models import SaleCreatedPayload
from fulfillment.services.carrier import CarrierClient, PreShipmentResponse, extension_for_content_type
from fulfillment.services.file_transfer import FileTransferClient

logger = logging.getLogger(__name__)


class ShippingLabelsHandler(EventHandler):
    name = LABELS_HANDLER
    event_type = EventTypes.SALE_CREATED
    description = "Uploads carrier shipping labels to the file server"
    default_priority = 25
    data_model = LabelsData

    def __init__(
        self,
        carrier: CarrierClient,
        file_transfer: Callable[[], FileTransferClient],
        *,
        labels_dir: str,
        temp_dir: Path,
        priority: int | None = None,
        enabled: bool | None = None,
    ) -> None:
        super().__init__(priority=priority, enabled=enabled)
        self._carrier = carrier
        self._file_transfer = file_transfer
        self._labels_dir = labels_dir.rstrip("/")
        self._temp_dir = temp_dir

    async def execute(self, payload: Any, context: HandlerContext) -> None:
        event = SaleCreatedPayload.coerce(payload)
        shipping = context.read(SHIPPING_HANDLER, ShippingData)
        if shipping is None:
            logger.warning("Sale #%d: no shipping data, skipping labels", event.id_venta)
            self._skip(context, SkipReasons.NO_SHIPPING_DATA)
            return
        if shipping.skipped and shipping.reason == SkipReasons.STORE_PICKUP:
            self._skip(context, SkipReasons.STORE_PICKUP, success=True)
            return
        if not shipping.success:
            self._skip(context, SkipReasons.SHIPPING_FAILED)
            return
        response = PreShipmentResponse.model_validate(shipping.response or {})
        if not response.bultos:
            self._skip(context, SkipReasons.NO_PACKAGES)
            return

        tracking = shipping.tracking_number or response.tracking_number or f"venta-{event.id_venta}"
        uploaded: list[str] = []
        errors: list[LabelError] = []
        try:
            async with self._file_transfer() as ftp:
                for index, package in enumerate(response.bultos, start=1):
                    number = package.numero_de_bulto or str(index)
                    try:
                        uploaded.append(await self._publish_label(ftp, tracking, number, package.label_url))
                    except (FulfillmentError, OSError) as e:
                        logger.warning("Sale #%d package %s: %s", event.id_venta, number, e)
                        errors.append(LabelError(package=number, error=str(e)))
        except FulfillmentError as e:
            logger.error("Sale #%d: label upload aborted: %s", event.id_venta, e)
            self.publish(
                context,
                LabelsData(
                    success=False,
                    error=str(e),
                    tracking_number=tracking,
                    uploaded_paths=uploaded,
                    total_packages=len(response.bultos),
                    errors=errors,
                ),
            )
            return

        self.publish(
            context,
            LabelsData(
                success=bool(uploaded),
                tracking_number=tracking,
                uploaded_paths=uploaded,
                total_packages=len(response.bultos),
                errors=errors,
            ),
        )
        logger.info(
            "Sale #%d: %d/%d label(s) uploaded under %s/%s",
            event.id_venta,
            len(uploaded),
            len(response.bultos),
            self._labels_dir,
            tracking,
        )

    async def _publish_label(
        self, ftp: FileTransferClient, tracking: str, number: str, url: str | None
    ) -> str:
        if not url:
            raise FulfillmentError("package has no label link")
        content, content_type = await self._carrier.get_binary(url)
        filename = f"etiqueta_{number}{extension_for_content_type(content_type)}"
        local_path = self._temp_dir / tracking / filename
        remote_path = posixpath.join(self._labels_dir, tracking, filename)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        local_path.write_bytes(content)
        try:
            await ftp.upload(local_path, remote_path)
        finally:
            local_path.unlink(missing_ok=True)
        return remote_path

    def _skip(self, context: HandlerContext, reason: str, success: bool = False) -> None:
        self.publish(context, LabelsData(success=success, skipped=True, reason=reason))
