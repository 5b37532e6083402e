"""Process entry: compose store, clients, handler registry, bus and executor, then serve until signalled."""

import asyncio
import logging
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from fulfillment import secrets
from fulfillment.events import EventBus
from fulfillment.handlers import HandlerExecutor, HandlerRegistry
from fulfillment.handlers.sale_created import build_sale_created_handlers
from fulfillment.logging_config import setup_logging
from fulfillment.sales.confirmation import PaymentConfirmationService
from fulfillment.sales.notifications import OrderConfirmationListener
from fulfillment.services import CarrierClient, FileTransferClient, MailClient, SaleStore
from fulfillment.settings import carrier_base_url, get_setting, load_settings

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


@dataclass
class Application:
    """Everything main_async wires together; tests build one with fakes swapped in."""

    settings: dict[str, Any]
    store: SaleStore
    carrier: CarrierClient
    mail: MailClient
    event_bus: EventBus
    registry: HandlerRegistry
    executor: HandlerExecutor
    confirmation: PaymentConfirmationService
    listener: OrderConfirmationListener

    async def start(self) -> None:
        await self.event_bus.start()
        self.executor.initialize()
        self.listener.subscribe(self.event_bus)

    async def close(self) -> None:
        await self.event_bus.stop()
        await self.carrier.close()
        await self.mail.close()
        await self.store.close()


async def _carrier_credentials() -> tuple[str, str]:
    username = await secrets.get_secret_async(secrets.CARRIER_USERNAME)
    password = await secrets.get_secret_async(secrets.CARRIER_PASSWORD)
    return username or "", password or ""


async def _ftp_password() -> str | None:
    return await secrets.get_secret_async(secrets.FTP_PASSWORD)


async def _mail_api_key() -> str | None:
    return await secrets.get_secret_async(secrets.MAIL_API_KEY)


def _resolve(path: str) -> Path:
    p = Path(path)
    return p if p.is_absolute() else _PROJECT_ROOT / p


def build_application(settings: dict[str, Any]) -> Application:
    """Compose the application from settings. Nothing is started or opened here."""
    store = SaleStore(
        db_path=_resolve(get_setting(settings, "storage.db_path", "data/fulfillment.db")),
        busy_timeout=get_setting(settings, "storage.busy_timeout", 5000),
    )
    carrier = CarrierClient(
        carrier_base_url(settings),
        _carrier_credentials,
        timeout=get_setting(settings, "carrier.timeout", 30.0),
    )
    ft_cfg = settings.get("file_transfer", {})

    def file_transfer() -> FileTransferClient:
        return FileTransferClient(
            ft_cfg.get("host", ""),
            ft_cfg.get("user", ""),
            _ftp_password,
            port=int(ft_cfg.get("port", 21)),
            secure=bool(ft_cfg.get("secure", False)),
            timeout=float(ft_cfg.get("timeout", 30.0)),
        )

    mail_cfg = settings.get("mail", {})
    mail = MailClient(
        mail_cfg.get("base_url", "https://api.brevo.com/v3"),
        _mail_api_key,
        mail_cfg.get("sender_email", ""),
        mail_cfg.get("sender_name", ""),
        timeout=float(mail_cfg.get("timeout", 15.0)),
    )

    handler_settings = dict(settings)
    handler_settings["file_transfer"] = {
        **ft_cfg,
        "temp_dir": str(_resolve(ft_cfg.get("temp_dir", "data/temp"))),
    }
    registry = HandlerRegistry.from_handlers(
        build_sale_created_handlers(
            handler_settings, store=store, carrier=carrier, file_transfer=file_transfer
        )
    )
    event_bus = EventBus()
    executor = HandlerExecutor(
        registry,
        event_bus,
        store,
        sync_only_event_types=get_setting(settings, "executor.sync_only_event_types", []),
        handler_timeout=get_setting(settings, "executor.handler_timeout_sec"),
        source=get_setting(settings, "event_bus.source", "event-bus"),
        triggered_by=get_setting(settings, "executor.triggered_by", "system"),
    )
    return Application(
        settings=settings,
        store=store,
        carrier=carrier,
        mail=mail,
        event_bus=event_bus,
        registry=registry,
        executor=executor,
        confirmation=PaymentConfirmationService(store, executor),
        listener=OrderConfirmationListener(
            store, mail, store_name=mail_cfg.get("store_name", "Tienda")
        ),
    )


async def main_async() -> None:
    """Bootstrap: settings -> logging -> compose -> start bus and executor -> wait for shutdown."""
    settings = load_settings()
    setup_logging(_PROJECT_ROOT, settings)
    app = build_application(settings)
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown_event.set)
        except NotImplementedError:
            pass  # Windows: KeyboardInterrupt still stops asyncio.run
    await app.start()
    logger.info("Fulfillment service started")
    try:
        await shutdown_event.wait()
    except asyncio.CancelledError:
        pass
    finally:
        await app.close()
        logger.info("Fulfillment service stopped")


def main() -> None:
    """Synchronous entry for the fulfillment process."""
    load_dotenv(_PROJECT_ROOT / ".env")
    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        pass


__all__ = ["Application", "build_application", "main", "main_async"]
