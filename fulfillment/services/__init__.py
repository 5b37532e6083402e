"""External collaborators used by the sale pipeline: store, carrier, FTP, spreadsheet, mail."""

from fulfillment.services.carrier import CarrierClient, PreShipmentResponse
from fulfillment.services.file_transfer import FileTransferClient
from fulfillment.services.mail import MailClient
from fulfillment.services.spreadsheet import SalesRow, SalesWorkbook
from fulfillment.services.store import AuditRecord, PendingInvoice, SaleStore

__all__ = [
    "AuditRecord",
    "CarrierClient",
    "FileTransferClient",
    "MailClient",
    "PendingInvoice",
    "PreShipmentResponse",
    "SaleStore",
    "SalesRow",
    "SalesWorkbook",
]
