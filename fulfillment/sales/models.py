"""Sale document and event payload models (Pydantic).

Field names follow the store's schema (Spanish domain vocabulary) so documents
round-trip unchanged between the store, event payloads and the audit log.
"""

from typing import Any

from pydantic import BaseModel, Field

from fulfillment.events.topics import PaymentStates


class Customer(BaseModel):
    id_usuario: str | None = None
    nombre: str = ""
    apellido: str = ""
    email: str | None = None
    telefono: str | None = None
    documento: str | None = None
    direccion: str | None = None
    altura: str | None = None
    piso: str | None = None
    dpto: str | None = None
    ciudad: str | None = None
    cod_postal: str | None = None
    provincia: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.nombre} {self.apellido}".strip()


class Address(BaseModel):
    direccion: str | None = None
    direccion_formateada: str | None = None
    ciudad: str | None = None
    cod_postal: str | None = None
    provincia: str | None = None
    pais: str = "Argentina"


class Product(BaseModel):
    id_prod: int | None = None
    nombre: str = ""
    cod_sku: str | None = None
    stock: float = 0


class LineItem(BaseModel):
    id_detalle: int | None = None
    id_prod: int | None = None
    cantidad: int = 1
    precio_unitario: float | None = None
    sub_total: float | None = None
    producto: Product | None = None


class Shipment(BaseModel):
    cod_seguimiento: str | None = None
    empresa_envio: str | None = None
    estado_envio: str | None = None
    costo_envio: float | None = None


class PaymentRecord(BaseModel):
    payment_id: str | None = None
    status: str | None = None
    payment_method_id: str | None = None
    payment_type_id: str | None = None
    installments: int | None = None
    total_paid_amount: float | None = None
    net_received_amount: float | None = None
    date_approved: str | None = None


class Sale(BaseModel):
    """Denormalized sale as kept by the store."""

    id_venta: int
    estado_pago: str = PaymentStates.PENDING
    fecha: str
    metodo_pago: str | None = None
    total_neto: float | None = None
    observaciones: str | None = None
    cliente: Customer | None = None
    direcciones: list[Address] = Field(default_factory=list)
    detalles: list[LineItem] = Field(default_factory=list)
    envio: Shipment | None = None
    pagos: list[PaymentRecord] = Field(default_factory=list)

    @property
    def is_store_pickup(self) -> bool:
        notes = (self.observaciones or "").lower()
        return "retiro en tienda" in notes or "tipo: retiro" in notes

    @property
    def tracking_number(self) -> str | None:
        return self.envio.cod_seguimiento if self.envio else None


class PaymentData(BaseModel):
    """Optional metadata supplied by whoever confirmed the payment."""

    metodo_pago: str | None = None
    transaction_id: str | None = None
    payment_date: str | None = None
    notas: str | None = None


class SaleCreatedPayload(BaseModel):
    """Payload of SALE_CREATED. Read-only for handlers."""

    model_config = {"frozen": True}

    id_venta: int
    estado_pago: str
    fecha: str
    venta: Sale | None = None
    payment_data: PaymentData | None = None

    @classmethod
    def coerce(cls, payload: Any) -> "SaleCreatedPayload":
        """Accept an instance or a plain dict (as delivered by the bus)."""
        if isinstance(payload, cls):
            return payload
        return cls.model_validate(payload)
