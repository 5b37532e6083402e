"""Shared fixtures: a temporary SaleStore and sample sale documents."""

from pathlib import Path
from typing import Any

import pytest

from fulfillment.events.topics import PaymentStates
from fulfillment.sales.models import Address, Customer, LineItem, Product, Sale
from fulfillment.services.store import SaleStore


def make_sale(
    sale_id: int = 101,
    estado_pago: str = PaymentStates.PENDING,
    *,
    stock: float = 10,
    quantities: tuple[int, ...] = (2,),
    **overrides: Any,
) -> Sale:
    detalles = [
        LineItem(
            id_detalle=index,
            id_prod=500 + index,
            cantidad=qty,
            precio_unitario=1500.0,
            sub_total=1500.0 * qty,
            producto=Product(id_prod=500 + index, nombre=f"Producto {index}", cod_sku=f"SKU-{index}", stock=stock),
        )
        for index, qty in enumerate(quantities, start=1)
    ]
    data: dict[str, Any] = {
        "id_venta": sale_id,
        "estado_pago": estado_pago,
        "fecha": "2026-03-14T10:30:00",
        "metodo_pago": "mercadopago",
        "total_neto": sum(d.sub_total or 0 for d in detalles),
        "cliente": Customer(
            nombre="Ana",
            apellido="Pérez",
            email="ana@example.com",
            telefono="3415550000",
            documento="30111222",
            direccion="Av. Pellegrini",
            altura="1200",
            ciudad="Rosario",
            cod_postal="2000",
            provincia="Santa Fe",
        ),
        "direcciones": [
            Address(direccion="Av. Pellegrini 1200", ciudad="Rosario", cod_postal="2000", provincia="Santa Fe")
        ],
        "detalles": detalles,
    }
    data.update(overrides)
    return Sale(**data)


@pytest.fixture
def sale_factory():
    return make_sale


@pytest.fixture
async def store(tmp_path: Path) -> SaleStore:
    s = SaleStore(tmp_path / "fulfillment.db")
    yield s
    await s.close()
