"""Sales spreadsheet (Ventas.xlsx) handled with openpyxl.

Layout: row 1 title, row 2 column letters, row 3 headers, data from row 4.
Each sale line item is one row; column A holds the sale id, so the last data
row is the last row with a non-empty column A.
"""

import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

logger = logging.getLogger(__name__)

SHEET_TITLE = "Ventas"
TITLE_ROW = 1
LETTERS_ROW = 2
HEADER_ROW = 3
FIRST_DATA_ROW = 4


@dataclass
class SalesRow:
    """One spreadsheet row. Field order is column order."""

    id_venta: str
    fecha: str
    cantidad: str
    subtotal: str
    estado: str
    sku: str
    precio_unitario: str
    cliente: str
    documento: str
    direccion_facturacion: str
    direccion_envio: str
    ciudad: str
    provincia: str
    cod_postal: str
    pais: str
    transporte: str
    medio_pago: str
    pago_id: str | None = None
    pago_estado: str | None = None
    pago_fecha: str | None = None
    total_pagado: str | None = None
    neto_recibido: str | None = None
    cuotas: str | None = None

    def values(self) -> list[Any]:
        return list(asdict(self).values())


HEADERS: dict[str, str] = {
    "id_venta": "Venta",
    "fecha": "Fecha",
    "cantidad": "Cantidad",
    "subtotal": "Subtotal",
    "estado": "Estado",
    "sku": "SKU",
    "precio_unitario": "Precio unitario",
    "cliente": "Cliente",
    "documento": "Documento",
    "direccion_facturacion": "Dirección de facturación",
    "direccion_envio": "Dirección de envío",
    "ciudad": "Ciudad",
    "provincia": "Provincia",
    "cod_postal": "Código postal",
    "pais": "País",
    "transporte": "Transporte",
    "medio_pago": "Medio de pago",
    "pago_id": "ID de pago",
    "pago_estado": "Estado del pago",
    "pago_fecha": "Fecha de aprobación",
    "total_pagado": "Total pagado",
    "neto_recibido": "Neto recibido",
    "cuotas": "Cuotas",
}


def column_names() -> list[str]:
    return [f.name for f in fields(SalesRow)]


class SalesWorkbook:
    """Thin wrapper over an openpyxl workbook with the sales layout."""

    def __init__(self, workbook: Workbook) -> None:
        self._workbook = workbook

    @classmethod
    def create(cls) -> "SalesWorkbook":
        """New workbook with title, column letters and headers."""
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = SHEET_TITLE
        sheet.cell(row=TITLE_ROW, column=1, value="Registro de ventas").font = Font(bold=True, size=14)
        for idx, name in enumerate(column_names(), start=1):
            sheet.cell(row=LETTERS_ROW, column=idx, value=get_column_letter(idx))
            sheet.cell(row=HEADER_ROW, column=idx, value=HEADERS[name]).font = Font(bold=True)
        return cls(workbook)

    @classmethod
    def load(cls, path: Path) -> "SalesWorkbook":
        return cls(load_workbook(path))

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self._workbook.save(path)

    @property
    def sheet(self) -> Worksheet:
        if SHEET_TITLE in self._workbook.sheetnames:
            return self._workbook[SHEET_TITLE]
        return self._workbook.active

    def last_data_row(self) -> int:
        """Last row holding data; FIRST_DATA_ROW - 1 when the sheet has none."""
        sheet = self.sheet
        for row in range(sheet.max_row, FIRST_DATA_ROW - 1, -1):
            value = sheet.cell(row=row, column=1).value
            if value is not None and str(value).strip():
                return row
        return FIRST_DATA_ROW - 1

    def append_rows(self, rows: list[SalesRow], start_row: int | None = None) -> int:
        """Write rows from start_row (default: after the last data row). Returns the first row used."""
        if start_row is None:
            start_row = self.last_data_row() + 1
        start_row = max(start_row, FIRST_DATA_ROW)
        sheet = self.sheet
        for offset, row in enumerate(rows):
            for col, value in enumerate(row.values(), start=1):
                sheet.cell(row=start_row + offset, column=col, value=value)
        logger.debug("Wrote %d spreadsheet rows from row %d", len(rows), start_row)
        return start_row

    def read_rows(self) -> list[list[Any]]:
        sheet = self.sheet
        last = self.last_data_row()
        width = len(column_names())
        return [
            [sheet.cell(row=r, column=c).value for c in range(1, width + 1)]
            for r in range(FIRST_DATA_ROW, last + 1)
        ]
