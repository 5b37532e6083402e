"""Shipping carrier (Andreani) API client: pre-shipment orders and label downloads."""

import logging
from typing import Any, Awaitable, Callable

import httpx
from pydantic import BaseModel, ConfigDict, Field

from fulfillment.errors import CarrierError, InvalidSaleStateError
from fulfillment.sales.models import Sale

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
LOGIN_PATH = "/login"
ORDERS_PATH = "/v2/ordenes-de-envio"
TOKEN_HEADER = "x-authorization-token"
LABEL_LINK_META = "Etiqueta"
CARRIER_NAME = "Andreani"

CredentialsGetter = Callable[[], Awaitable[tuple[str, str]]]


class PackageLink(BaseModel):
    meta: str = ""
    contenido: str = ""


class Package(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    numero_de_bulto: str | None = Field(default=None, alias="numeroDeBulto")
    numero_de_envio: str | None = Field(default=None, alias="numeroDeEnvio")
    totalizador: str | None = None
    linking: list[PackageLink] = Field(default_factory=list)

    @property
    def label_url(self) -> str | None:
        link = next((x for x in self.linking if x.meta == LABEL_LINK_META), None)
        url = link.contenido.strip() if link else ""
        return url or None


class PreShipmentResponse(BaseModel):
    """Subset of the carrier's order response; unknown fields are kept."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    estado: str | None = None
    agrupador_de_bultos: str | None = Field(default=None, alias="agrupadorDeBultos")
    etiquetas_por_agrupador: str | None = Field(default=None, alias="etiquetasPorAgrupador")
    bultos: list[Package] = Field(default_factory=list)

    @property
    def tracking_number(self) -> str | None:
        return self.bultos[0].numero_de_envio if self.bultos else None


def build_order_request(sale: Sale, contract: str, client_code: str = "") -> dict[str, Any]:
    """Map a sale to the carrier's B2C order body. Raises when the destination is incomplete."""
    cliente = sale.cliente
    if cliente is None:
        raise InvalidSaleStateError(f"Sale #{sale.id_venta} has no customer")
    address = (cliente.direccion or "").strip()
    city = (cliente.ciudad or "").strip()
    postal_code = (cliente.cod_postal or "").strip()
    if not address:
        raise InvalidSaleStateError(f"Sale #{sale.id_venta} has no customer address")
    if not city:
        raise InvalidSaleStateError(f"Sale #{sale.id_venta} has no customer city")
    if postal_code in ("", "0", "0000"):
        raise InvalidSaleStateError(f"Sale #{sale.id_venta} has no valid postal code")

    total_units = sum(max(item.cantidad, 0) for item in sale.detalles) or 1
    return {
        "contrato": contract,
        "idPedido": str(sale.id_venta),
        "codigoDeCliente": client_code or None,
        "destino": {
            "postal": {
                "codigoPostal": postal_code,
                "calle": address,
                "numero": cliente.altura or "S/N",
                "localidad": city,
                "region": cliente.provincia or "",
                "pais": "Argentina",
                "componentesDeDireccion": [
                    {"meta": "piso", "contenido": cliente.piso or ""},
                    {"meta": "departamento", "contenido": cliente.dpto or ""},
                ],
            }
        },
        "destinatario": [
            {
                "nombreCompleto": cliente.full_name or "Cliente",
                "email": cliente.email or "",
                "documentoTipo": "DNI",
                "documentoNumero": cliente.documento or "",
                "telefonos": [{"tipo": 1, "numero": cliente.telefono or ""}],
            }
        ],
        "bultos": [
            {
                "kilos": 1,
                "volumenCm": 1000,
                "valorDeclaradoConImpuestos": sale.total_neto or 0,
                "descripcion": f"Pedido #{sale.id_venta} ({total_units} unidad/es)",
            }
        ],
    }


class CarrierClient:
    """Async client: Basic-auth login, token cached in memory, renewed once on 401/403."""

    def __init__(
        self,
        base_url: str,
        credentials: CredentialsGetter,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._credentials = credentials
        self._client = httpx.AsyncClient(base_url=self._base_url, timeout=timeout)
        self._token: str | None = None

    @property
    def base_url(self) -> str:
        return self._base_url

    async def close(self) -> None:
        await self._client.aclose()

    async def _login(self) -> str:
        username, password = await self._credentials()
        if not username or not password:
            raise CarrierError("Carrier credentials are not configured")
        response = await self._client.get(LOGIN_PATH, auth=(username, password))
        if response.status_code >= 400:
            raise CarrierError(
                f"Carrier login failed: HTTP {response.status_code}", status_code=response.status_code
            )
        token = response.headers.get(TOKEN_HEADER)
        if not token:
            try:
                token = (response.json() or {}).get("token")
            except ValueError:
                token = None
        if not token:
            raise CarrierError("Carrier login response has no token")
        logger.info("Carrier token renewed")
        self._token = token
        return token

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        token = self._token or await self._login()
        response = await self._client.request(method, path, headers={TOKEN_HEADER: token}, **kwargs)
        if response.status_code in (401, 403):
            token = await self._login()
            response = await self._client.request(method, path, headers={TOKEN_HEADER: token}, **kwargs)
        if response.status_code >= 400:
            raise CarrierError(
                f"Carrier {method} {path} failed: HTTP {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    async def create_pre_shipment(self, order: dict[str, Any]) -> PreShipmentResponse:
        """POST a pre-shipment order. Returns the parsed response."""
        response = await self._request("POST", ORDERS_PATH, json=order)
        try:
            return PreShipmentResponse.model_validate(response.json())
        except ValueError as e:
            raise CarrierError(f"Unparseable pre-shipment response: {e}") from e

    def endpoint_from_url(self, url: str) -> str | None:
        """Path + query of a carrier URL, or None when it points elsewhere."""
        if not url.startswith(self._base_url):
            return None
        path = url[len(self._base_url):]
        return path if path.startswith("/") else f"/{path}"

    async def get_binary(self, url_or_path: str) -> tuple[bytes, str]:
        """Download a label (PDF or image). Returns (content, content_type)."""
        path = url_or_path
        if url_or_path.startswith(("http://", "https://")):
            endpoint = self.endpoint_from_url(url_or_path)
            if endpoint is None:
                raise CarrierError(f"Label URL outside carrier API: {url_or_path}")
            path = endpoint
        response = await self._request("GET", path)
        return response.content, response.headers.get("content-type", "application/pdf")


def extension_for_content_type(content_type: str) -> str:
    ct = content_type.lower()
    if "application/pdf" in ct:
        return ".pdf"
    if "image/jpeg" in ct or "image/jpg" in ct:
        return ".jpg"
    if "image/" in ct:
        return ".png"
    return ".pdf"
