"""Tests for the carrier client (pytest-httpx) and order mapping."""

import pytest

from fulfillment.errors import CarrierError, InvalidSaleStateError
from fulfillment.services.carrier import (
    CarrierClient,
    PreShipmentResponse,
    build_order_request,
    extension_for_content_type,
)

BASE_URL = "https://apisqa.andreani.com"
LOGIN_URL = f"{BASE_URL}/login"
ORDERS_URL = f"{BASE_URL}/v2/ordenes-de-envio"
LABEL_URL = f"{ORDERS_URL}/360000123/etiquetas"

ORDER_RESPONSE = {
    "estado": "Pendiente",
    "agrupadorDeBultos": "AGR-1",
    "bultos": [
        {
            "numeroDeBulto": "1",
            "numeroDeEnvio": "360000123",
            "linking": [
                {"meta": "Seguimiento", "contenido": "https://tracking"},
                {"meta": "Etiqueta", "contenido": LABEL_URL},
            ],
        }
    ],
}


async def _credentials() -> tuple[str, str]:
    return "user", "secret"


def _login(httpx_mock, token: str = "tok-1") -> None:
    httpx_mock.add_response(method="GET", url=LOGIN_URL, headers={"x-authorization-token": token})


class TestCarrierClient:
    @pytest.mark.asyncio
    async def test_login_then_create_pre_shipment(self, httpx_mock) -> None:
        _login(httpx_mock)
        httpx_mock.add_response(method="POST", url=ORDERS_URL, json=ORDER_RESPONSE)

        client = CarrierClient(BASE_URL, _credentials)
        try:
            response = await client.create_pre_shipment({"contrato": "C"})
        finally:
            await client.close()

        login, post = httpx_mock.get_requests()
        assert login.headers["authorization"].startswith("Basic ")
        assert post.headers["x-authorization-token"] == "tok-1"
        assert response.tracking_number == "360000123"
        assert response.agrupador_de_bultos == "AGR-1"
        assert response.bultos[0].label_url.endswith("/etiquetas")

    @pytest.mark.asyncio
    async def test_token_renewed_once_on_401(self, httpx_mock) -> None:
        _login(httpx_mock, "old")
        httpx_mock.add_response(method="POST", url=ORDERS_URL, status_code=401)
        _login(httpx_mock, "new")
        httpx_mock.add_response(method="POST", url=ORDERS_URL, json=ORDER_RESPONSE)

        client = CarrierClient(BASE_URL, _credentials)
        try:
            await client.create_pre_shipment({})
        finally:
            await client.close()

        posts = httpx_mock.get_requests(method="POST", url=ORDERS_URL)
        assert [r.headers["x-authorization-token"] for r in posts] == ["old", "new"]

    @pytest.mark.asyncio
    async def test_error_status_raises_carrier_error(self, httpx_mock) -> None:
        _login(httpx_mock)
        httpx_mock.add_response(method="POST", url=ORDERS_URL, status_code=422, text="codigoPostal invalido")

        client = CarrierClient(BASE_URL, _credentials)
        try:
            with pytest.raises(CarrierError) as exc_info:
                await client.create_pre_shipment({})
        finally:
            await client.close()
        assert exc_info.value.status_code == 422
        assert "codigoPostal invalido" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_credentials(self) -> None:
        async def no_credentials() -> tuple[str, str]:
            return "", ""

        client = CarrierClient(BASE_URL, no_credentials)
        try:
            with pytest.raises(CarrierError, match="credentials"):
                await client.create_pre_shipment({})
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_get_binary_from_absolute_url(self, httpx_mock) -> None:
        _login(httpx_mock)
        httpx_mock.add_response(
            method="GET", url=LABEL_URL, content=b"%PDF-1.4", headers={"content-type": "application/pdf"}
        )

        client = CarrierClient(BASE_URL, _credentials)
        try:
            content, content_type = await client.get_binary(LABEL_URL)
            with pytest.raises(CarrierError, match="outside carrier API"):
                await client.get_binary("https://elsewhere.example.com/label.pdf")
        finally:
            await client.close()
        assert content == b"%PDF-1.4"
        assert content_type == "application/pdf"

    def test_endpoint_from_url(self) -> None:
        client = CarrierClient(BASE_URL, _credentials)
        assert client.endpoint_from_url(f"{BASE_URL}/x?y=1") == "/x?y=1"
        assert client.endpoint_from_url("https://other/x") is None


class TestOrderMapping:
    def test_build_order_request(self, sale_factory) -> None:
        order = build_order_request(sale_factory(sale_id=55), contract="400006709")
        assert order["contrato"] == "400006709"
        assert order["idPedido"] == "55"
        postal = order["destino"]["postal"]
        assert postal["codigoPostal"] == "2000"
        assert postal["localidad"] == "Rosario"
        assert order["destinatario"][0]["nombreCompleto"] == "Ana Pérez"

    def test_missing_postal_code_rejected(self, sale_factory) -> None:
        sale = sale_factory()
        sale = sale.model_copy(update={"cliente": sale.cliente.model_copy(update={"cod_postal": ""})})
        with pytest.raises(InvalidSaleStateError, match="postal code"):
            build_order_request(sale, contract="C")

    def test_response_tolerates_missing_packages(self) -> None:
        assert PreShipmentResponse.model_validate({"estado": "x"}).tracking_number is None

    @pytest.mark.parametrize(
        ("content_type", "ext"),
        [("application/pdf", ".pdf"), ("image/jpeg", ".jpg"), ("image/png", ".png"), ("text/plain", ".pdf")],
    )
    def test_extension_for_content_type(self, content_type: str, ext: str) -> None:
        assert extension_for_content_type(content_type) == ext
