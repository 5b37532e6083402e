"""Tests for MailClient (pytest-httpx) and the order confirmation template."""

import json

import pytest

from fulfillment.errors import MailError
from fulfillment.services.mail import ORDER_CONFIRMED_TEMPLATE, MailClient, format_money

SEND_URL = "https://api.brevo.com/v3/smtp/email"


async def _api_key() -> str:
    return "key-123"


def _client(api_key=_api_key, sender_email: str = "ventas@example.com") -> MailClient:
    return MailClient("https://api.brevo.com/v3", api_key, sender_email, "Tienda")


class TestMailClient:
    @pytest.mark.asyncio
    async def test_send_posts_message(self, httpx_mock) -> None:
        httpx_mock.add_response(method="POST", url=SEND_URL, status_code=201, json={"messageId": "<msg-1>"})

        client = _client()
        try:
            message_id = await client.send(
                "ana@example.com", "Hola", "<p>hi</p>", to_name="Ana", tags=["order-confirmed"]
            )
        finally:
            await client.close()

        assert message_id == "<msg-1>"
        request = httpx_mock.get_request()
        assert request.headers["api-key"] == "key-123"
        body = json.loads(request.content)
        assert body["sender"] == {"email": "ventas@example.com", "name": "Tienda"}
        assert body["to"] == [{"email": "ana@example.com", "name": "Ana"}]
        assert body["subject"] == "Hola"
        assert body["tags"] == ["order-confirmed"]

    @pytest.mark.asyncio
    async def test_missing_api_key_raises(self) -> None:
        async def no_key() -> None:
            return None

        client = _client(api_key=no_key)
        try:
            with pytest.raises(MailError, match="not configured"):
                await client.send("a@example.com", "s", "h")
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_api_error_raises(self, httpx_mock) -> None:
        httpx_mock.add_response(method="POST", url=SEND_URL, status_code=400, json={"code": "invalid_parameter"})
        client = _client()
        try:
            with pytest.raises(MailError, match="HTTP 400"):
                await client.send("a@example.com", "s", "h")
        finally:
            await client.close()


class TestOrderConfirmedTemplate:
    def test_render_includes_tracking_and_items(self, sale_factory) -> None:
        client = _client()
        html = client.render(
            ORDER_CONFIRMED_TEMPLATE,
            sale=sale_factory(sale_id=77),
            customer_name="Ana",
            tracking_number="360000123",
            carrier="Andreani",
            store_name="Tienda",
        )
        assert "#77" in html
        assert "Código de Seguimiento (Andreani):</strong> 360000123" in html
        assert "Producto 1" in html
        assert "$ 3.000,00" in html

    def test_render_without_tracking(self, sale_factory) -> None:
        client = _client()
        html = client.render(
            ORDER_CONFIRMED_TEMPLATE,
            sale=sale_factory(),
            customer_name="<b>Ana</b>",
            tracking_number=None,
            carrier="Andreani",
            store_name="Tienda",
        )
        assert "Seguimiento" not in html
        assert "&lt;b&gt;Ana&lt;/b&gt;" in html


def test_format_money() -> None:
    assert format_money(1234567.5) == "$ 1.234.567,50"
    assert format_money(None) == "$ 0,00"
