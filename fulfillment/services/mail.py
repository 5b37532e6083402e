"""Transactional email over an HTTP API (Brevo-compatible), bodies rendered with Jinja2."""

import logging
from pathlib import Path
from typing import Any, Awaitable, Callable

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from fulfillment.errors import MailError

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
SEND_PATH = "/smtp/email"
ORDER_CONFIRMED_TEMPLATE = "order_confirmed.html.jinja2"

ApiKeyGetter = Callable[[], Awaitable[str | None]]


def format_money(amount: float | None) -> str:
    """$ 12.345,67 (es-AR grouping)."""
    value = f"{float(amount or 0):,.2f}"
    return "$ " + value.replace(",", "_").replace(".", ",").replace("_", ".")


def _environment(templates_dir: Path) -> Environment:
    env = Environment(
        loader=FileSystemLoader(templates_dir),
        autoescape=select_autoescape(enabled_extensions=("html", "jinja2")),
    )
    env.filters["money"] = format_money
    return env


class MailClient:
    def __init__(
        self,
        base_url: str,
        api_key: ApiKeyGetter,
        sender_email: str,
        sender_name: str = "",
        *,
        timeout: float = 15.0,
        templates_dir: Path = TEMPLATES_DIR,
    ) -> None:
        self._api_key = api_key
        self._sender = {"email": sender_email, "name": sender_name}
        self._env = _environment(templates_dir)
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    def render(self, template_name: str, **params: Any) -> str:
        return self._env.get_template(template_name).render(**params).strip()

    async def send(
        self,
        to_email: str,
        subject: str,
        html: str,
        *,
        to_name: str | None = None,
        tags: list[str] | None = None,
    ) -> str:
        """Send one message. Returns the provider message id."""
        api_key = await self._api_key()
        if not api_key or not self._sender["email"]:
            raise MailError("Mail API key or sender email is not configured")
        recipient: dict[str, str] = {"email": to_email}
        if to_name:
            recipient["name"] = to_name
        body: dict[str, Any] = {
            "sender": self._sender,
            "to": [recipient],
            "subject": subject,
            "htmlContent": html,
        }
        if tags:
            body["tags"] = tags
        response = await self._client.post(SEND_PATH, json=body, headers={"api-key": api_key})
        if response.status_code >= 400:
            raise MailError(f"Mail API error: HTTP {response.status_code} {response.text[:200]}")
        try:
            message_id = (response.json() or {}).get("messageId")
        except ValueError:
            message_id = None
        return message_id or "unknown"
