"""Credentials for carrier, file-transfer and mail collaborators: OS keyring, then environment."""

import asyncio
import logging
import os

import keyring
from keyring.errors import KeyringError

logger = logging.getLogger(__name__)
SERVICE_NAME = "fulfillment"

CARRIER_USERNAME = "CARRIER_USERNAME"
CARRIER_PASSWORD = "CARRIER_PASSWORD"
FTP_PASSWORD = "FTP_PASSWORD"
MAIL_API_KEY = "MAIL_API_KEY"


def get_secret(name: str) -> str | None:
    """Resolve secret: keyring -> os.environ. Sync, safe for startup code."""
    try:
        value = keyring.get_password(SERVICE_NAME, name)
        if value:
            return value
    except KeyringError:
        logger.debug("keyring lookup failed for %s, falling back to env", name)
    return os.environ.get(name)


async def get_secret_async(name: str) -> str | None:
    """Async variant; keyring I/O runs in a worker thread."""
    try:
        value = await asyncio.to_thread(keyring.get_password, SERVICE_NAME, name)
        if value:
            return value
    except KeyringError:
        logger.debug("keyring lookup failed for %s, falling back to env", name)
    return os.environ.get(name)

