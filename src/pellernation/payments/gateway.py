"""Thin async client for the Paystack transaction API."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote

import aiohttp

from pellernation.config.settings import get_config
from pellernation.errors import GatewayError

logger = logging.getLogger(__name__)


@dataclass
class GatewayResponse:
    """Decoded Paystack reply."""

    http_status: int
    body: dict[str, Any]

    @property
    def ok(self) -> bool:
        """2xx and Paystack's own top-level status flag set."""
        return 200 <= self.http_status < 300 and bool(self.body.get("status"))

    @property
    def data(self) -> dict[str, Any]:
        data = self.body.get("data")
        return data if isinstance(data, dict) else {}

    @property
    def message(self) -> Optional[str]:
        message = self.body.get("message")
        return str(message) if message else None


class PaystackClient:
    """
    Paystack REST calls with bearer auth and a bounded timeout.

    Each call opens its own ClientSession, so a client instance holds no
    connection state and can be shared by concurrent requests.
    """

    def __init__(
        self,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        config = get_config()
        self.secret_key = (
            secret_key if secret_key is not None else config.paystack_secret_key.get_secret_value()
        )
        self.base_url = (base_url or config.paystack_base_url).rstrip("/")
        self.timeout_seconds = timeout_seconds or config.paystack_timeout_seconds

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> GatewayResponse:
        """
        Send one request and decode the JSON reply.

        Raises:
            GatewayError: Missing secret key, network failure, timeout,
                5xx reply, or a body that is not a JSON object
        """
        if not self.secret_key:
            raise GatewayError("Paystack secret key not configured")

        url = f"{self.base_url}{path}"
        headers = {"Authorization": f"Bearer {self.secret_key}"}
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)

        try:
            async with aiohttp.ClientSession(timeout=timeout, headers=headers) as session:
                if method == "POST":
                    request = session.post(url, json=payload)
                else:
                    request = session.get(url)
                async with request as response:
                    http_status = response.status
                    body = await response.json(content_type=None)
        except asyncio.TimeoutError as e:
            logger.error(f"Paystack {method} {path} timed out after {self.timeout_seconds}s")
            raise GatewayError() from e
        except aiohttp.ClientError as e:
            logger.error(f"Paystack {method} {path} failed: {e}")
            raise GatewayError() from e
        except ValueError as e:
            logger.error(f"Paystack {method} {path} returned invalid JSON: {e}")
            raise GatewayError() from e

        if not isinstance(body, dict):
            logger.error(f"Paystack {method} {path} returned a non-object body")
            raise GatewayError()

        result = GatewayResponse(http_status=http_status, body=body)
        if http_status >= 500:
            logger.error(f"Paystack {method} {path} returned HTTP {http_status}")
            raise GatewayError(details=result.message)

        return result

    async def initialize_transaction(self, payload: dict[str, Any]) -> GatewayResponse:
        """POST /transaction/initialize."""
        return await self._request("POST", "/transaction/initialize", payload)

    async def verify_transaction(self, reference: str) -> GatewayResponse:
        """GET /transaction/verify/{reference}."""
        return await self._request("GET", f"/transaction/verify/{quote(reference, safe='')}")
