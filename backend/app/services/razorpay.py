# services/razorpay.py
import logging
from typing import Any, Dict, Optional

import httpx

from app.core.config import PaymentConfig
from app.core.errors import GatewayError

logger = logging.getLogger("remindpay")


class RazorpayClient:
    """
    Minimal async client for the Razorpay Orders API.
    Built once at startup from PaymentConfig; ``transport`` lets tests stub HTTP.
    """

    def __init__(self, config: PaymentConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            auth=(self.config.key_id or "", self.config.key_secret or ""),
            timeout=self.config.timeout,
            transport=self._transport,
        )

    async def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        POST /orders. ``amount`` is already in the smallest currency unit.
        Any transport, HTTP or decoding failure is raised as GatewayError.
        """
        payload: Dict[str, Any] = {
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "payment_capture": 1,
        }
        if notes:
            payload["notes"] = notes

        try:
            async with self._client() as client:
                response = await client.post("/orders", json=payload)
            response.raise_for_status()
            order = response.json()
        except httpx.HTTPStatusError as e:
            detail = e.response.text[:500]
            logger.error(f"❌ Razorpay create-order rejected ({e.response.status_code}): {detail}")
            raise GatewayError("Failed to create order") from e
        except httpx.HTTPError as e:
            logger.error(f"❌ Razorpay create-order transport error: {e!r}")
            raise GatewayError("Failed to create order") from e
        except ValueError as e:
            logger.error(f"❌ Razorpay create-order returned invalid JSON: {e}")
            raise GatewayError("Failed to create order") from e

        if not isinstance(order, dict) or "id" not in order:
            logger.error(f"❌ Razorpay create-order returned unexpected body: {order!r}")
            raise GatewayError("Failed to create order")

        logger.info(f"🧾 Razorpay order created: {order['id']} | {amount} {currency} | receipt={receipt}")
        return order
