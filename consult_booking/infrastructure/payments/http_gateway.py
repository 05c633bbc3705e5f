import logging
from typing import Optional

import aiohttp

from ...core.config import settings
from ...application.errors import GatewayError
from ...application.ports.payment_gateway import PaymentGateway, GatewayOrderRef

logger = logging.getLogger(__name__)


class HttpPaymentGateway(PaymentGateway):
    """REST client for an order/refund style payment gateway.

    Orders are created with ``POST {base}/orders`` and refunds with
    ``POST {base}/payments/{payment_ref}/refund``; both authenticate with the
    merchant key id/secret over HTTP basic auth.
    """

    def __init__(self, base_url: Optional[str] = None, key_id: Optional[str] = None, key_secret: Optional[str] = None, timeout_seconds: Optional[float] = None):
        self.base_url = (base_url or settings.GATEWAY_BASE_URL).rstrip("/")
        self.auth = aiohttp.BasicAuth(key_id or settings.GATEWAY_KEY_ID, key_secret or settings.GATEWAY_KEY_SECRET)
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds or settings.GATEWAY_TIMEOUT_SECONDS)

    async def _post(self, path: str, body: dict) -> dict:
        try:
            async with aiohttp.ClientSession(auth=self.auth, timeout=self.timeout) as session:
                async with session.post(f"{self.base_url}{path}", json=body) as response:
                    if response.status >= 400:
                        text = await response.text()
                        logger.error(f"Gateway {path} failed with {response.status}: {text[:200]}")
                        raise GatewayError(f"Payment gateway returned {response.status}")
                    return await response.json()
        except aiohttp.ClientError as e:
            logger.error(f"Gateway {path} unreachable: {e}")
            raise GatewayError("Payment gateway unreachable") from e

    async def create_order(self, amount: int, currency: str, receipt: str) -> GatewayOrderRef:
        data = await self._post("/orders", {"amount": amount, "currency": currency, "receipt": receipt})
        return GatewayOrderRef(
            order_id=data["id"],
            amount=int(data.get("amount", amount)),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt),
        )

    async def refund(self, payment_ref: str, amount: int, currency: str) -> str:
        data = await self._post(f"/payments/{payment_ref}/refund", {"amount": amount, "currency": currency})
        return data["id"]
