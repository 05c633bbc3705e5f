import json
from dataclasses import dataclass, asdict
from typing import Optional, Protocol


@dataclass(frozen=True)
class GatewayOrderRef:
    order_id: str
    amount: int
    currency: str
    receipt: str


@dataclass(frozen=True)
class PaymentCallbackPayload:
    order_ref: Optional[str]
    payment_ref: Optional[str]
    amount: int
    currency: str
    status: str  # captured | failed


def signing_message(gateway_event_id: str, appointment_id: int, payload: PaymentCallbackPayload) -> bytes:
    """Canonical bytes the gateway signs: compact JSON with sorted keys."""
    body = {"event_id": gateway_event_id, "appointment_id": appointment_id, **asdict(payload)}
    return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")


class PaymentGateway(Protocol):
    async def create_order(self, amount: int, currency: str, receipt: str) -> GatewayOrderRef:
        ...

    async def refund(self, payment_ref: str, amount: int, currency: str) -> str:
        ...


class SignatureVerifier(Protocol):
    def verify(self, message: bytes, signature: Optional[str]) -> bool:
        ...
