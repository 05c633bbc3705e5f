# consult_booking/schemas/payments/payment.py
from pydantic import BaseModel, Field
from typing import Literal, Optional

from ...application.ports.payment_gateway import PaymentCallbackPayload

class PaymentIntentResponse(BaseModel):
    appointment_id: int
    order_id: str
    amount: int
    currency: str
    receipt: str

class PaymentCallbackRequest(BaseModel):
    event_id: str = Field(..., min_length=1, max_length=128)
    appointment_id: int
    order_ref: Optional[str] = None
    payment_ref: Optional[str] = None
    amount: int = Field(ge=0)
    currency: str = Field(min_length=3, max_length=3)
    status: Literal["captured", "failed"]

    def to_payload(self) -> PaymentCallbackPayload:
        return PaymentCallbackPayload(
            order_ref=self.order_ref,
            payment_ref=self.payment_ref,
            amount=self.amount,
            currency=self.currency,
            status=self.status,
        )

class PaymentCallbackResponse(BaseModel):
    outcome: str
    appointment_id: int
    state: Optional[str] = None
    reconciliation_case_id: Optional[int] = None
