from typing import Optional
from fastapi import APIRouter, Depends, Header
import logging

from ..application.services.payment_service import PaymentReconciliationEngine
from ..dependencies import get_payment_engine
from ..schemas.payments.payment import PaymentCallbackRequest, PaymentCallbackResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/callback", response_model=PaymentCallbackResponse)
def payment_callback(
    body: PaymentCallbackRequest,
    x_gateway_signature: Optional[str] = Header(default=None),
    payments: PaymentReconciliationEngine = Depends(get_payment_engine),
):
    """Inbound gateway webhook. Redeliveries of an already processed event return 200."""
    result = payments.handle_payment_callback(
        gateway_event_id=body.event_id,
        appointment_id=body.appointment_id,
        signature=x_gateway_signature,
        payload=body.to_payload(),
    )
    return PaymentCallbackResponse(
        outcome=result.outcome.value,
        appointment_id=body.appointment_id,
        state=result.appointment.state.value if result.appointment else None,
        reconciliation_case_id=result.reconciliation_case_id,
    )
