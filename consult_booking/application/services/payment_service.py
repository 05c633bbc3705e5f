import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ...core.config import settings
from ..errors import (
    AmountMismatch,
    Conflict,
    GatewayTimeout,
    NotFound,
    SignatureInvalid,
)
from ..ports.appointments_repo import AppointmentsRepository, AppointmentDto, AppointmentState
from ..ports.audit_logger import AuditLogger
from ..ports.payment_events_repo import PaymentEventsRepository
from ..ports.payment_gateway import (
    GatewayOrderRef,
    PaymentCallbackPayload,
    PaymentGateway,
    SignatureVerifier,
    signing_message,
)
from ..ports.rate_limiter import RateLimiter
from ..ports.reconciliation_repo import ReconciliationRepository
from .calendar_service import ProviderCalendar

logger = logging.getLogger(__name__)

CAPTURED = "captured"
FAILED = "failed"


class CallbackOutcome(str, Enum):
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    REPLAYED = "replayed"
    RECONCILIATION = "reconciliation"
    IGNORED = "ignored"


@dataclass(frozen=True)
class CallbackResult:
    outcome: CallbackOutcome
    appointment: Optional[AppointmentDto] = None
    reconciliation_case_id: Optional[int] = None


@dataclass
class PaymentReconciliationEngine:
    ledger: AppointmentsRepository
    calendar: ProviderCalendar
    events: PaymentEventsRepository
    reconciliation: ReconciliationRepository
    gateway: PaymentGateway
    verifier: SignatureVerifier
    trust_counter: RateLimiter
    audit: Optional[AuditLogger] = None
    gateway_timeout: float = field(default_factory=lambda: settings.GATEWAY_TIMEOUT_SECONDS)
    trust_alert_threshold: int = field(default_factory=lambda: settings.TRUST_ALERT_THRESHOLD)
    trust_alert_window: int = field(default_factory=lambda: settings.TRUST_ALERT_WINDOW_SECONDS)

    def _load(self, appointment_id: int) -> AppointmentDto:
        appt = self.ledger.get_by_id(appointment_id)
        if not appt:
            raise NotFound("Appointment not found", appointment_id)
        return appt

    async def create_payment_intent(self, appointment_id: int) -> GatewayOrderRef:
        # Storage calls run off the event loop; sessions are synchronous
        appt = await asyncio.to_thread(self._load, appointment_id)
        if appt.state != AppointmentState.PENDING_PAYMENT:
            raise Conflict(f"Appointment is {appt.state.value}, payment is not expected", appt.id, current_state=appt.state.value)
        receipt = f"appt-{appt.id}"
        if appt.order_ref:
            return GatewayOrderRef(order_id=appt.order_ref, amount=appt.amount, currency=appt.currency, receipt=receipt)

        try:
            order = await asyncio.wait_for(
                self.gateway.create_order(appt.amount, appt.currency, receipt),
                timeout=self.gateway_timeout,
            )
        except asyncio.TimeoutError:
            # Outcome unknown; the booking stays pending and the TTL sweep resolves it
            logger.warning(f"Payment gateway timed out creating an order for appointment {appt.id}")
            raise GatewayTimeout("Payment gateway did not respond in time", appt.id)

        # Raises Conflict if the booking expired or was cancelled while the gateway call was in flight
        updated = await asyncio.to_thread(self.ledger.set_order_ref, appt.id, order.order_id)
        logger.info(f"Payment order {order.order_id} created for appointment {updated.id} ({updated.amount} {updated.currency})")
        if self.audit:
            self.audit.log("payment_intent_created", actor_id=updated.patient_id, appointment_id=updated.id, details={"order_id": order.order_id})
        return order

    def _note_trust_failure(self, appointment_id: int, kind: str) -> None:
        logger.warning(f"Rejected payment callback for appointment {appointment_id}: {kind}")
        if self.audit:
            self.audit.log("payment_callback_rejected", appointment_id=appointment_id, success=False, details={"reason": kind})
        # allow() is False once the threshold is reached inside the window
        if not self.trust_counter.allow(f"appointment:{appointment_id}", self.trust_alert_threshold - 1, self.trust_alert_window):
            logger.critical(f"Possible payment tampering: repeated rejected callbacks for appointment {appointment_id}")
            if self.audit:
                self.audit.log("payment_tamper_alert", appointment_id=appointment_id, success=False, details={"last_reason": kind})

    def handle_payment_callback(self, gateway_event_id: str, appointment_id: int, signature: Optional[str], payload: PaymentCallbackPayload) -> CallbackResult:
        if self.events.is_processed(gateway_event_id):
            logger.info(f"Payment event {gateway_event_id} already processed; ignoring redelivery")
            return CallbackResult(CallbackOutcome.REPLAYED, self.ledger.get_by_id(appointment_id))

        appt = self.ledger.get_by_id(appointment_id)
        if not self.verifier.verify(signing_message(gateway_event_id, appointment_id, payload), signature):
            if appt:
                self.events.record_rejected(gateway_event_id, appt.id, "signature_invalid")
            self._note_trust_failure(appointment_id, "signature_invalid")
            raise SignatureInvalid("Payment callback signature is invalid", appointment_id)
        if not appt:
            raise NotFound("Appointment not found", appointment_id)

        if payload.status == CAPTURED and (payload.amount != appt.amount or payload.currency.upper() != appt.currency.upper()):
            self.events.record_rejected(gateway_event_id, appt.id, "amount_mismatch")
            self._note_trust_failure(appt.id, "amount_mismatch")
            raise AmountMismatch(
                f"Callback amount {payload.amount} {payload.currency} does not match {appt.amount} {appt.currency}",
                appt.id,
            )

        if not self.events.claim(gateway_event_id, appt.id):
            # Same event delivered concurrently; the other delivery applies it
            return CallbackResult(CallbackOutcome.REPLAYED, self.ledger.get_by_id(appt.id))

        try:
            if payload.status == CAPTURED:
                result = self._apply_capture(appt, gateway_event_id, payload)
            elif payload.status == FAILED:
                result = self._apply_decline(appt)
            else:
                logger.warning(f"Payment event {gateway_event_id} has unknown status {payload.status!r}; ignoring")
                result = CallbackResult(CallbackOutcome.IGNORED, appt)
        except Exception:
            # Let the gateway's redelivery retry this event
            self.events.forget(gateway_event_id)
            raise
        self.events.set_outcome(gateway_event_id, result.outcome.value)
        return result

    def _apply_capture(self, appt: AppointmentDto, gateway_event_id: str, payload: PaymentCallbackPayload) -> CallbackResult:
        try:
            confirmed = self.ledger.transition(
                appt.id, AppointmentState.PENDING_PAYMENT, AppointmentState.CONFIRMED, payment_ref=payload.payment_ref
            )
        except Conflict as e:
            current = self.ledger.get_by_id(appt.id) or appt
            if current.state == AppointmentState.CONFIRMED and payload.payment_ref and current.payment_ref == payload.payment_ref:
                # Same transaction reported again under a different event id
                logger.info(f"Payment {payload.payment_ref} already confirmed appointment {appt.id}; event {gateway_event_id} is a duplicate")
                return CallbackResult(CallbackOutcome.REPLAYED, current)
            if current.state == AppointmentState.CONFIRMED:
                reason = "duplicate capture for an already confirmed appointment"
            else:
                reason = f"payment captured after appointment became {current.state.value}"
            case = self.reconciliation.open_case(
                appointment_id=appt.id,
                gateway_event_id=gateway_event_id,
                payment_ref=payload.payment_ref,
                amount=payload.amount,
                currency=payload.currency.upper(),
                reason=reason,
            )
            logger.warning(f"Reconciliation case {case.id} opened for appointment {appt.id}: {reason} (was {e.current_state})")
            if self.audit:
                self.audit.log("reconciliation_opened", appointment_id=appt.id, success=False, details={"case_id": case.id, "reason": reason})
            return CallbackResult(CallbackOutcome.RECONCILIATION, current, case.id)

        logger.info(f"Appointment {confirmed.id} confirmed by payment event {gateway_event_id}")
        if self.audit:
            self.audit.log("appointment_confirmed", actor_id=confirmed.patient_id, appointment_id=confirmed.id, details={"payment_ref": payload.payment_ref})
        return CallbackResult(CallbackOutcome.CONFIRMED, confirmed)

    def _apply_decline(self, appt: AppointmentDto) -> CallbackResult:
        try:
            cancelled = self.ledger.transition(appt.id, AppointmentState.PENDING_PAYMENT, AppointmentState.CANCELLED)
        except Conflict as e:
            logger.info(f"Declined payment for appointment {appt.id} ignored; appointment is {e.current_state}")
            return CallbackResult(CallbackOutcome.IGNORED, self.ledger.get_by_id(appt.id))
        self.calendar.release_for(cancelled)
        logger.info(f"Appointment {cancelled.id} cancelled after declined payment; slot released")
        if self.audit:
            self.audit.log("appointment_payment_declined", appointment_id=cancelled.id)
        return CallbackResult(CallbackOutcome.DECLINED, cancelled)
