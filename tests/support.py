import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from consult_booking.application.errors import GatewayError
from consult_booking.application.ports.appointments_repo import AppointmentDto
from consult_booking.application.ports.payment_gateway import GatewayOrderRef, PaymentCallbackPayload, signing_message
from consult_booking.application.ports.principal_repo import Role
from consult_booking.application.services.booking_service import BookingOrchestrator
from consult_booking.application.services.calendar_service import ProviderCalendar
from consult_booking.application.services.directory_service import PrincipalDirectory
from consult_booking.application.services.expiry_service import ExpirySupervisor
from consult_booking.application.services.payment_service import PaymentReconciliationEngine
from consult_booking.core.clock import utcnow
from consult_booking.infrastructure.payments.signature import HmacSignatureVerifier, compute_signature
from memory_repos import (
    InMemoryAppointmentsRepository,
    InMemoryCalendarRepository,
    InMemoryPaymentEventsRepository,
    InMemoryPrincipalRepository,
    InMemoryReconciliationRepository,
)
from consult_booking.infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter

WEBHOOK_SECRET = "whsec_test_secret"
PASSWORD = "s3cret-pass"


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeGateway:
    def __init__(self, delay: float = 0.0):
        self.delay = delay
        self.orders: List[GatewayOrderRef] = []
        self.refunds = []
        self.fail_refunds = False

    async def create_order(self, amount: int, currency: str, receipt: str) -> GatewayOrderRef:
        if self.delay:
            await asyncio.sleep(self.delay)
        order = GatewayOrderRef(order_id=f"order_{len(self.orders) + 1}", amount=amount, currency=currency, receipt=receipt)
        self.orders.append(order)
        return order

    async def refund(self, payment_ref: str, amount: int, currency: str) -> str:
        if self.fail_refunds:
            raise GatewayError("refund rejected")
        self.refunds.append((payment_ref, amount, currency))
        return f"rfnd_{len(self.refunds)}"


class RecordingAudit:
    def __init__(self):
        self.entries = []

    def log(self, action, actor_id=None, appointment_id=None, success=True, details=None):
        self.entries.append({"action": action, "actor_id": actor_id, "appointment_id": appointment_id, "success": success, "details": details or {}})

    def actions(self) -> List[str]:
        return [e["action"] for e in self.entries]


@dataclass
class Core:
    principals: InMemoryPrincipalRepository
    calendar_repo: InMemoryCalendarRepository
    ledger: InMemoryAppointmentsRepository
    events: InMemoryPaymentEventsRepository
    reconciliation: InMemoryReconciliationRepository
    gateway: FakeGateway
    audit: RecordingAudit
    directory: PrincipalDirectory
    calendar: ProviderCalendar
    expiry: ExpirySupervisor
    booking: BookingOrchestrator
    payments: PaymentReconciliationEngine


def build_core(clock: Callable[[], datetime] = utcnow, gateway: Optional[FakeGateway] = None, ttl_minutes: int = 15) -> Core:
    principals = InMemoryPrincipalRepository()
    calendar_repo = InMemoryCalendarRepository()
    ledger = InMemoryAppointmentsRepository()
    events = InMemoryPaymentEventsRepository()
    reconciliation = InMemoryReconciliationRepository()
    gateway = gateway or FakeGateway()
    audit = RecordingAudit()

    directory = PrincipalDirectory(principals, calendar_repo)
    calendar = ProviderCalendar(calendar_repo)
    expiry = ExpirySupervisor(
        ledger=ledger,
        calendar=calendar,
        reconciliation=reconciliation,
        gateway=gateway,
        audit=audit,
        ttl_minutes=ttl_minutes,
        auto_refund=True,
        max_refund_attempts=2,
        gateway_timeout=1.0,
        clock=clock,
    )
    booking = BookingOrchestrator(
        calendar=calendar,
        ledger=ledger,
        directory=directory,
        expiry=expiry,
        audit=audit,
        slot_minutes=30,
        horizon_days=60,
        clock=clock,
    )
    payments = PaymentReconciliationEngine(
        ledger=ledger,
        calendar=calendar,
        events=events,
        reconciliation=reconciliation,
        gateway=gateway,
        verifier=HmacSignatureVerifier(WEBHOOK_SECRET),
        trust_counter=InMemoryRateLimiter(),
        audit=audit,
        gateway_timeout=0.2,
        trust_alert_threshold=3,
        trust_alert_window=3600,
    )
    return Core(principals, calendar_repo, ledger, events, reconciliation, gateway, audit, directory, calendar, expiry, booking, payments)


@dataclass
class People:
    provider_id: str
    patient_a: str
    patient_b: str
    operator: str
    other_provider: str = field(default="")


def register_people(core: Core, fee: int = 500) -> People:
    provider = core.directory.register_provider("dr.p@example.com", PASSWORD, "Dr. P", fee, "INR", "Dermatology")
    other = core.directory.register_provider("dr.q@example.com", PASSWORD, "Dr. Q", 800, "INR")
    a = core.directory.register_principal("alice@example.com", PASSWORD, Role.PATIENT, "Alice")
    b = core.directory.register_principal("bob@example.com", PASSWORD, Role.PATIENT, "Bob")
    op = core.directory.register_principal("desk@example.com", PASSWORD, Role.OPERATOR, "Front Desk")
    return People(provider.id, a.id, b.id, op.id, other.id)


def future_date(days: int = 2) -> str:
    return (utcnow() + timedelta(days=days)).date().isoformat()


def captured(appt: AppointmentDto, amount: Optional[int] = None, currency: Optional[str] = None, payment_ref: str = "pay_1") -> PaymentCallbackPayload:
    return PaymentCallbackPayload(
        order_ref=appt.order_ref,
        payment_ref=payment_ref,
        amount=appt.amount if amount is None else amount,
        currency=currency or appt.currency,
        status="captured",
    )


def declined(appt: AppointmentDto) -> PaymentCallbackPayload:
    return PaymentCallbackPayload(order_ref=appt.order_ref, payment_ref=None, amount=appt.amount, currency=appt.currency, status="failed")


def sign(gateway_event_id: str, appointment_id: int, payload: PaymentCallbackPayload, secret: str = WEBHOOK_SECRET) -> str:
    return compute_signature(secret, signing_message(gateway_event_id, appointment_id, payload))


def confirm(core: Core, appt: AppointmentDto, event_id: str = "evt_confirm") -> AppointmentDto:
    """Drive a pending appointment through payment intent and a signed capture."""
    asyncio.run(core.payments.create_payment_intent(appt.id))
    appt = core.ledger.get_by_id(appt.id)
    payload = captured(appt)
    result = core.payments.handle_payment_callback(event_id, appt.id, sign(event_id, appt.id, payload), payload)
    return result.appointment
