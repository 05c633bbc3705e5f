import asyncio
import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from ...core.clock import utcnow
from ...core.config import settings
from ..errors import Conflict, GatewayError
from ..ports.appointments_repo import AppointmentsRepository, AppointmentDto, AppointmentState
from ..ports.audit_logger import AuditLogger
from ..ports.payment_gateway import PaymentGateway
from ..ports.reconciliation_repo import ReconciliationRepository
from .calendar_service import ProviderCalendar

logger = logging.getLogger(__name__)


@dataclass
class ExpirySupervisor:
    """Expires unpaid bookings and works the reconciliation queue.

    Expiry goes through the same compare-and-swap ``transition`` as payment
    confirmation, so when both race exactly one of them commits and the other
    sees a ``Conflict``.
    """

    ledger: AppointmentsRepository
    calendar: ProviderCalendar
    reconciliation: Optional[ReconciliationRepository] = None
    gateway: Optional[PaymentGateway] = None
    audit: Optional[AuditLogger] = None
    ttl_minutes: int = field(default_factory=lambda: settings.PAYMENT_TTL_MINUTES)
    auto_refund: bool = field(default_factory=lambda: settings.AUTO_REFUND_ENABLED)
    max_refund_attempts: int = field(default_factory=lambda: settings.RECONCILIATION_MAX_ATTEMPTS)
    gateway_timeout: float = field(default_factory=lambda: settings.GATEWAY_TIMEOUT_SECONDS)
    clock: Callable[[], datetime] = utcnow

    def is_stale(self, appt: AppointmentDto, now: Optional[datetime] = None) -> bool:
        now = now or self.clock()
        return (
            appt.state == AppointmentState.PENDING_PAYMENT
            and appt.created_at + timedelta(minutes=self.ttl_minutes) <= now
        )

    def _expire(self, appt: AppointmentDto) -> AppointmentDto:
        try:
            expired = self.ledger.transition(appt.id, AppointmentState.PENDING_PAYMENT, AppointmentState.EXPIRED)
        except Conflict as e:
            # Paid or cancelled in the meantime; that transition owns the slot now
            logger.info(f"Expiry of appointment {appt.id} lost to a concurrent transition ({e.current_state})")
            return self.ledger.get_by_id(appt.id) or appt
        self.calendar.release_for(expired)
        logger.info(f"Appointment {expired.id} expired unpaid; slot {expired.slot_date} {expired.slot_time} released")
        if self.audit:
            self.audit.log("appointment_expired", appointment_id=expired.id, details={"ttl_minutes": self.ttl_minutes})
        return expired

    def expire_if_stale(self, appt: AppointmentDto) -> AppointmentDto:
        if self.is_stale(appt):
            return self._expire(appt)
        return appt

    def sweep_expired(self, now: Optional[datetime] = None) -> List[AppointmentDto]:
        now = now or self.clock()
        cutoff = now - timedelta(minutes=self.ttl_minutes)
        expired = []
        for appt in self.ledger.list_stale_pending(cutoff):
            result = self._expire(appt)
            if result.state == AppointmentState.EXPIRED:
                expired.append(result)
        if expired:
            logger.info(f"Expiry sweep released {len(expired)} unpaid appointment(s)")
        return expired

    async def process_reconciliation_cases(self) -> int:
        """Request refunds for payments captured without a live booking; returns how many were requested."""
        if self.reconciliation is None:
            return 0
        if not self.auto_refund or self.gateway is None:
            return 0

        requested = 0
        # Storage calls run off the event loop; sessions are synchronous
        for case in await asyncio.to_thread(self.reconciliation.list_open):
            if not case.payment_ref:
                logger.warning(f"Reconciliation case {case.id} has no payment reference; escalating to manual review")
                await asyncio.to_thread(self.reconciliation.record_failed_attempt, case.id, escalate=True)
                continue
            try:
                refund_ref = await asyncio.wait_for(
                    self.gateway.refund(case.payment_ref, case.amount, case.currency),
                    timeout=self.gateway_timeout,
                )
            except (asyncio.TimeoutError, GatewayError) as e:
                escalate = case.attempts + 1 >= self.max_refund_attempts
                logger.warning(f"Refund for reconciliation case {case.id} failed ({type(e).__name__}); attempt {case.attempts + 1}")
                await asyncio.to_thread(self.reconciliation.record_failed_attempt, case.id, escalate=escalate)
                if escalate:
                    logger.error(f"Reconciliation case {case.id} moved to manual review after {case.attempts + 1} attempts")
                continue
            await asyncio.to_thread(self.reconciliation.mark_refund_requested, case.id, refund_ref)
            requested += 1
            logger.info(f"Refund {refund_ref} requested for appointment {case.appointment_id} (case {case.id})")
            if self.audit:
                self.audit.log(
                    "refund_requested",
                    appointment_id=case.appointment_id,
                    details={"case_id": case.id, "refund_ref": refund_ref, "amount": case.amount},
                )
        return requested


async def run_supervisor_loop(
    scope: Callable[[], AbstractContextManager],
    interval_seconds: float,
    stop_event: asyncio.Event,
) -> None:
    """Run sweep + reconciliation every ``interval_seconds`` until ``stop_event`` is set.

    ``scope`` yields a fresh ExpirySupervisor (and its storage session) per pass.
    """
    logger.info(f"Expiry supervisor started (interval={interval_seconds}s)")
    while not stop_event.is_set():
        try:
            with scope() as supervisor:
                await asyncio.to_thread(supervisor.sweep_expired)
                await supervisor.process_reconciliation_cases()
        except Exception:
            logger.exception("Expiry supervisor pass failed")
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            pass
    logger.info("Expiry supervisor stopped")
