import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Callable, List, Optional, Union

from ...core.clock import utcnow
from ...core.config import settings
from ..errors import (
    CancellationWindowClosed,
    Conflict,
    Forbidden,
    InvalidSlot,
    NotFound,
    SlotTaken,
    SlotUnavailable,
    StorageError,
)
from ..ports.appointments_repo import (
    AppointmentsRepository,
    AppointmentDto,
    AppointmentState,
    PatientSnapshot,
    ProviderSnapshot,
)
from ..ports.audit_logger import AuditLogger
from ..ports.principal_repo import PrincipalDto, Role
from .calendar_service import ProviderCalendar, parse_slot
from .directory_service import PrincipalDirectory
from .expiry_service import ExpirySupervisor

logger = logging.getLogger(__name__)

# Compare-and-swap retries for cancel; states only move forward so two are enough
_CANCEL_ATTEMPTS = 3


@dataclass
class BookingOrchestrator:
    calendar: ProviderCalendar
    ledger: AppointmentsRepository
    directory: PrincipalDirectory
    expiry: Optional[ExpirySupervisor] = None
    audit: Optional[AuditLogger] = None
    slot_minutes: int = field(default_factory=lambda: settings.SLOT_DURATION_MINUTES)
    horizon_days: int = field(default_factory=lambda: settings.BOOKING_HORIZON_DAYS)
    clock: Callable[[], datetime] = utcnow

    def _validate_slot(self, slot_date: Union[str, date], slot_time: str):
        slot_date, slot_time = parse_slot(slot_date, slot_time)
        hours, minutes = (int(part) for part in slot_time.split(":"))
        if (hours * 60 + minutes) % self.slot_minutes:
            raise InvalidSlot(f"Appointment time must fall on a {self.slot_minutes}-minute boundary")
        start = datetime.combine(slot_date, datetime.strptime(slot_time, "%H:%M").time(), tzinfo=timezone.utc)
        now = self.clock()
        if start <= now:
            raise InvalidSlot("Appointment time must be in the future")
        if start > now + timedelta(days=self.horizon_days):
            raise InvalidSlot(f"Appointments can be booked at most {self.horizon_days} days ahead")
        return slot_date, slot_time

    def _audit(self, action: str, actor_id: Optional[str], appointment_id: Optional[int], success: bool = True, **details) -> None:
        if self.audit:
            self.audit.log(action, actor_id=actor_id, appointment_id=appointment_id, success=success, details=details)

    def _fresh(self, appt: AppointmentDto) -> AppointmentDto:
        if self.expiry:
            return self.expiry.expire_if_stale(appt)
        return appt

    def book_appointment(self, patient_id: str, provider_id: str, slot_date: Union[str, date], slot_time: str) -> AppointmentDto:
        slot_date, slot_time = self._validate_slot(slot_date, slot_time)

        patient = self.directory.get_principal(patient_id)
        if patient.role != Role.PATIENT:
            raise Forbidden("Only patients can book appointments")
        provider_principal = self.directory.get_principal(provider_id)
        provider = self.calendar.provider(provider_id)
        if not provider.is_available:
            raise InvalidSlot("Provider is not accepting bookings")

        try:
            claim_token = self.calendar.claim_slot(provider_id, slot_date, slot_time)
        except SlotUnavailable:
            logger.info(f"Slot {provider_id} {slot_date} {slot_time} already taken; rejecting patient {patient_id}")
            raise SlotTaken("This time slot was just booked by someone else")

        try:
            # Price is fixed at claim time
            provider = self.calendar.provider(provider_id)
            appt = self.ledger.create_pending(
                patient_id=patient.id,
                provider_id=provider.id,
                slot_date=slot_date,
                slot_time=slot_time,
                amount=provider.fee_per_slot,
                currency=provider.currency,
                patient_snapshot=PatientSnapshot(
                    patient_id=patient.id,
                    display_name=patient.display_name,
                    email=patient.email,
                    phone=patient.phone,
                ),
                provider_snapshot=ProviderSnapshot(
                    provider_id=provider.id,
                    display_name=provider_principal.display_name,
                    specialization=provider.specialization,
                    fee_per_slot=provider.fee_per_slot,
                    currency=provider.currency,
                ),
                claim_token=claim_token,
            )
        except Exception as e:
            self.calendar.release_slot(provider_id, slot_date, slot_time, claim_token)
            logger.error(f"Ledger write failed after claiming {provider_id} {slot_date} {slot_time}; claim released", exc_info=True)
            raise StorageError("Failed to record appointment") from e
        except BaseException:
            # Interrupted mid-booking: never leave the claim behind
            self.calendar.release_slot(provider_id, slot_date, slot_time, claim_token)
            raise

        logger.info(f"Appointment {appt.id} pending payment for {provider_id} {slot_date} {slot_time}")
        self._audit("appointment_booked", patient.id, appt.id, amount=appt.amount, currency=appt.currency)
        return appt

    def _authorize(self, appt: AppointmentDto, actor: PrincipalDto) -> None:
        if actor.role == Role.OPERATOR:
            return
        if actor.role == Role.PATIENT and actor.id == appt.patient_id:
            return
        if actor.role == Role.PROVIDER and actor.id == appt.provider_id:
            return
        raise Forbidden("Not allowed to act on this appointment", appt.id)

    def _load(self, appointment_id: int) -> AppointmentDto:
        appt = self.ledger.get_by_id(appointment_id)
        if not appt:
            raise NotFound("Appointment not found", appointment_id)
        return appt

    def get_appointment(self, appointment_id: int, viewer_id: Optional[str] = None) -> AppointmentDto:
        appt = self._load(appointment_id)
        if viewer_id is not None:
            self._authorize(appt, self.directory.get_principal(viewer_id))
        return self._fresh(appt)

    def list_appointments_for_patient(self, patient_id: str) -> List[AppointmentDto]:
        return [self._fresh(a) for a in self.ledger.list_for_patient(patient_id)]

    def list_appointments_for_provider(self, provider_id: str) -> List[AppointmentDto]:
        return [self._fresh(a) for a in self.ledger.list_for_provider(provider_id)]

    def cancel_appointment(self, appointment_id: int, actor_id: str) -> AppointmentDto:
        appt = self._load(appointment_id)
        actor = self.directory.get_principal(actor_id)
        self._authorize(appt, actor)

        for _ in range(_CANCEL_ATTEMPTS):
            if appt.is_terminal:
                # Already cancelled, expired or completed: nothing left to do
                return appt
            if appt.state == AppointmentState.CONFIRMED and self.clock() >= appt.slot_start:
                raise CancellationWindowClosed("Cannot cancel an appointment that has already started", appt.id)
            try:
                cancelled = self.ledger.transition(appt.id, appt.state, AppointmentState.CANCELLED)
            except Conflict as e:
                logger.info(f"Cancel of appointment {appt.id} raced with another transition ({e.current_state})")
                appt = self._load(appointment_id)
                continue
            self.calendar.release_for(cancelled)
            logger.info(f"Appointment {cancelled.id} cancelled by {actor.role.value} {actor.id}")
            self._audit("appointment_cancelled", actor.id, cancelled.id, previous_state=appt.state.value)
            return cancelled

        raise Conflict("Appointment changed state while cancelling", appointment_id, current_state=appt.state.value)

    def complete_appointment(self, appointment_id: int, actor_id: str) -> AppointmentDto:
        appt = self._load(appointment_id)
        actor = self.directory.get_principal(actor_id)
        if actor.role == Role.PATIENT:
            raise Forbidden("Only the provider can mark an appointment as done", appt.id)
        self._authorize(appt, actor)
        if appt.state == AppointmentState.COMPLETED:
            return appt
        if self.clock() < appt.slot_start:
            raise InvalidSlot("Appointment time has not passed yet", appt.id)
        completed = self.ledger.transition(appt.id, AppointmentState.CONFIRMED, AppointmentState.COMPLETED)
        self._audit("appointment_completed", actor.id, completed.id)
        return completed
