from datetime import date, datetime
from typing import List, Optional
from sqlalchemy import update
from sqlmodel import Session, select

from .....core.clock import as_utc, utcnow
from .....db.models import Appointment
from .....application.errors import Conflict, NotFound
from .....application.ports.appointments_repo import (
    AppointmentsRepository,
    AppointmentDto,
    AppointmentState,
    PatientSnapshot,
    ProviderSnapshot,
    ensure_transition_allowed,
)


class SqlAppointmentsRepository(AppointmentsRepository):
    def __init__(self, session: Session):
        self.session = session

    def _appt_to_dto(self, a: Appointment) -> AppointmentDto:
        return AppointmentDto(
            id=a.id,
            patient_id=a.patient_id,
            provider_id=a.provider_id,
            slot_date=a.slot_date,
            slot_time=a.slot_time,
            amount=a.amount,
            currency=a.currency,
            patient_snapshot=PatientSnapshot.from_dict(a.patient_snapshot),
            provider_snapshot=ProviderSnapshot.from_dict(a.provider_snapshot),
            state=AppointmentState(a.state),
            order_ref=a.order_ref,
            payment_ref=a.payment_ref,
            claim_token=a.claim_token,
            created_at=as_utc(a.created_at),
            state_changed_at=as_utc(a.state_changed_at),
        )

    def _load(self, appointment_id: int) -> Optional[Appointment]:
        return self.session.exec(select(Appointment).where(Appointment.id == appointment_id)).first()

    def create_pending(self, patient_id: str, provider_id: str, slot_date: date, slot_time: str, amount: int, currency: str, patient_snapshot: PatientSnapshot, provider_snapshot: ProviderSnapshot, claim_token: str) -> AppointmentDto:
        now = utcnow()
        appt = Appointment(
            patient_id=patient_id,
            provider_id=provider_id,
            slot_date=slot_date,
            slot_time=slot_time,
            amount=amount,
            currency=currency,
            patient_snapshot=patient_snapshot.to_dict(),
            provider_snapshot=provider_snapshot.to_dict(),
            state=AppointmentState.PENDING_PAYMENT.value,
            claim_token=claim_token,
            created_at=now,
            state_changed_at=now,
        )
        self.session.add(appt)
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(appt)
        return self._appt_to_dto(appt)

    def get_by_id(self, appointment_id: int) -> Optional[AppointmentDto]:
        a = self._load(appointment_id)
        return self._appt_to_dto(a) if a else None

    def transition(self, appointment_id: int, from_state: AppointmentState, to_state: AppointmentState, payment_ref: Optional[str] = None) -> AppointmentDto:
        ensure_transition_allowed(from_state, to_state)
        values = {"state": to_state.value, "state_changed_at": utcnow()}
        if payment_ref is not None:
            values["payment_ref"] = payment_ref
        # Conditional UPDATE: the WHERE on state is the compare-and-swap
        result = self.session.execute(
            update(Appointment)
            .where(Appointment.id == appointment_id)
            .where(Appointment.state == from_state.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        a = self._load(appointment_id)
        if not a:
            raise NotFound("Appointment not found", appointment_id)
        if result.rowcount == 0:
            raise Conflict(
                f"Appointment is {a.state}, expected {from_state.value}",
                appointment_id,
                current_state=a.state,
            )
        return self._appt_to_dto(a)

    def set_order_ref(self, appointment_id: int, order_ref: str) -> AppointmentDto:
        result = self.session.execute(
            update(Appointment)
            .where(Appointment.id == appointment_id)
            .where(Appointment.state == AppointmentState.PENDING_PAYMENT.value)
            .values(order_ref=order_ref)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        a = self._load(appointment_id)
        if not a:
            raise NotFound("Appointment not found", appointment_id)
        if result.rowcount == 0:
            raise Conflict(f"Appointment is {a.state}, expected pending_payment", appointment_id, current_state=a.state)
        return self._appt_to_dto(a)

    def list_for_patient(self, patient_id: str) -> List[AppointmentDto]:
        rows = self.session.exec(
            select(Appointment)
            .where(Appointment.patient_id == patient_id)
            .order_by(Appointment.slot_date.desc(), Appointment.slot_time.desc())
        ).all()
        return [self._appt_to_dto(r) for r in rows]

    def list_for_provider(self, provider_id: str) -> List[AppointmentDto]:
        rows = self.session.exec(
            select(Appointment)
            .where(Appointment.provider_id == provider_id)
            .order_by(Appointment.slot_date.desc(), Appointment.slot_time.desc())
        ).all()
        return [self._appt_to_dto(r) for r in rows]

    def list_stale_pending(self, created_before: datetime) -> List[AppointmentDto]:
        rows = self.session.exec(
            select(Appointment)
            .where(Appointment.state == AppointmentState.PENDING_PAYMENT.value)
            .where(Appointment.created_at < created_before)
            .order_by(Appointment.created_at)
        ).all()
        return [self._appt_to_dto(r) for r in rows]
