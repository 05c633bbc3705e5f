import threading
from datetime import timedelta

import pytest
from sqlmodel import Session

from consult_booking.application.errors import Conflict, SlotTaken
from consult_booking.application.ports.appointments_repo import AppointmentState, PatientSnapshot, ProviderSnapshot
from consult_booking.application.ports.principal_repo import Role
from consult_booking.application.ports.reconciliation_repo import ReconciliationStatus
from consult_booking.application.services.booking_service import BookingOrchestrator
from consult_booking.application.services.calendar_service import ProviderCalendar
from consult_booking.application.services.directory_service import PrincipalDirectory
from consult_booking.core.clock import utcnow
from consult_booking.database import build_engine, create_db_and_tables
from consult_booking.infrastructure.persistence.sqlalchemy.repositories.appointments_repository_sql import SqlAppointmentsRepository
from consult_booking.infrastructure.persistence.sqlalchemy.repositories.calendar_repository_sql import SqlCalendarRepository
from consult_booking.infrastructure.persistence.sqlalchemy.repositories.payment_events_repository_sql import SqlPaymentEventsRepository
from consult_booking.infrastructure.persistence.sqlalchemy.repositories.principal_repository_sql import SqlPrincipalRepository
from consult_booking.infrastructure.persistence.sqlalchemy.repositories.reconciliation_repository_sql import SqlReconciliationRepository

from support import PASSWORD, future_date


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'booking.db'}")
    create_db_and_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def seeded(session):
    directory = PrincipalDirectory(SqlPrincipalRepository(session), SqlCalendarRepository(session))
    provider = directory.register_provider("Dr.P@Example.com", PASSWORD, "Dr. P", 500, "INR")
    patient = directory.register_principal("alice@example.com", PASSWORD, Role.PATIENT, "Alice")
    return provider.id, patient.id


def make_pending(session, provider_id, patient_id, slot_time="10:00"):
    day = utcnow().date() + timedelta(days=3)
    token = SqlCalendarRepository(session).claim(provider_id, day, slot_time)
    return SqlAppointmentsRepository(session).create_pending(
        patient_id=patient_id,
        provider_id=provider_id,
        slot_date=day,
        slot_time=slot_time,
        amount=500,
        currency="INR",
        patient_snapshot=PatientSnapshot(patient_id, "Alice", "alice@example.com"),
        provider_snapshot=ProviderSnapshot(provider_id, "Dr. P", None, 500, "INR"),
        claim_token=token,
    )


def test_principal_email_is_case_insensitive(session, seeded):
    repo = SqlPrincipalRepository(session)
    assert repo.get_by_email("DR.P@example.com").id == seeded[0]


def test_slot_claim_is_exclusive(session, seeded):
    provider_id, _ = seeded
    repo = SqlCalendarRepository(session)
    day = utcnow().date() + timedelta(days=1)

    token = repo.claim(provider_id, day, "10:00")
    assert token
    assert repo.claim(provider_id, day, "10:00") is None
    assert repo.booked_times(provider_id, day) == ["10:00"]

    assert repo.release(provider_id, day, "10:00", "someone-else") is False
    assert repo.release(provider_id, day, "10:00", token) is True
    assert repo.booked_times(provider_id, day) == []


def test_transition_is_compare_and_swap(session, seeded):
    repo = SqlAppointmentsRepository(session)
    appt = make_pending(session, *seeded)

    confirmed = repo.transition(appt.id, AppointmentState.PENDING_PAYMENT, AppointmentState.CONFIRMED)
    assert confirmed.state == AppointmentState.CONFIRMED

    with pytest.raises(Conflict) as exc:
        repo.transition(appt.id, AppointmentState.PENDING_PAYMENT, AppointmentState.EXPIRED)
    assert exc.value.current_state == "confirmed"


def test_illegal_transition_is_refused(session, seeded):
    repo = SqlAppointmentsRepository(session)
    appt = make_pending(session, *seeded)
    with pytest.raises(ValueError):
        repo.transition(appt.id, AppointmentState.PENDING_PAYMENT, AppointmentState.COMPLETED)


def test_snapshots_survive_storage(session, seeded):
    appt = make_pending(session, *seeded)
    stored = SqlAppointmentsRepository(session).get_by_id(appt.id)
    assert stored.patient_snapshot == appt.patient_snapshot
    assert stored.provider_snapshot.fee_per_slot == 500


def test_order_ref_only_while_pending(session, seeded):
    repo = SqlAppointmentsRepository(session)
    appt = make_pending(session, *seeded)
    assert repo.set_order_ref(appt.id, "order_1").order_ref == "order_1"

    repo.transition(appt.id, AppointmentState.PENDING_PAYMENT, AppointmentState.EXPIRED)
    with pytest.raises(Conflict):
        repo.set_order_ref(appt.id, "order_2")


def test_confirmation_records_payment_ref(session, seeded):
    repo = SqlAppointmentsRepository(session)
    appt = make_pending(session, *seeded)
    repo.set_order_ref(appt.id, "order_1")
    confirmed = repo.transition(appt.id, AppointmentState.PENDING_PAYMENT, AppointmentState.CONFIRMED, payment_ref="pay_1")

    stored = repo.get_by_id(appt.id)
    assert confirmed.payment_ref == "pay_1"
    assert stored.order_ref == "order_1"
    assert stored.payment_ref == "pay_1"


def test_stored_timestamps_are_utc_aware(session, seeded):
    appt = make_pending(session, *seeded)
    stored = SqlAppointmentsRepository(session).get_by_id(appt.id)

    assert stored.created_at.tzinfo is not None
    assert stored.created_at.utcoffset() == timedelta(0)
    assert stored.slot_start.tzinfo is not None
    assert stored.created_at <= utcnow()


def test_list_stale_pending(session, seeded):
    repo = SqlAppointmentsRepository(session)
    appt = make_pending(session, *seeded)
    assert repo.list_stale_pending(utcnow() - timedelta(minutes=15)) == []
    assert [a.id for a in repo.list_stale_pending(utcnow() + timedelta(seconds=1))] == [appt.id]


def test_payment_event_dedup(session, seeded):
    appt = make_pending(session, *seeded)
    repo = SqlPaymentEventsRepository(session)

    # Rejected deliveries never occupy the event id
    repo.record_rejected("evt_1", appt.id, "signature_invalid")
    repo.record_rejected("evt_1", appt.id, "signature_invalid")
    assert not repo.is_processed("evt_1")

    assert repo.claim("evt_1", appt.id) is True
    assert repo.claim("evt_1", appt.id) is False
    repo.set_outcome("evt_1", "confirmed")
    assert repo.is_processed("evt_1")

    repo.forget("evt_1")
    assert not repo.is_processed("evt_1")
    assert [e.outcome for e in repo.list_for_appointment(appt.id)] == ["signature_invalid", "signature_invalid"]


def test_reconciliation_cases(session, seeded):
    appt = make_pending(session, *seeded)
    repo = SqlReconciliationRepository(session)

    case = repo.open_case(appt.id, "evt_9", "pay_9", 500, "INR", "payment captured after appointment became expired")
    assert repo.open_case(appt.id, "evt_9", "pay_9", 500, "INR", "again").id == case.id
    assert [c.id for c in repo.list_open()] == [case.id]

    repo.record_failed_attempt(case.id, escalate=False)
    repo.record_failed_attempt(case.id, escalate=True)
    [stored] = repo.list_for_appointment(appt.id)
    assert stored.status == ReconciliationStatus.MANUAL_REVIEW
    assert stored.attempts == 2
    assert repo.list_open() == []


def test_concurrent_sql_bookings_yield_one_winner(engine, seeded):
    provider_id, _ = seeded
    with Session(engine) as s:
        directory = PrincipalDirectory(SqlPrincipalRepository(s), SqlCalendarRepository(s))
        patients = [
            directory.register_principal(f"p{i}@example.com", PASSWORD, Role.PATIENT, f"Patient {i}").id
            for i in range(6)
        ]

    day = future_date()
    barrier = threading.Barrier(len(patients))
    wins, losses = [], []

    def attempt(patient_id):
        with Session(engine) as s:
            booking = BookingOrchestrator(
                calendar=ProviderCalendar(SqlCalendarRepository(s)),
                ledger=SqlAppointmentsRepository(s),
                directory=PrincipalDirectory(SqlPrincipalRepository(s), SqlCalendarRepository(s)),
            )
            barrier.wait()
            try:
                wins.append(booking.book_appointment(patient_id, provider_id, day, "14:00").id)
            except SlotTaken:
                losses.append(patient_id)

    threads = [threading.Thread(target=attempt, args=(p,)) for p in patients]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(wins) == 1
    assert len(losses) == len(patients) - 1
    with Session(engine) as s:
        assert len(SqlAppointmentsRepository(s).list_for_provider(provider_id)) == 1
