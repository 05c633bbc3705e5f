from typing import List
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .....core.clock import as_utc, utcnow
from .....db.models import PaymentEvent
from .....application.ports.payment_events_repo import PaymentEventsRepository, PaymentEventDto


class SqlPaymentEventsRepository(PaymentEventsRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, e: PaymentEvent) -> PaymentEventDto:
        return PaymentEventDto(
            id=e.id,
            gateway_event_id=e.gateway_event_id,
            appointment_id=e.appointment_id,
            verified_signature_ok=bool(e.verified_signature_ok),
            outcome=e.outcome,
            processed_at=as_utc(e.processed_at),
        )

    def is_processed(self, gateway_event_id: str) -> bool:
        existing = self.session.exec(
            select(PaymentEvent.id).where(PaymentEvent.dedup_key == gateway_event_id)
        ).first()
        return existing is not None

    def claim(self, gateway_event_id: str, appointment_id: int) -> bool:
        self.session.add(PaymentEvent(
            gateway_event_id=gateway_event_id,
            dedup_key=gateway_event_id,
            appointment_id=appointment_id,
            verified_signature_ok=True,
            outcome="processing",
        ))
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            return False
        return True

    def set_outcome(self, gateway_event_id: str, outcome: str) -> None:
        e = self.session.exec(select(PaymentEvent).where(PaymentEvent.dedup_key == gateway_event_id)).first()
        if not e:
            return
        e.outcome = outcome
        e.processed_at = utcnow()
        self.session.add(e)
        self.session.commit()

    def forget(self, gateway_event_id: str) -> None:
        self.session.execute(delete(PaymentEvent).where(PaymentEvent.dedup_key == gateway_event_id))
        self.session.commit()

    def record_rejected(self, gateway_event_id: str, appointment_id: int, outcome: str) -> None:
        self.session.add(PaymentEvent(
            gateway_event_id=gateway_event_id,
            appointment_id=appointment_id,
            verified_signature_ok=outcome != "signature_invalid",
            outcome=outcome,
        ))
        self.session.commit()

    def list_for_appointment(self, appointment_id: int) -> List[PaymentEventDto]:
        rows = self.session.exec(
            select(PaymentEvent)
            .where(PaymentEvent.appointment_id == appointment_id)
            .order_by(PaymentEvent.id)
        ).all()
        return [self._to_dto(r) for r in rows]
