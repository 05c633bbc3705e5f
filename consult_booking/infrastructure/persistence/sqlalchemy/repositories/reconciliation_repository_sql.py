from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .....core.clock import as_utc, utcnow
from .....db.models import ReconciliationCase
from .....application.ports.reconciliation_repo import (
    ReconciliationRepository,
    ReconciliationCaseDto,
    ReconciliationStatus,
)


class SqlReconciliationRepository(ReconciliationRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, c: ReconciliationCase) -> ReconciliationCaseDto:
        return ReconciliationCaseDto(
            id=c.id,
            appointment_id=c.appointment_id,
            gateway_event_id=c.gateway_event_id,
            payment_ref=c.payment_ref,
            amount=c.amount,
            currency=c.currency,
            reason=c.reason,
            status=ReconciliationStatus(c.status),
            attempts=c.attempts,
            refund_ref=c.refund_ref,
            created_at=as_utc(c.created_at),
            updated_at=as_utc(c.updated_at),
        )

    def _by_event(self, gateway_event_id: str) -> Optional[ReconciliationCase]:
        return self.session.exec(
            select(ReconciliationCase).where(ReconciliationCase.gateway_event_id == gateway_event_id)
        ).first()

    def open_case(self, appointment_id: int, gateway_event_id: str, payment_ref: Optional[str], amount: int, currency: str, reason: str) -> ReconciliationCaseDto:
        existing = self._by_event(gateway_event_id)
        if existing:
            return self._to_dto(existing)
        case = ReconciliationCase(
            appointment_id=appointment_id,
            gateway_event_id=gateway_event_id,
            payment_ref=payment_ref,
            amount=amount,
            currency=currency,
            reason=reason,
        )
        self.session.add(case)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            return self._to_dto(self._by_event(gateway_event_id))
        self.session.refresh(case)
        return self._to_dto(case)

    def list_open(self) -> List[ReconciliationCaseDto]:
        rows = self.session.exec(
            select(ReconciliationCase)
            .where(ReconciliationCase.status == ReconciliationStatus.OPEN.value)
            .order_by(ReconciliationCase.created_at)
        ).all()
        return [self._to_dto(r) for r in rows]

    def list_for_appointment(self, appointment_id: int) -> List[ReconciliationCaseDto]:
        rows = self.session.exec(
            select(ReconciliationCase).where(ReconciliationCase.appointment_id == appointment_id)
        ).all()
        return [self._to_dto(r) for r in rows]

    def mark_refund_requested(self, case_id: int, refund_ref: str) -> None:
        c = self.session.exec(select(ReconciliationCase).where(ReconciliationCase.id == case_id)).first()
        if not c:
            return
        c.status = ReconciliationStatus.REFUND_REQUESTED.value
        c.refund_ref = refund_ref
        c.attempts += 1
        c.updated_at = utcnow()
        self.session.add(c)
        self.session.commit()

    def record_failed_attempt(self, case_id: int, escalate: bool) -> None:
        c = self.session.exec(select(ReconciliationCase).where(ReconciliationCase.id == case_id)).first()
        if not c:
            return
        c.attempts += 1
        if escalate:
            c.status = ReconciliationStatus.MANUAL_REVIEW.value
        c.updated_at = utcnow()
        self.session.add(c)
        self.session.commit()
