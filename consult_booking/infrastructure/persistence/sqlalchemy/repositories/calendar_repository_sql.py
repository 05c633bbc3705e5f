import uuid
from datetime import date
from typing import List, Optional
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .....core.clock import utcnow
from .....db.models import Provider, SlotClaim
from .....application.ports.calendar_repo import CalendarRepository, ProviderDto


class SqlCalendarRepository(CalendarRepository):
    def __init__(self, session: Session):
        self.session = session

    def _provider_to_dto(self, p: Provider) -> ProviderDto:
        return ProviderDto(
            id=p.id,
            fee_per_slot=p.fee_per_slot,
            currency=p.currency,
            is_available=bool(p.is_available),
            specialization=p.specialization,
        )

    def _get_provider_row(self, provider_id: str) -> Optional[Provider]:
        return self.session.exec(select(Provider).where(Provider.id == provider_id)).first()

    def get_provider(self, provider_id: str) -> Optional[ProviderDto]:
        p = self._get_provider_row(provider_id)
        return self._provider_to_dto(p) if p else None

    def add_provider(self, provider_id: str, fee_per_slot: int, currency: str, specialization: Optional[str] = None, is_available: bool = True) -> ProviderDto:
        p = Provider(
            id=provider_id,
            fee_per_slot=fee_per_slot,
            currency=currency,
            specialization=specialization,
            is_available=is_available,
        )
        self.session.add(p)
        self.session.commit()
        self.session.refresh(p)
        return self._provider_to_dto(p)

    def update_fee(self, provider_id: str, fee_per_slot: int) -> None:
        p = self._get_provider_row(provider_id)
        if not p:
            return
        p.fee_per_slot = fee_per_slot
        p.updated_at = utcnow()
        self.session.add(p)
        self.session.commit()

    def set_available(self, provider_id: str, is_available: bool) -> None:
        p = self._get_provider_row(provider_id)
        if not p:
            return
        p.is_available = is_available
        p.updated_at = utcnow()
        self.session.add(p)
        self.session.commit()

    def is_claimed(self, provider_id: str, slot_date: date, slot_time: str) -> bool:
        existing = self.session.exec(
            select(SlotClaim.id)
            .where(SlotClaim.provider_id == provider_id)
            .where(SlotClaim.slot_date == slot_date)
            .where(SlotClaim.slot_time == slot_time)
        ).first()
        return existing is not None

    def claim(self, provider_id: str, slot_date: date, slot_time: str) -> Optional[str]:
        # A single INSERT; the unique constraint decides which concurrent claim wins
        token = uuid.uuid4().hex
        self.session.add(SlotClaim(provider_id=provider_id, slot_date=slot_date, slot_time=slot_time, claim_token=token))
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            return None
        return token

    def release(self, provider_id: str, slot_date: date, slot_time: str, claim_token: Optional[str] = None) -> bool:
        stmt = (
            delete(SlotClaim)
            .where(SlotClaim.provider_id == provider_id)
            .where(SlotClaim.slot_date == slot_date)
            .where(SlotClaim.slot_time == slot_time)
        )
        if claim_token is not None:
            stmt = stmt.where(SlotClaim.claim_token == claim_token)
        result = self.session.execute(stmt)
        self.session.commit()
        return result.rowcount > 0

    def booked_times(self, provider_id: str, slot_date: date) -> List[str]:
        rows = self.session.exec(
            select(SlotClaim.slot_time)
            .where(SlotClaim.provider_id == provider_id)
            .where(SlotClaim.slot_date == slot_date)
            .order_by(SlotClaim.slot_time)
        ).all()
        return list(rows)
