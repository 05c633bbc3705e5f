# consult_booking/db/models/health/slot_claim.py
from typing import Optional
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime, UniqueConstraint
from ....core.clock import utcnow
from datetime import datetime, date

class SlotClaim(SQLModel, table=True):
    """One row per taken slot; the unique constraint is the booking lock."""
    __tablename__ = "slot_claims"
    __table_args__ = (
        UniqueConstraint("provider_id", "slot_date", "slot_time", name="uq_slot_claim_slot"),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    provider_id: str = Field(foreign_key="providers.id", index=True)
    slot_date: date = Field(index=True)
    slot_time: str = Field(max_length=5)
    claim_token: str = Field(max_length=64, unique=True)
    claimed_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
