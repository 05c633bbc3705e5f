# consult_booking/db/models/health/appointment.py
from typing import Optional, Dict, Any
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime, JSON
from ....core.clock import utcnow
from datetime import datetime, date

class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    id: Optional[int] = Field(default=None, primary_key=True)
    patient_id: str = Field(foreign_key="principals.id", index=True)
    provider_id: str = Field(foreign_key="providers.id", index=True)
    slot_date: date
    slot_time: str = Field(max_length=5)
    amount: int
    currency: str = Field(max_length=3)
    patient_snapshot: Dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    provider_snapshot: Dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    state: str = Field(default="pending_payment", index=True)
    order_ref: Optional[str] = Field(default=None, max_length=128, index=True)
    payment_ref: Optional[str] = Field(default=None, max_length=128, index=True)
    claim_token: str = Field(max_length=64)
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False, index=True))
    state_changed_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
