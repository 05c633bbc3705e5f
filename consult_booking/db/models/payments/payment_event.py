# consult_booking/db/models/payments/payment_event.py
from typing import Optional
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime
from ....core.clock import utcnow
from datetime import datetime

class PaymentEvent(SQLModel, table=True):
    __tablename__ = "payment_events"
    id: Optional[int] = Field(default=None, primary_key=True)
    gateway_event_id: str = Field(max_length=128, index=True)
    # Set only for signature-verified events; NULLs never collide.
    dedup_key: Optional[str] = Field(default=None, max_length=128, unique=True)
    appointment_id: int = Field(foreign_key="appointments.id", index=True)
    verified_signature_ok: bool = Field(default=False)
    outcome: str = Field(default="received", max_length=32)
    processed_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
