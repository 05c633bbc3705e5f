# consult_booking/db/models/payments/reconciliation_case.py
from typing import Optional
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime
from ....core.clock import utcnow
from datetime import datetime

class ReconciliationCase(SQLModel, table=True):
    __tablename__ = "reconciliation_cases"
    id: Optional[int] = Field(default=None, primary_key=True)
    appointment_id: int = Field(foreign_key="appointments.id", index=True)
    gateway_event_id: str = Field(max_length=128, unique=True)
    payment_ref: Optional[str] = Field(default=None, max_length=128)
    amount: int
    currency: str = Field(max_length=3)
    reason: str = Field(max_length=255)
    status: str = Field(default="open", index=True)
    attempts: int = Field(default=0)
    refund_ref: Optional[str] = Field(default=None, max_length=128)
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
