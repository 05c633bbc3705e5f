# consult_booking/db/models/health/provider.py
from typing import Optional
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime
from ....core.clock import utcnow
from datetime import datetime

class Provider(SQLModel, table=True):
    __tablename__ = "providers"
    id: str = Field(foreign_key="principals.id", primary_key=True)
    specialization: Optional[str] = Field(max_length=100, default=None)
    fee_per_slot: int = Field(ge=0)
    currency: str = Field(max_length=3, default="INR")
    is_available: bool = Field(default=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
