# consult_booking/db/models/users/principal.py
from typing import Optional
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, DateTime
from ....core.clock import utcnow
from datetime import datetime
import uuid

class Principal(SQLModel, table=True):
    __tablename__ = "principals"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    email: str = Field(max_length=255, unique=True, index=True)
    role: str = Field(max_length=20, index=True)
    password_hash: str = Field(max_length=255)
    display_name: str = Field(max_length=100)
    phone: Optional[str] = Field(max_length=20, default=None)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
