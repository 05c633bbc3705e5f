# consult_booking/schemas/appointments/appointment.py
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime
import re

from ...application.ports.appointments_repo import AppointmentDto

class AppointmentCreate(BaseModel):
    provider_id: str
    appointment_date: str = Field(..., description="YYYY-MM-DD")
    appointment_time: str = Field(..., description="HH:MM")

    @field_validator("appointment_time")
    @classmethod
    def validate_time(cls, v):
        if not re.match(r"^\d{1,2}:\d{2}$", v):
            raise ValueError("Invalid appointment time format. Use HH:MM")
        return v

class PatientSnapshotResponse(BaseModel):
    patient_id: str
    display_name: str
    email: str
    phone: Optional[str] = None

class ProviderSnapshotResponse(BaseModel):
    provider_id: str
    display_name: str
    specialization: Optional[str] = None
    fee_per_slot: int
    currency: str

class AppointmentResponse(BaseModel):
    id: int
    patient_id: str
    provider_id: str
    appointment_date: str
    appointment_time: str
    amount: int
    currency: str
    state: str
    order_ref: Optional[str] = None
    payment_ref: Optional[str] = None
    patient: PatientSnapshotResponse
    provider: ProviderSnapshotResponse
    created_at: datetime
    state_changed_at: datetime

    @classmethod
    def from_dto(cls, a: AppointmentDto) -> "AppointmentResponse":
        return cls(
            id=a.id,
            patient_id=a.patient_id,
            provider_id=a.provider_id,
            appointment_date=a.slot_date.strftime("%Y-%m-%d"),
            appointment_time=a.slot_time,
            amount=a.amount,
            currency=a.currency,
            state=a.state.value,
            order_ref=a.order_ref,
            payment_ref=a.payment_ref,
            patient=PatientSnapshotResponse(**a.patient_snapshot.to_dict()),
            provider=ProviderSnapshotResponse(**a.provider_snapshot.to_dict()),
            created_at=a.created_at,
            state_changed_at=a.state_changed_at,
        )

class ProviderCalendarResponse(BaseModel):
    provider_id: str
    date: str
    booked_times: List[str]
    is_available: bool
