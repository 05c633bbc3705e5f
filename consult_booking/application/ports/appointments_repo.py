from dataclasses import dataclass, asdict
from datetime import datetime, date, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol


class AppointmentState(str, Enum):
    REQUESTED = "requested"
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


# States that hold the slot
ACTIVE_STATES = frozenset({AppointmentState.PENDING_PAYMENT, AppointmentState.CONFIRMED, AppointmentState.COMPLETED})
TERMINAL_STATES = frozenset({AppointmentState.COMPLETED, AppointmentState.CANCELLED, AppointmentState.EXPIRED})

ALLOWED_TRANSITIONS = {
    AppointmentState.PENDING_PAYMENT: frozenset({AppointmentState.CONFIRMED, AppointmentState.CANCELLED, AppointmentState.EXPIRED}),
    AppointmentState.CONFIRMED: frozenset({AppointmentState.CANCELLED, AppointmentState.COMPLETED}),
}


def ensure_transition_allowed(from_state: AppointmentState, to_state: AppointmentState) -> None:
    if to_state not in ALLOWED_TRANSITIONS.get(from_state, frozenset()):
        raise ValueError(f"Illegal appointment transition {from_state.value} -> {to_state.value}")


@dataclass(frozen=True)
class PatientSnapshot:
    patient_id: str
    display_name: str
    email: str
    phone: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PatientSnapshot":
        return cls(**data)


@dataclass(frozen=True)
class ProviderSnapshot:
    provider_id: str
    display_name: str
    specialization: Optional[str]
    fee_per_slot: int
    currency: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProviderSnapshot":
        return cls(**data)


@dataclass(frozen=True)
class AppointmentDto:
    id: int
    patient_id: str
    provider_id: str
    slot_date: date
    slot_time: str
    amount: int
    currency: str
    patient_snapshot: PatientSnapshot
    provider_snapshot: ProviderSnapshot
    state: AppointmentState
    order_ref: Optional[str]
    payment_ref: Optional[str]
    claim_token: str
    created_at: datetime
    state_changed_at: datetime

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def slot_start(self) -> datetime:
        # Slot labels are UTC wall-clock times
        return datetime.combine(self.slot_date, datetime.strptime(self.slot_time, "%H:%M").time(), tzinfo=timezone.utc)


class AppointmentsRepository(Protocol):
    def create_pending(self, patient_id: str, provider_id: str, slot_date: date, slot_time: str, amount: int, currency: str, patient_snapshot: PatientSnapshot, provider_snapshot: ProviderSnapshot, claim_token: str) -> AppointmentDto:
        ...

    def get_by_id(self, appointment_id: int) -> Optional[AppointmentDto]:
        ...

    def transition(self, appointment_id: int, from_state: AppointmentState, to_state: AppointmentState, payment_ref: Optional[str] = None) -> AppointmentDto:
        """Compare-and-swap the state; raises Conflict when the current state is not from_state.

        ``payment_ref`` records the gateway transaction that caused the change.
        """
        ...

    def set_order_ref(self, appointment_id: int, order_ref: str) -> AppointmentDto:
        ...

    def list_for_patient(self, patient_id: str) -> List[AppointmentDto]:
        ...

    def list_for_provider(self, provider_id: str) -> List[AppointmentDto]:
        ...

    def list_stale_pending(self, created_before: datetime) -> List[AppointmentDto]:
        ...
