from dataclasses import dataclass
from datetime import datetime
from typing import List, Protocol


@dataclass(frozen=True)
class PaymentEventDto:
    id: int
    gateway_event_id: str
    appointment_id: int
    verified_signature_ok: bool
    outcome: str
    processed_at: datetime


class PaymentEventsRepository(Protocol):
    def is_processed(self, gateway_event_id: str) -> bool:
        ...

    def claim(self, gateway_event_id: str, appointment_id: int) -> bool:
        """Record a verified event; False if the same event id was already recorded."""
        ...

    def set_outcome(self, gateway_event_id: str, outcome: str) -> None:
        ...

    def forget(self, gateway_event_id: str) -> None:
        ...

    def record_rejected(self, gateway_event_id: str, appointment_id: int, outcome: str) -> None:
        ...

    def list_for_appointment(self, appointment_id: int) -> List[PaymentEventDto]:
        ...
