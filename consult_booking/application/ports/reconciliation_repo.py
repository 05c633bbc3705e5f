from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Protocol


class ReconciliationStatus(str, Enum):
    OPEN = "open"
    REFUND_REQUESTED = "refund_requested"
    MANUAL_REVIEW = "manual_review"


@dataclass(frozen=True)
class ReconciliationCaseDto:
    id: int
    appointment_id: int
    gateway_event_id: str
    payment_ref: Optional[str]
    amount: int
    currency: str
    reason: str
    status: ReconciliationStatus
    attempts: int
    refund_ref: Optional[str]
    created_at: datetime
    updated_at: datetime


class ReconciliationRepository(Protocol):
    def open_case(self, appointment_id: int, gateway_event_id: str, payment_ref: Optional[str], amount: int, currency: str, reason: str) -> ReconciliationCaseDto:
        ...

    def list_open(self) -> List[ReconciliationCaseDto]:
        ...

    def list_for_appointment(self, appointment_id: int) -> List[ReconciliationCaseDto]:
        ...

    def mark_refund_requested(self, case_id: int, refund_ref: str) -> None:
        ...

    def record_failed_attempt(self, case_id: int, escalate: bool) -> None:
        ...
