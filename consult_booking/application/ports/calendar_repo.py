from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Protocol


@dataclass(frozen=True)
class ProviderDto:
    id: str
    fee_per_slot: int
    currency: str
    is_available: bool
    specialization: Optional[str] = None


class CalendarRepository(Protocol):
    def get_provider(self, provider_id: str) -> Optional[ProviderDto]:
        ...

    def add_provider(self, provider_id: str, fee_per_slot: int, currency: str, specialization: Optional[str] = None, is_available: bool = True) -> ProviderDto:
        ...

    def update_fee(self, provider_id: str, fee_per_slot: int) -> None:
        ...

    def set_available(self, provider_id: str, is_available: bool) -> None:
        ...

    def is_claimed(self, provider_id: str, slot_date: date, slot_time: str) -> bool:
        ...

    def claim(self, provider_id: str, slot_date: date, slot_time: str) -> Optional[str]:
        """Insert the slot if absent in one atomic step; return the claim token or None."""
        ...

    def release(self, provider_id: str, slot_date: date, slot_time: str, claim_token: Optional[str] = None) -> bool:
        ...

    def booked_times(self, provider_id: str, slot_date: date) -> List[str]:
        ...
