import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Tuple, Union

from ..errors import InvalidSlot, NotFound, SlotUnavailable
from ..ports.calendar_repo import CalendarRepository, ProviderDto
from ..ports.appointments_repo import AppointmentDto

logger = logging.getLogger(__name__)


def parse_slot(slot_date: Union[str, date], slot_time: str) -> Tuple[date, str]:
    """Normalise a (YYYY-MM-DD, HH:MM) pair; the time label is always zero padded."""
    if isinstance(slot_date, str):
        try:
            slot_date = datetime.strptime(slot_date, "%Y-%m-%d").date()
        except ValueError:
            raise InvalidSlot("Invalid appointment date format. Use YYYY-MM-DD")
    try:
        parsed_time = datetime.strptime(slot_time, "%H:%M").time()
    except (TypeError, ValueError):
        raise InvalidSlot("Invalid appointment time format. Use HH:MM")
    return slot_date, parsed_time.strftime("%H:%M")


@dataclass
class ProviderCalendar:
    repo: CalendarRepository

    def provider(self, provider_id: str) -> ProviderDto:
        provider = self.repo.get_provider(provider_id)
        if not provider:
            raise NotFound("Provider not found")
        return provider

    def is_slot_free(self, provider_id: str, slot_date: Union[str, date], slot_time: str) -> bool:
        slot_date, slot_time = parse_slot(slot_date, slot_time)
        provider = self.repo.get_provider(provider_id)
        if not provider or not provider.is_available:
            return False
        return not self.repo.is_claimed(provider_id, slot_date, slot_time)

    def claim_slot(self, provider_id: str, slot_date: Union[str, date], slot_time: str) -> str:
        slot_date, slot_time = parse_slot(slot_date, slot_time)
        token = self.repo.claim(provider_id, slot_date, slot_time)
        if token is None:
            raise SlotUnavailable(f"Slot {slot_date.isoformat()} {slot_time} is already claimed")
        logger.debug(f"Claimed {provider_id} {slot_date} {slot_time}")
        return token

    def release_slot(self, provider_id: str, slot_date: Union[str, date], slot_time: str, claim_token: Optional[str] = None) -> None:
        slot_date, slot_time = parse_slot(slot_date, slot_time)
        released = self.repo.release(provider_id, slot_date, slot_time, claim_token)
        if released:
            logger.debug(f"Released {provider_id} {slot_date} {slot_time}")

    def release_for(self, appointment: AppointmentDto) -> None:
        self.release_slot(appointment.provider_id, appointment.slot_date, appointment.slot_time, appointment.claim_token)

    def booked_times(self, provider_id: str, slot_date: Union[str, date]) -> List[str]:
        if isinstance(slot_date, str):
            slot_date, _ = parse_slot(slot_date, "00:00")
        return self.repo.booked_times(provider_id, slot_date)
