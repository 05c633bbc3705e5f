from fastapi import APIRouter, Depends

from ..application.ports.principal_repo import PrincipalDto
from ..application.services.calendar_service import ProviderCalendar, parse_slot
from ..dependencies import get_calendar, get_current_principal
from ..schemas.appointments.appointment import ProviderCalendarResponse

router = APIRouter(prefix="/providers", tags=["Providers"])


@router.get("/{provider_id}/calendar/{appointment_date}", response_model=ProviderCalendarResponse)
def get_provider_calendar(
    provider_id: str,
    appointment_date: str,
    current: PrincipalDto = Depends(get_current_principal),
    calendar: ProviderCalendar = Depends(get_calendar),
):
    provider = calendar.provider(provider_id)
    slot_date, _ = parse_slot(appointment_date, "00:00")
    return ProviderCalendarResponse(
        provider_id=provider.id,
        date=slot_date.isoformat(),
        booked_times=calendar.booked_times(provider.id, slot_date),
        is_available=provider.is_available,
    )
