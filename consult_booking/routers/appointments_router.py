from typing import List
from fastapi import APIRouter, Depends, HTTPException
import logging

from ..application.errors import BookingError
from ..application.ports.principal_repo import PrincipalDto, Role
from ..application.services.booking_service import BookingOrchestrator
from ..application.services.payment_service import PaymentReconciliationEngine
from ..dependencies import get_booking_orchestrator, get_current_principal, get_payment_engine
from ..schemas.appointments.appointment import AppointmentCreate, AppointmentResponse
from ..schemas.payments.payment import PaymentIntentResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


@router.post("/", response_model=AppointmentResponse, status_code=201)
def book_appointment(
    appointment_data: AppointmentCreate,
    current: PrincipalDto = Depends(get_current_principal),
    booking: BookingOrchestrator = Depends(get_booking_orchestrator),
):
    appt = booking.book_appointment(
        patient_id=current.id,
        provider_id=appointment_data.provider_id,
        slot_date=appointment_data.appointment_date,
        slot_time=appointment_data.appointment_time,
    )
    return AppointmentResponse.from_dto(appt)


@router.get("/", response_model=List[AppointmentResponse])
def list_appointments(
    current: PrincipalDto = Depends(get_current_principal),
    booking: BookingOrchestrator = Depends(get_booking_orchestrator),
):
    try:
        if current.role == Role.PROVIDER:
            appts = booking.list_appointments_for_provider(current.id)
        elif current.role == Role.PATIENT:
            appts = booking.list_appointments_for_patient(current.id)
        else:
            raise HTTPException(status_code=400, detail="Operators must query a specific patient or provider")
        return [AppointmentResponse.from_dto(a) for a in appts]
    except (HTTPException, BookingError):
        raise
    except Exception as e:
        logger.error(f"Error retrieving appointments: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to retrieve appointments")


@router.get("/patients/{patient_id}", response_model=List[AppointmentResponse])
def list_patient_appointments(
    patient_id: str,
    current: PrincipalDto = Depends(get_current_principal),
    booking: BookingOrchestrator = Depends(get_booking_orchestrator),
):
    if current.role != Role.OPERATOR and current.id != patient_id:
        raise HTTPException(status_code=403, detail="Not allowed to view these appointments")
    return [AppointmentResponse.from_dto(a) for a in booking.list_appointments_for_patient(patient_id)]


@router.get("/providers/{provider_id}", response_model=List[AppointmentResponse])
def list_provider_appointments(
    provider_id: str,
    current: PrincipalDto = Depends(get_current_principal),
    booking: BookingOrchestrator = Depends(get_booking_orchestrator),
):
    if current.role != Role.OPERATOR and current.id != provider_id:
        raise HTTPException(status_code=403, detail="Not allowed to view these appointments")
    return [AppointmentResponse.from_dto(a) for a in booking.list_appointments_for_provider(provider_id)]


@router.get("/{appointment_id}", response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    current: PrincipalDto = Depends(get_current_principal),
    booking: BookingOrchestrator = Depends(get_booking_orchestrator),
):
    return AppointmentResponse.from_dto(booking.get_appointment(appointment_id, viewer_id=current.id))


@router.put("/{appointment_id}/cancel", response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    current: PrincipalDto = Depends(get_current_principal),
    booking: BookingOrchestrator = Depends(get_booking_orchestrator),
):
    return AppointmentResponse.from_dto(booking.cancel_appointment(appointment_id, current.id))


@router.put("/{appointment_id}/complete", response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    current: PrincipalDto = Depends(get_current_principal),
    booking: BookingOrchestrator = Depends(get_booking_orchestrator),
):
    return AppointmentResponse.from_dto(booking.complete_appointment(appointment_id, current.id))


@router.post("/{appointment_id}/payment-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    appointment_id: int,
    current: PrincipalDto = Depends(get_current_principal),
    booking: BookingOrchestrator = Depends(get_booking_orchestrator),
    payments: PaymentReconciliationEngine = Depends(get_payment_engine),
):
    appt = booking.get_appointment(appointment_id, viewer_id=current.id)
    if current.role != Role.OPERATOR and current.id != appt.patient_id:
        raise HTTPException(status_code=403, detail="Only the booking patient can pay for this appointment")
    order = await payments.create_payment_intent(appt.id)
    return PaymentIntentResponse(
        appointment_id=appt.id,
        order_id=order.order_id,
        amount=order.amount,
        currency=order.currency,
        receipt=order.receipt,
    )
