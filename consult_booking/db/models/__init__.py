# Models package (re-export feature modules for stable imports)
from .users.principal import Principal
from .health.provider import Provider
from .health.slot_claim import SlotClaim
from .health.appointment import Appointment
from .payments.payment_event import PaymentEvent
from .payments.reconciliation_case import ReconciliationCase

__all__ = [
    "Principal",
    "Provider",
    "SlotClaim",
    "Appointment",
    "PaymentEvent",
    "ReconciliationCase",
]
