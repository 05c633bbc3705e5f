# Request-scoped wiring of repositories and services
import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlmodel import Session

from .core.config import settings
from .database import engine, get_session
from .utils import decode_jwt_token
from .application.errors import NotFound
from .application.ports.payment_gateway import PaymentGateway, SignatureVerifier
from .application.ports.principal_repo import PrincipalDto
from .application.ports.rate_limiter import RateLimiter
from .application.services.booking_service import BookingOrchestrator
from .application.services.calendar_service import ProviderCalendar
from .application.services.directory_service import PrincipalDirectory
from .application.services.expiry_service import ExpirySupervisor
from .application.services.payment_service import PaymentReconciliationEngine
from .infrastructure.audit.std_logger import StdAuditLogger
from .infrastructure.payments.http_gateway import HttpPaymentGateway
from .infrastructure.payments.signature import HmacSignatureVerifier
from .infrastructure.persistence.sqlalchemy.repositories.appointments_repository_sql import SqlAppointmentsRepository
from .infrastructure.persistence.sqlalchemy.repositories.calendar_repository_sql import SqlCalendarRepository
from .infrastructure.persistence.sqlalchemy.repositories.payment_events_repository_sql import SqlPaymentEventsRepository
from .infrastructure.persistence.sqlalchemy.repositories.principal_repository_sql import SqlPrincipalRepository
from .infrastructure.persistence.sqlalchemy.repositories.reconciliation_repository_sql import SqlReconciliationRepository
from .infrastructure.rate_limit.memory_rate_limiter import InMemoryRateLimiter
from .infrastructure.rate_limit.redis_rate_limiter import RedisRateLimiter

logger = logging.getLogger(__name__)

audit_logger = StdAuditLogger()


@lru_cache()
def get_payment_gateway() -> PaymentGateway:
    return HttpPaymentGateway()


@lru_cache()
def get_signature_verifier() -> SignatureVerifier:
    return HmacSignatureVerifier(settings.PAYMENT_WEBHOOK_SECRET)


@lru_cache()
def get_trust_counter() -> RateLimiter:
    if settings.REDIS_URL:
        logger.info("Using Redis for payment tamper counters")
        return RedisRateLimiter(settings.REDIS_URL)
    return InMemoryRateLimiter()


def build_expiry_supervisor(session: Session, gateway: Optional[PaymentGateway] = None) -> ExpirySupervisor:
    return ExpirySupervisor(
        ledger=SqlAppointmentsRepository(session),
        calendar=ProviderCalendar(SqlCalendarRepository(session)),
        reconciliation=SqlReconciliationRepository(session),
        gateway=gateway,
        audit=audit_logger,
    )


@contextmanager
def supervisor_scope() -> Iterator[ExpirySupervisor]:
    with Session(engine) as session:
        yield build_expiry_supervisor(session, get_payment_gateway())


def get_directory(session: Session = Depends(get_session)) -> PrincipalDirectory:
    return PrincipalDirectory(SqlPrincipalRepository(session), SqlCalendarRepository(session))


def get_calendar(session: Session = Depends(get_session)) -> ProviderCalendar:
    return ProviderCalendar(SqlCalendarRepository(session))


def get_expiry_supervisor(session: Session = Depends(get_session)) -> ExpirySupervisor:
    return build_expiry_supervisor(session)


def get_booking_orchestrator(
    session: Session = Depends(get_session),
    directory: PrincipalDirectory = Depends(get_directory),
    calendar: ProviderCalendar = Depends(get_calendar),
    expiry: ExpirySupervisor = Depends(get_expiry_supervisor),
) -> BookingOrchestrator:
    return BookingOrchestrator(
        calendar=calendar,
        ledger=SqlAppointmentsRepository(session),
        directory=directory,
        expiry=expiry,
        audit=audit_logger,
    )


def get_payment_engine(
    session: Session = Depends(get_session),
    calendar: ProviderCalendar = Depends(get_calendar),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    verifier: SignatureVerifier = Depends(get_signature_verifier),
    trust_counter: RateLimiter = Depends(get_trust_counter),
) -> PaymentReconciliationEngine:
    return PaymentReconciliationEngine(
        ledger=SqlAppointmentsRepository(session),
        calendar=calendar,
        events=SqlPaymentEventsRepository(session),
        reconciliation=SqlReconciliationRepository(session),
        gateway=gateway,
        verifier=verifier,
        trust_counter=trust_counter,
        audit=audit_logger,
    )


# Auth scheme
oauth2_scheme = HTTPBearer(auto_error=False)


def get_current_principal(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(oauth2_scheme),
    directory: PrincipalDirectory = Depends(get_directory),
) -> PrincipalDto:
    token = credentials.credentials if credentials and credentials.credentials else request.cookies.get("access_token")
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")
    payload = decode_jwt_token(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    principal_id = payload.get("sub")
    if not principal_id:
        raise HTTPException(status_code=401, detail="Invalid token: missing principal ID")
    try:
        principal = directory.get_principal(principal_id)
    except NotFound:
        raise HTTPException(status_code=401, detail="Invalid token: unknown principal")
    if not principal.is_active:
        raise HTTPException(status_code=401, detail="Account is disabled")
    return principal
