import logging
from dataclasses import dataclass, field
from typing import Optional

from passlib.context import CryptContext

from ...core.config import settings
from ..errors import AuthError, NotFound
from ..ports.principal_repo import PrincipalRepository, PrincipalDto, Role
from ..ports.calendar_repo import CalendarRepository, ProviderDto

logger = logging.getLogger(__name__)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.PASSWORD_HASH_ROUNDS)


@dataclass
class PrincipalDirectory:
    principals: PrincipalRepository
    calendar: Optional[CalendarRepository] = None
    _dummy_hash: Optional[str] = field(default=None, init=False, repr=False)

    def hash_password(self, password: str) -> str:
        return pwd_context.hash(password)

    def verify_credentials(self, identifier: str, password: str) -> PrincipalDto:
        principal = self.principals.get_by_email(identifier.strip())
        if not principal:
            # Burn the same hashing cost so response time does not reveal unknown accounts
            if self._dummy_hash is None:
                self._dummy_hash = pwd_context.hash("consult-booking-dummy")
            pwd_context.verify(password, self._dummy_hash)
            raise AuthError("Invalid credentials")
        if not pwd_context.verify(password, principal.password_hash):
            logger.info(f"Failed login for principal {principal.id}")
            raise AuthError("Invalid credentials")
        if not principal.is_active:
            raise AuthError("Account is disabled")
        return principal

    def get_principal(self, principal_id: str) -> PrincipalDto:
        principal = self.principals.get_by_id(principal_id)
        if not principal:
            raise NotFound("Principal not found")
        return principal

    def register_principal(self, email: str, password: str, role: Role, display_name: str, phone: Optional[str] = None) -> PrincipalDto:
        return self.principals.add(email, role, self.hash_password(password), display_name, phone)

    def register_provider(self, email: str, password: str, display_name: str, fee_per_slot: int, currency: str, specialization: Optional[str] = None) -> ProviderDto:
        if self.calendar is None:
            raise RuntimeError("PrincipalDirectory needs a calendar repository to register providers")
        principal = self.register_principal(email, password, Role.PROVIDER, display_name)
        return self.calendar.add_provider(principal.id, fee_per_slot, currency, specialization)
