from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol


class Role(str, Enum):
    PATIENT = "patient"
    PROVIDER = "provider"
    OPERATOR = "operator"


@dataclass(frozen=True)
class PrincipalDto:
    id: str
    email: str
    role: Role
    display_name: str
    password_hash: str
    is_active: bool
    created_at: datetime
    phone: Optional[str] = None


class PrincipalRepository(Protocol):
    def get_by_id(self, principal_id: str) -> Optional[PrincipalDto]:
        ...

    def get_by_email(self, email: str) -> Optional[PrincipalDto]:
        ...

    def add(self, email: str, role: Role, password_hash: str, display_name: str, phone: Optional[str] = None) -> PrincipalDto:
        ...
