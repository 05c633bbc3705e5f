from typing import Optional
from sqlmodel import Session, select

from .....core.clock import as_utc
from .....db.models import Principal
from .....application.ports.principal_repo import PrincipalRepository, PrincipalDto, Role


class SqlPrincipalRepository(PrincipalRepository):
    def __init__(self, session: Session):
        self.session = session

    def _to_dto(self, p: Principal) -> PrincipalDto:
        return PrincipalDto(
            id=p.id,
            email=p.email,
            role=Role(p.role),
            display_name=p.display_name,
            password_hash=p.password_hash,
            is_active=bool(p.is_active),
            created_at=as_utc(p.created_at),
            phone=p.phone,
        )

    def get_by_id(self, principal_id: str) -> Optional[PrincipalDto]:
        p = self.session.exec(select(Principal).where(Principal.id == principal_id)).first()
        return self._to_dto(p) if p else None

    def get_by_email(self, email: str) -> Optional[PrincipalDto]:
        p = self.session.exec(select(Principal).where(Principal.email == email.lower())).first()
        return self._to_dto(p) if p else None

    def add(self, email: str, role: Role, password_hash: str, display_name: str, phone: Optional[str] = None) -> PrincipalDto:
        p = Principal(
            email=email.lower(),
            role=role.value,
            password_hash=password_hash,
            display_name=display_name,
            phone=phone,
        )
        self.session.add(p)
        self.session.commit()
        self.session.refresh(p)
        return self._to_dto(p)
