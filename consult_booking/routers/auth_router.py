from fastapi import APIRouter, Depends
import logging

from ..application.ports.principal_repo import PrincipalDto
from ..application.services.directory_service import PrincipalDirectory
from ..dependencies import get_directory, get_current_principal
from ..schemas.auth.auth import LoginRequest, PrincipalResponse
from ..schemas.common.common import TokenResponse
from ..utils import create_jwt_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=TokenResponse)
def login(body: LoginRequest, directory: PrincipalDirectory = Depends(get_directory)):
    principal = directory.verify_credentials(body.email, body.password)
    token = create_jwt_token({"sub": principal.id, "role": principal.role.value})
    logger.info(f"Principal {principal.id} logged in as {principal.role.value}")
    return TokenResponse(access_token=token, role=principal.role.value, principal_id=principal.id)


@router.get("/me", response_model=PrincipalResponse)
def me(current: PrincipalDto = Depends(get_current_principal)):
    return PrincipalResponse(id=current.id, role=current.role.value, display_name=current.display_name, email=current.email)
