# consult_booking/schemas/auth/auth.py
from pydantic import BaseModel, Field

class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)

class PrincipalResponse(BaseModel):
    id: str
    role: str
    display_name: str
    email: str
