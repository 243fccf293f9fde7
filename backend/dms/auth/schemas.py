from pydantic import BaseModel, EmailStr, Field

from dms.auth.roles import Role


class RegisterAdminRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=12, max_length=256)
    name: str = Field(min_length=2, max_length=255)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=256)
    totp_code: str | None = Field(default=None, max_length=16)


class UserOut(BaseModel):
    id: str
    email: EmailStr
    name: str | None = None
    role: Role
    tenant_id: str | None = None
    is_active: bool
    two_factor_enabled: bool


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut


class TwoFactorSetupResponse(BaseModel):
    secret: str
    qr_payload: str


class TwoFactorVerifyRequest(BaseModel):
    secret: str = Field(min_length=16, max_length=128)
    totp_code: str = Field(min_length=6, max_length=6)


class OkResponse(BaseModel):
    ok: bool = True
    message: str | None = None
