"""Authentication-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from clinic_api.db.enums import Role


class TokenPayload(BaseModel):
    """Decoded JWT payload structure (camelCase claims)."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    user_id: int = Field(alias="userId")
    username: str
    name: str = ""
    role: Role
    clinic_id: int | None = Field(default=None, alias="clinicId")
    is_owner: bool = Field(default=False, alias="isOwner")


class TenantContext(BaseModel):
    """
    Request-scoped identity and tenant, decoded from the access token.

    Never persisted. Only ``super_admin`` may have its ``clinic_id`` ignored by
    downstream queries.
    """
    model_config = ConfigDict(frozen=True)

    user_id: int
    username: str
    name: str = ""
    role: Role
    clinic_id: int | None = None
    is_owner: bool = False

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN


class LoginRequest(BaseModel):
    username: str | None = None
    email: str | None = None
    password: str | None = None


class ClinicSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    status: str
    plan_tier: str


class LoginUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    username: str
    email: str | None = None
    role: Role
    clinic_id: int | None = None
    is_owner: bool = Field(default=False, serialization_alias="isOwner")
    last_login_at: datetime | None = None
    clinic: ClinicSummary | None = None


class LoginResponse(BaseModel):
    token: str
    user: LoginUser


class VerifyResponse(BaseModel):
    valid: bool = True
    user: TenantContext
