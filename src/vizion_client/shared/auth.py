from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TokenPair(BaseModel):
    """
    Access/refresh token pair as issued by the API.

    The API uses camelCase on the wire; both spellings are accepted.
    """

    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., alias="accessToken", min_length=1)
    refresh_token: str | None = Field(default=None, alias="refreshToken")

    @classmethod
    def from_refresh_body(cls, body: Any) -> "TokenPair":
        """
        Parse a refresh endpoint body.

        Tokens come either at the top level or nested under ``data``.
        """
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            body = body["data"]
        return cls.model_validate(body)


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    ECOLE = "ECOLE"
    INTERVENANT = "INTERVENANT"


class Ecole(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    name: str
    contact_email: str | None = Field(default=None, alias="contactEmail")
    address: str | None = None
    phone: str | None = None


class Intervenant(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    bio: str | None = None
    siret: str | None = None
    disponibility: bool | None = None
    status: str | None = None


class User(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    email: str
    role: UserRole
    name: str | None = None
    ecole: Ecole | None = None
    intervenant: Intervenant | None = None


class RegisterData(BaseModel):
    """Payload for ``POST /auth/register``."""

    model_config = ConfigDict(populate_by_name=True)

    email: str
    password: str
    role: UserRole
    name: str | None = None
    ecole_data: dict[str, Any] | None = Field(default=None, alias="ecoleData")
    intervenant_data: dict[str, Any] | None = Field(default=None, alias="intervenantData")


class AuthResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    success: bool = True
    user: User
    access_token: str = Field(..., alias="accessToken")
    refresh_token: str = Field(..., alias="refreshToken")
    expires_in: str | None = Field(default=None, alias="expiresIn")
