"""Pydantic schemas for the authentication API."""

from datetime import datetime

from pydantic import BaseModel

from dreamauth.auth.types import Identity


class IdentityResponse(BaseModel):
    """The authenticated caller's local identity."""

    id: str
    external_subject: str
    email: str | None = None
    created_at: datetime

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityResponse":
        return cls.model_validate(identity.model_dump())


class AuthErrorBody(BaseModel):
    """Error body for rejected requests."""

    error: str
