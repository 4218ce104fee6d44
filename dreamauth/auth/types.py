"""Type definitions for provisioned identities and authentication results."""

from datetime import UTC, datetime
from typing import Self

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from dreamauth.core.errors import RejectionReason


class Identity(BaseModel):
    """Durable local identity mapped 1:1 to a provider subject."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    external_subject: str
    email: str | None = None
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        # SQLite hands back naive timestamps; stored values are always UTC.
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class AuthenticationResult(BaseModel):
    """Per-request outcome: an identity, or a rejection reason."""

    model_config = ConfigDict(frozen=True)

    authenticated: bool
    identity: Identity | None = None
    reason: RejectionReason | None = None

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> Self:
        if self.authenticated != (self.identity is not None):
            raise ValueError("authenticated results carry an identity")
        if self.authenticated == (self.reason is not None):
            raise ValueError("rejected results carry a reason")
        return self

    @classmethod
    def accept(cls, identity: Identity) -> "AuthenticationResult":
        return cls(authenticated=True, identity=identity)

    @classmethod
    def reject(cls, reason: RejectionReason) -> "AuthenticationResult":
        return cls(authenticated=False, reason=reason)
