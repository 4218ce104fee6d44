"""Type definitions for provider key sets and verified tokens."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SigningKey(BaseModel):
    """A provider public key, resolved from the key set by kid."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kid: str
    algorithm: str
    key: Any
    fetched_at: float


class JWKSResponse(BaseModel):
    """JSON Web Key Set response. Entries stay raw until selected by kid."""

    keys: list[dict[str, Any]]

    def entries_by_kid(self) -> dict[str, dict[str, Any]]:
        """Index entries by their string ``kid``; entries without one are skipped."""
        indexed: dict[str, dict[str, Any]] = {}
        for entry in self.keys:
            kid = entry.get("kid")
            if isinstance(kid, str) and kid:
                indexed[kid] = entry
        return indexed


class VerifiedClaims(BaseModel):
    """Identity claims extracted from a verified token."""

    model_config = ConfigDict(frozen=True)

    subject: str = Field(min_length=1)
    email: str | None = None
