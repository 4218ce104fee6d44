"""Error taxonomy for token authentication and identity provisioning.

Every component raises a subclass of :class:`AuthError`. Each class names the
pipeline stage that failed and the rejection reason the gateway reports to
callers; library exceptions are translated at the component boundary.
"""

from enum import StrEnum
from typing import ClassVar


class RejectionReason(StrEnum):
    """Closed set of reasons exposed by the authentication gateway."""

    MISSING_CREDENTIAL = "missing_credential"
    TOKEN_MALFORMED = "token_malformed"
    ALGORITHM_NOT_ALLOWED = "algorithm_not_allowed"
    KEY_RESOLUTION_FAILED = "key_resolution_failed"
    SIGNATURE_INVALID = "signature_invalid"
    ISSUER_MISMATCH = "issuer_mismatch"
    TOKEN_EXPIRED = "token_expired"
    CLAIMS_INVALID = "claims_invalid"
    PROVISIONING_FAILED = "provisioning_failed"


class AuthError(Exception):
    """Base class for all authentication pipeline failures."""

    reason: ClassVar[RejectionReason]
    stage: ClassVar[str]


# Input errors


class CredentialError(AuthError):
    """Request did not carry a usable credential."""

    stage = "credential"


class MissingCredentialError(CredentialError):
    reason = RejectionReason.MISSING_CREDENTIAL


class TokenMalformedError(CredentialError):
    reason = RejectionReason.TOKEN_MALFORMED
    stage = "token"


# Trust errors


class TrustError(AuthError):
    """Token was well-formed but cannot be trusted."""

    stage = "token"


class AlgorithmNotAllowedError(TrustError):
    reason = RejectionReason.ALGORITHM_NOT_ALLOWED


class SignatureInvalidError(TrustError):
    reason = RejectionReason.SIGNATURE_INVALID


class IssuerMismatchError(TrustError):
    reason = RejectionReason.ISSUER_MISMATCH


class TokenExpiredError(TrustError):
    reason = RejectionReason.TOKEN_EXPIRED


class ClaimsInvalidError(TrustError):
    reason = RejectionReason.CLAIMS_INVALID


# Upstream key set errors


class KeyResolutionError(AuthError):
    """Signing key could not be produced for a key id."""

    reason = RejectionReason.KEY_RESOLUTION_FAILED
    stage = "key"


class KeyNotFoundError(KeyResolutionError):
    """No entry with the requested kid in the provider key set."""


class KeyFetchFailedError(KeyResolutionError):
    """Provider key set could not be fetched or parsed."""


class KeyMaterialInvalidError(KeyResolutionError):
    """Key set entry exists but is not a usable public key."""


class KeyResolutionFailedError(AuthError):
    """Verifier-side wrapper around a :class:`KeyResolutionError`."""

    reason = RejectionReason.KEY_RESOLUTION_FAILED
    stage = "token"

    def __init__(self, cause: KeyResolutionError) -> None:
        super().__init__(f"key resolution failed: {type(cause).__name__}")
        self.cause = cause


# Persistence errors


class ProvisioningError(AuthError):
    """Identity could not be resolved or created."""

    reason = RejectionReason.PROVISIONING_FAILED
    stage = "provisioning"


class StoreUnavailableError(ProvisioningError):
    """Identity store was unreachable or failed the operation."""


class ConstraintViolationError(ProvisioningError):
    """Create conflicted and the follow-up refetch found nothing."""
