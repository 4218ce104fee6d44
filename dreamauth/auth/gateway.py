"""Per-request authentication: bearer extraction, verification, provisioning."""

from dreamauth.auth.provisioner import IdentityProvisioner
from dreamauth.auth.types import AuthenticationResult
from dreamauth.core.errors import AuthError, ProvisioningError, RejectionReason
from dreamauth.core.logging import get_logger
from dreamauth.crypto.token_verifier import TokenVerifier

logger = get_logger(__name__)

BEARER_SCHEME = "Bearer"


def extract_bearer(header_value: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` value."""
    if not header_value:
        return None
    scheme, sep, token = header_value.partition(" ")
    if scheme != BEARER_SCHEME or not sep:
        return None
    if not token or any(ch.isspace() for ch in token):
        return None
    return token


class AuthenticationGateway:
    """Turns a raw Authorization header into an :class:`AuthenticationResult`."""

    def __init__(
        self, verifier: TokenVerifier, provisioner: IdentityProvisioner
    ) -> None:
        self._verifier = verifier
        self._provisioner = provisioner

    async def authenticate(self, header_value: str | None) -> AuthenticationResult:
        """Authenticate one request. Never raises for pipeline failures."""
        token = extract_bearer(header_value)
        if token is None:
            logger.info(
                "authentication_rejected",
                stage="credential",
                reason=RejectionReason.MISSING_CREDENTIAL.value,
            )
            return AuthenticationResult.reject(RejectionReason.MISSING_CREDENTIAL)

        try:
            claims = await self._verifier.verify(token)
        except AuthError as exc:
            logger.warning(
                "authentication_rejected", stage=exc.stage, reason=exc.reason.value
            )
            return AuthenticationResult.reject(exc.reason)

        try:
            identity = await self._provisioner.resolve_or_create(
                claims.subject, claims.email
            )
        except ProvisioningError as exc:
            logger.error(
                "authentication_rejected",
                stage=exc.stage,
                reason=RejectionReason.PROVISIONING_FAILED.value,
                error=type(exc).__name__,
            )
            return AuthenticationResult.reject(RejectionReason.PROVISIONING_FAILED)

        return AuthenticationResult.accept(identity)
