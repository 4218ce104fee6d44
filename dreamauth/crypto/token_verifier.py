"""Bearer token verification against the provider key set."""

from typing import Any

import jwt
from jwt.types import Options

from dreamauth.core.errors import (
    AlgorithmNotAllowedError,
    ClaimsInvalidError,
    IssuerMismatchError,
    KeyResolutionError,
    KeyResolutionFailedError,
    SignatureInvalidError,
    TokenExpiredError,
    TokenMalformedError,
)
from dreamauth.core.logging import get_logger
from dreamauth.core.settings import AuthSettings
from dreamauth.crypto.key_resolver import KeyResolver
from dreamauth.crypto.types import VerifiedClaims

logger = get_logger(__name__)


class TokenVerifier:
    """Verifies signature, algorithm, issuer and expiry of provider tokens."""

    def __init__(
        self,
        key_resolver: KeyResolver,
        issuer: str,
        *,
        algorithm: str = "RS256",
        audience: str | None = None,
        require_exp: bool = True,
        leeway_seconds: int = 0,
    ) -> None:
        self._keys = key_resolver
        self._issuer = issuer
        self._algorithm = algorithm
        self._audience = audience
        self._require_exp = require_exp
        self._leeway = leeway_seconds

    @classmethod
    def from_settings(
        cls, settings: AuthSettings, key_resolver: KeyResolver
    ) -> "TokenVerifier":
        """Build a verifier for the configured provider."""
        return cls(
            key_resolver,
            settings.issuer,
            algorithm=settings.algorithm,
            audience=settings.audience,
            require_exp=settings.require_exp,
            leeway_seconds=settings.leeway_seconds,
        )

    async def verify(self, token: str) -> VerifiedClaims:
        """Verify a compact JWS token and extract its identity claims."""
        if not token or not isinstance(token, str) or token.count(".") != 2:
            raise TokenMalformedError("token is not a compact JWS")

        try:
            header = jwt.get_unverified_header(token)
        except jwt.InvalidTokenError as exc:
            raise TokenMalformedError("token header is unreadable") from exc

        if header.get("alg") != self._algorithm:
            logger.warning("token_algorithm_rejected", stage="token")
            raise AlgorithmNotAllowedError("token algorithm is not allowed")

        kid = header.get("kid")
        if not isinstance(kid, str) or not kid:
            raise TokenMalformedError("token header has no kid")

        try:
            signing_key = await self._keys.resolve_key(kid)
        except KeyResolutionError as exc:
            raise KeyResolutionFailedError(exc) from exc

        payload = self._decode(token, signing_key.key)
        return self._extract_claims(payload)

    def _decode(self, token: str, key: Any) -> dict[str, Any]:
        required = ["exp", "iss", "sub"] if self._require_exp else ["iss", "sub"]
        opts: Options = {"require": required}
        if self._audience is None:
            opts["verify_aud"] = False

        try:
            payload = jwt.decode(
                token,
                key,
                algorithms=[self._algorithm],
                issuer=self._issuer,
                audience=self._audience,
                leeway=self._leeway,
                options=opts,
            )
        except jwt.InvalidSignatureError as exc:
            self._reject("signature_invalid")
            raise SignatureInvalidError("token signature is invalid") from exc
        except jwt.ExpiredSignatureError as exc:
            self._reject("token_expired")
            raise TokenExpiredError("token has expired") from exc
        except jwt.InvalidIssuerError as exc:
            self._reject("issuer_mismatch")
            raise IssuerMismatchError("token issuer does not match") from exc
        except jwt.MissingRequiredClaimError as exc:
            if exc.claim == "iss":
                self._reject("issuer_mismatch")
                raise IssuerMismatchError("token has no issuer") from exc
            self._reject("claims_invalid", claim=exc.claim)
            raise ClaimsInvalidError("token is missing a required claim") from exc
        except jwt.InvalidAlgorithmError as exc:
            self._reject("algorithm_not_allowed")
            raise AlgorithmNotAllowedError("token algorithm is not allowed") from exc
        except jwt.DecodeError as exc:
            raise TokenMalformedError("token could not be decoded") from exc
        except jwt.InvalidTokenError as exc:
            self._reject("claims_invalid", error=type(exc).__name__)
            raise ClaimsInvalidError("token claims are invalid") from exc

        if "exp" not in payload:
            logger.warning("token_without_expiry_accepted", stage="token")
        return payload

    def _extract_claims(self, payload: dict[str, Any]) -> VerifiedClaims:
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            self._reject("claims_invalid", claim="sub")
            raise ClaimsInvalidError("token subject is missing")

        email = payload.get("email")
        if not isinstance(email, str) or not email:
            email = None
        return VerifiedClaims(subject=subject, email=email)

    @staticmethod
    def _reject(reason: str, **context: Any) -> None:
        logger.warning("token_rejected", stage="token", reason=reason, **context)
