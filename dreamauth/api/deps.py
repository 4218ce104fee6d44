"""FastAPI dependency injection for per-request authentication."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from dreamauth.api.schemas import AuthErrorBody
from dreamauth.auth.gateway import AuthenticationGateway
from dreamauth.auth.types import AuthenticationResult, Identity
from dreamauth.core.errors import RejectionReason


def get_gateway(request: Request) -> AuthenticationGateway:
    """Return the gateway built by the application lifespan."""
    return request.app.state.gateway


async def authenticate_request(
    request: Request,
    gateway: Annotated[AuthenticationGateway, Depends(get_gateway)],
) -> AuthenticationResult:
    """Authenticate the request and attach the result to ``request.state``."""
    result = await gateway.authenticate(request.headers.get("Authorization"))
    request.state.auth = result
    return result


async def require_identity(
    result: Annotated[AuthenticationResult, Depends(authenticate_request)],
) -> Identity:
    """Resolve the caller's identity or reject with 401/503."""
    if result.identity is not None:
        return result.identity

    reason = result.reason or RejectionReason.MISSING_CREDENTIAL
    body = AuthErrorBody(error=reason.value).model_dump()
    if reason is RejectionReason.PROVISIONING_FAILED:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=body,
        )
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=body,
        headers={"WWW-Authenticate": "Bearer"},
    )
