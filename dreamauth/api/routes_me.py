"""Endpoints exposing the authenticated caller's identity."""

from typing import Annotated

from fastapi import APIRouter, Depends

from dreamauth.api.deps import require_identity
from dreamauth.api.schemas import IdentityResponse
from dreamauth.auth.types import Identity

router = APIRouter(prefix="/auth")


@router.get("/me")
async def me(
    identity: Annotated[Identity, Depends(require_identity)],
) -> IdentityResponse:
    """GET /auth/me -- return the caller's local identity."""
    return IdentityResponse.from_identity(identity)


@router.post("/authenticate")
async def authenticate(
    identity: Annotated[Identity, Depends(require_identity)],
) -> IdentityResponse:
    """POST /auth/authenticate -- provision on first call, then return the identity."""
    return IdentityResponse.from_identity(identity)
