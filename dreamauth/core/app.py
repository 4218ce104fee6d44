"""FastAPI application factory for the dreamauth service."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dreamauth.api.routes_me import router as me_router
from dreamauth.auth.gateway import AuthenticationGateway
from dreamauth.auth.provisioner import IdentityProvisioner
from dreamauth.core.logging import configure_logging, get_logger
from dreamauth.core.settings import AuthSettings, DatabaseSettings, LoggingSettings
from dreamauth.crypto.key_resolver import KeyResolver
from dreamauth.crypto.token_verifier import TokenVerifier
from dreamauth.db.engine import create_engine, create_schema, create_session_factory

logger = get_logger(__name__)


def create_app(
    settings: AuthSettings | None = None,
    db_settings: DatabaseSettings | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application."""
    settings = settings or AuthSettings()
    db_settings = db_settings or DatabaseSettings()
    configure_logging(LoggingSettings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        engine = create_engine(db_settings)
        try:
            if db_settings.create_schema:
                await create_schema(engine)

            async with httpx.AsyncClient() as http_client:
                resolver = KeyResolver.from_settings(settings, http_client)
                verifier = TokenVerifier.from_settings(settings, resolver)
                provisioner = IdentityProvisioner(
                    create_session_factory(engine),
                    lock_shards=settings.provisioning_lock_shards,
                )
                app.state.gateway = AuthenticationGateway(verifier, provisioner)
                logger.info(
                    "service_started",
                    issuer=settings.issuer,
                    algorithm=settings.algorithm,
                )
                yield
        finally:
            await engine.dispose()

    app = FastAPI(
        title="dreamauth",
        version="0.1.0",
        lifespan=lifespan,
    )

    origins = settings.get_cors_origin_list()
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["Authorization", "Content-Type"],
        )

    app.include_router(me_router)

    return app
