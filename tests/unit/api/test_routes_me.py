"""Tests for the authenticated identity endpoints."""

from collections.abc import AsyncIterator
from pathlib import Path

import pytest
from fastapi import Depends, FastAPI, Request
from httpx import ASGITransport, AsyncClient

from dreamauth.api.deps import authenticate_request, get_gateway
from dreamauth.auth.gateway import AuthenticationGateway
from dreamauth.core import app as app_module
from dreamauth.core.app import create_app
from dreamauth.core.settings import AuthSettings, DatabaseSettings


class _RecordingEngine:
    disposed = False

    async def dispose(self) -> None:
        self.disposed = True


def _app_for(gateway: AuthenticationGateway) -> FastAPI:
    app = create_app()
    app.dependency_overrides[get_gateway] = lambda: gateway
    return app


async def _client_for(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
async def client(gateway: AuthenticationGateway) -> AsyncIterator[AsyncClient]:
    async with await _client_for(_app_for(gateway)) as ac:
        yield ac


class TestMe:
    """Tests for GET /auth/me."""

    @pytest.mark.asyncio
    async def test_returns_identity(self, client: AsyncClient, mint_token) -> None:
        resp = await client.get(
            "/auth/me", headers={"Authorization": f"Bearer {mint_token()}"}
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["external_subject"] == "auth0|abc123"
        assert body["email"] == "dreamer@example.com"
        assert body["id"]

    @pytest.mark.asyncio
    async def test_missing_header_is_401(self, client: AsyncClient) -> None:
        resp = await client.get("/auth/me")
        assert resp.status_code == 401
        assert resp.headers["WWW-Authenticate"] == "Bearer"
        assert resp.json() == {"detail": {"error": "missing_credential"}}

    @pytest.mark.asyncio
    async def test_expired_token_is_401(self, client: AsyncClient, mint_token) -> None:
        token = mint_token(exp=1_600_000_000)
        resp = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.json() == {"detail": {"error": "token_expired"}}

    @pytest.mark.asyncio
    async def test_store_outage_is_503(
        self, verifier, broken_provisioner, mint_token
    ) -> None:
        gateway = AuthenticationGateway(verifier, broken_provisioner)
        async with await _client_for(_app_for(gateway)) as ac:
            resp = await ac.get(
                "/auth/me", headers={"Authorization": f"Bearer {mint_token()}"}
            )
        assert resp.status_code == 503
        assert resp.json() == {"detail": {"error": "provisioning_failed"}}


class TestAuthenticate:
    """Tests for POST /auth/authenticate."""

    @pytest.mark.asyncio
    async def test_provisions_once(self, client: AsyncClient, mint_token) -> None:
        headers = {"Authorization": f"Bearer {mint_token()}"}
        first = await client.post("/auth/authenticate", headers=headers)
        second = await client.post("/auth/authenticate", headers=headers)
        assert first.status_code == 200
        assert first.json()["id"] == second.json()["id"]


class TestRequestState:
    """Tests for the result handed to downstream handlers."""

    @staticmethod
    async def _state_client(gateway: AuthenticationGateway) -> AsyncClient:
        app = _app_for(gateway)

        @app.get("/state", dependencies=[Depends(authenticate_request)])
        async def state(request: Request) -> dict:
            result = request.state.auth
            return {
                "authenticated": result.authenticated,
                "reason": result.reason,
                "subject": result.identity and result.identity.external_subject,
            }

        return await _client_for(app)

    @pytest.mark.asyncio
    async def test_accepted_result_is_on_request_state(
        self, gateway: AuthenticationGateway, mint_token
    ) -> None:
        async with await self._state_client(gateway) as ac:
            resp = await ac.get(
                "/state", headers={"Authorization": f"Bearer {mint_token()}"}
            )
        assert resp.json() == {
            "authenticated": True,
            "reason": None,
            "subject": "auth0|abc123",
        }

    @pytest.mark.asyncio
    async def test_rejected_result_is_on_request_state(
        self, gateway: AuthenticationGateway
    ) -> None:
        async with await self._state_client(gateway) as ac:
            resp = await ac.get("/state", headers={"Authorization": "Basic abc"})
        assert resp.status_code == 200
        assert resp.json() == {
            "authenticated": False,
            "reason": "missing_credential",
            "subject": None,
        }


class TestLifespan:
    """Tests for component wiring at startup."""

    @pytest.mark.asyncio
    async def test_lifespan_builds_gateway(self, tmp_path: Path) -> None:
        app = create_app(
            AuthSettings(provider_domain="dreams.eu.auth0.com"),
            DatabaseSettings(
                url=f"sqlite+aiosqlite:///{tmp_path / 'app.db'}",
                create_schema=True,
            ),
        )
        async with app.router.lifespan_context(app):
            assert isinstance(app.state.gateway, AuthenticationGateway)
            result = await app.state.gateway.authenticate(None)
            assert result.authenticated is False

    def test_cors_enabled_when_configured(self) -> None:
        app = create_app(AuthSettings(cors_origins="http://localhost:3000"))
        assert any(m.cls.__name__ == "CORSMiddleware" for m in app.user_middleware)

    @pytest.mark.asyncio
    async def test_engine_disposed_when_schema_creation_fails(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        engine = _RecordingEngine()

        async def _fail(_engine) -> None:
            raise RuntimeError("store refused DDL")

        monkeypatch.setattr(app_module, "create_engine", lambda _settings: engine)
        monkeypatch.setattr(app_module, "create_schema", _fail)
        app = create_app(db_settings=DatabaseSettings(create_schema=True))
        with pytest.raises(RuntimeError):
            async with app.router.lifespan_context(app):
                pass
        assert engine.disposed
