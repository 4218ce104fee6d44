"""Shared test fixtures for dreamauth."""

import asyncio
from collections.abc import AsyncIterator, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from jwt.algorithms import RSAAlgorithm
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from dreamauth.auth.gateway import AuthenticationGateway
from dreamauth.auth.provisioner import IdentityProvisioner
from dreamauth.crypto.key_resolver import KeyResolver
from dreamauth.crypto.token_verifier import TokenVerifier
from dreamauth.db.base import BaseEntity

PROVIDER_DOMAIN = "dreams.eu.auth0.com"
ISSUER = f"https://{PROVIDER_DOMAIN}/"
JWKS_URL = f"https://{PROVIDER_DOMAIN}/.well-known/jwks.json"
KID = "test-key-1"
SUBJECT = "auth0|abc123"
EMAIL = "dreamer@example.com"

MintToken = Callable[..., str]


def generate_rsa_key() -> RSAPrivateKey:
    """Generate an RSA-2048 key for signing test tokens."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def public_jwk(private_key: RSAPrivateKey, kid: str) -> dict[str, Any]:
    """Build the JWKS entry a provider would publish for ``private_key``."""
    entry = RSAAlgorithm.to_jwk(private_key.public_key(), as_dict=True)
    entry.update({"kid": kid, "use": "sig", "alg": "RS256"})
    return entry


class FakeClock:
    """Monotonic clock stand-in advanced explicitly by tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeJWKSEndpoint:
    """In-process provider key set endpoint that counts fetches."""

    def __init__(self, keys: list[dict[str, Any]]) -> None:
        self.keys = keys
        self.fetch_count = 0
        self.status_code = 200
        self.body: Any = None
        self.delay = 0.0
        self.error: Exception | None = None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.fetch_count += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.body is not None:
            return httpx.Response(self.status_code, content=self.body)
        return httpx.Response(self.status_code, json={"keys": self.keys})


@pytest.fixture(autouse=True)
def _set_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set environment variables for test settings."""
    monkeypatch.setenv("AUTH_PROVIDER_DOMAIN", PROVIDER_DOMAIN)
    monkeypatch.setenv("AUTH_LOG_JSON_OUTPUT", "false")


@pytest.fixture(scope="session")
def signing_key() -> RSAPrivateKey:
    """The provider's private signing key."""
    return generate_rsa_key()


@pytest.fixture
def jwks_endpoint(signing_key: RSAPrivateKey) -> FakeJWKSEndpoint:
    return FakeJWKSEndpoint([public_jwk(signing_key, KID)])


@pytest.fixture
async def http_client(
    jwks_endpoint: FakeJWKSEndpoint,
) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.MockTransport(jwks_endpoint.handler)
    async with httpx.AsyncClient(transport=transport) as client:
        yield client


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def key_resolver(http_client: httpx.AsyncClient, clock: FakeClock) -> KeyResolver:
    return KeyResolver(
        JWKS_URL,
        http_client,
        ttl_seconds=600,
        min_refresh_interval=30,
        fetch_timeout=1.0,
        clock=clock,
    )


@pytest.fixture
def verifier(key_resolver: KeyResolver) -> TokenVerifier:
    return TokenVerifier(key_resolver, ISSUER)


@pytest.fixture
def mint_token(signing_key: RSAPrivateKey) -> MintToken:
    """Return a factory for tokens; claim overrides of ``None`` drop the claim."""

    def _mint(
        *,
        key: Any = None,
        kid: str | None = KID,
        algorithm: str = "RS256",
        **claims: Any,
    ) -> str:
        now = datetime.now(UTC)
        payload: dict[str, Any] = {
            "iss": ISSUER,
            "sub": SUBJECT,
            "email": EMAIL,
            "iat": now,
            "exp": now + timedelta(minutes=5),
        }
        payload.update(claims)
        payload = {k: v for k, v in payload.items() if v is not None}
        headers = {"kid": kid} if kid is not None else {}
        return jwt.encode(
            payload,
            signing_key if key is None else key,
            algorithm=algorithm,
            headers=headers,
        )

    return _mint


@pytest.fixture
async def db_session() -> AsyncIterator[AsyncSession]:
    """Create an in-memory SQLite async session for tests."""
    engine = create_async_engine("sqlite+aiosqlite://", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(BaseEntity.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
async def db_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """File-backed SQLite engine so concurrent sessions use separate connections."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'identities.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(BaseEntity.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def provisioner(
    session_factory: async_sessionmaker[AsyncSession],
) -> IdentityProvisioner:
    return IdentityProvisioner(session_factory, lock_shards=8)


@pytest.fixture
async def broken_provisioner(tmp_path: Path) -> AsyncIterator[IdentityProvisioner]:
    """Provisioner whose store has no schema, so every query fails."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield IdentityProvisioner(factory)
    await engine.dispose()


@pytest.fixture
def gateway(
    verifier: TokenVerifier, provisioner: IdentityProvisioner
) -> AuthenticationGateway:
    return AuthenticationGateway(verifier, provisioner)
