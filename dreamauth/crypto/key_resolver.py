"""Provider signing key resolution with a bounded TTL cache.

Keys are fetched from the provider's published JWKS on cache miss or expiry.
Concurrent misses share one in-flight fetch, and each fetch is bounded by a
timeout. A failed fetch arms an exponential backoff window: requests arriving
inside it fail fast instead of hitting the provider again.
"""

import asyncio
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

import httpx
import jwt

from dreamauth.core.errors import (
    KeyFetchFailedError,
    KeyMaterialInvalidError,
    KeyNotFoundError,
)
from dreamauth.core.logging import get_logger
from dreamauth.core.settings import (
    JWKS_BACKOFF_BASE_DEFAULT,
    JWKS_BACKOFF_MAX_DEFAULT,
    JWKS_FETCH_TIMEOUT_DEFAULT,
    JWKS_MIN_REFRESH_INTERVAL_DEFAULT,
    KEY_CACHE_MAX_ENTRIES_DEFAULT,
    KEY_CACHE_TTL_DEFAULT,
    AuthSettings,
)
from dreamauth.crypto.types import JWKSResponse, SigningKey

logger = get_logger(__name__)

KeySet = dict[str, dict[str, Any]]


class KeyResolver:
    """Resolves provider public keys by kid."""

    def __init__(
        self,
        jwks_url: str,
        http_client: httpx.AsyncClient,
        *,
        algorithm: str = "RS256",
        ttl_seconds: float = KEY_CACHE_TTL_DEFAULT,
        max_entries: int = KEY_CACHE_MAX_ENTRIES_DEFAULT,
        fetch_timeout: float = JWKS_FETCH_TIMEOUT_DEFAULT,
        min_refresh_interval: float = JWKS_MIN_REFRESH_INTERVAL_DEFAULT,
        backoff_base: float = JWKS_BACKOFF_BASE_DEFAULT,
        backoff_max: float = JWKS_BACKOFF_MAX_DEFAULT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._jwks_url = jwks_url
        self._http = http_client
        self._algorithm = algorithm
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._fetch_timeout = fetch_timeout
        self._min_refresh_interval = min_refresh_interval
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._clock = clock

        self._cache: OrderedDict[str, SigningKey] = OrderedDict()
        self._key_set: KeySet = {}
        self._key_set_fetched_at: float | None = None
        self._inflight: asyncio.Task[KeySet] | None = None
        self._failures = 0
        self._retry_at = 0.0

    @classmethod
    def from_settings(
        cls, settings: AuthSettings, http_client: httpx.AsyncClient
    ) -> "KeyResolver":
        """Build a resolver for the configured provider."""
        return cls(
            settings.jwks_url,
            http_client,
            algorithm=settings.algorithm,
            ttl_seconds=settings.key_cache_ttl,
            max_entries=settings.key_cache_max_entries,
            fetch_timeout=settings.jwks_fetch_timeout,
            min_refresh_interval=settings.jwks_min_refresh_interval,
            backoff_base=settings.jwks_backoff_base,
            backoff_max=settings.jwks_backoff_max,
        )

    async def resolve_key(self, kid: str) -> SigningKey:
        """Return the signing key for ``kid``, fetching the key set if needed.

        Raises:
            KeyNotFoundError: The provider key set has no entry for ``kid``.
            KeyFetchFailedError: The key set could not be fetched in time.
            KeyMaterialInvalidError: The entry is not a usable public key.
        """
        if not kid:
            raise KeyNotFoundError("empty kid")

        expired = kid in self._cache
        cached = self._cached(kid)
        if cached is not None:
            return cached

        # An expired key always goes back to the provider.
        if expired:
            key_set = await self._refresh_key_set()
        else:
            key_set = await self._current_key_set()
        entry = key_set.get(kid)
        if entry is None:
            logger.warning("signing_key_not_found", kid=kid[:64])
            raise KeyNotFoundError("kid not present in provider key set")

        key = self._parse_entry(kid, entry)
        self._store(key)
        return key

    def _cached(self, kid: str) -> SigningKey | None:
        key = self._cache.get(kid)
        if key is None:
            return None
        if self._clock() - key.fetched_at >= self._ttl:
            self._cache.pop(kid, None)
            return None
        self._cache.move_to_end(kid)
        return key

    def _store(self, key: SigningKey) -> None:
        self._cache[key.kid] = key
        self._cache.move_to_end(key.kid)
        while len(self._cache) > self._max_entries:
            self._cache.popitem(last=False)

    async def _current_key_set(self) -> KeySet:
        """Reuse a recently fetched key set, otherwise refresh it."""
        fetched_at = self._key_set_fetched_at
        if (
            fetched_at is not None
            and self._clock() - fetched_at < self._min_refresh_interval
        ):
            return self._key_set
        return await self._refresh_key_set()

    async def _refresh_key_set(self) -> KeySet:
        if self._clock() < self._retry_at:
            raise KeyFetchFailedError("key set fetch is backing off")

        if self._inflight is None:
            task = asyncio.create_task(self._fetch_key_set())
            task.add_done_callback(self._fetch_done)
            self._inflight = task

        # Shielded: a timed out or cancelled caller leaves the fetch running.
        try:
            return await asyncio.wait_for(
                asyncio.shield(self._inflight), self._fetch_timeout
            )
        except TimeoutError as exc:
            logger.error("jwks_fetch_timeout", timeout=self._fetch_timeout)
            raise KeyFetchFailedError("key set fetch timed out") from exc

    def _fetch_done(self, task: asyncio.Task[KeySet]) -> None:
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled():
            # Waiters may all have gone; mark the outcome as retrieved.
            task.exception()

    async def _fetch_key_set(self) -> KeySet:
        try:
            response = await self._http.get(
                self._jwks_url, timeout=self._fetch_timeout
            )
            response.raise_for_status()
            parsed = JWKSResponse.model_validate(response.json())
        except (httpx.HTTPError, ValueError) as exc:
            self._record_failure()
            logger.error(
                "jwks_fetch_failed",
                url=self._jwks_url,
                error=type(exc).__name__,
                consecutive_failures=self._failures,
            )
            raise KeyFetchFailedError("key set fetch failed") from exc

        key_set = parsed.entries_by_kid()
        self._key_set = key_set
        self._key_set_fetched_at = self._clock()
        self._failures = 0
        self._retry_at = 0.0
        logger.debug("jwks_fetched", url=self._jwks_url, keys=len(key_set))
        return key_set

    def _record_failure(self) -> None:
        self._failures += 1
        delay = min(
            self._backoff_base * 2 ** (self._failures - 1), self._backoff_max
        )
        self._retry_at = self._clock() + delay

    def _parse_entry(self, kid: str, entry: dict[str, Any]) -> SigningKey:
        """Turn a raw JWK entry into a verification key for the allowed algorithm."""
        if entry.get("use", "sig") != "sig":
            raise KeyMaterialInvalidError("key is not a signing key")
        if entry.get("alg", self._algorithm) != self._algorithm:
            raise KeyMaterialInvalidError("key declares a different algorithm")
        if "d" in entry:
            raise KeyMaterialInvalidError("key set entry carries private material")
        try:
            jwk = jwt.PyJWK.from_dict(entry, algorithm=self._algorithm)
        except (
            jwt.PyJWKError,
            jwt.InvalidKeyError,
            KeyError,
            TypeError,
            ValueError,
        ) as exc:
            logger.error(
                "signing_key_invalid", kid=kid[:64], error=type(exc).__name__
            )
            raise KeyMaterialInvalidError("key material could not be parsed") from exc

        fetched_at = self._key_set_fetched_at
        return SigningKey(
            kid=kid,
            algorithm=self._algorithm,
            key=jwk.key,
            fetched_at=self._clock() if fetched_at is None else fetched_at,
        )
