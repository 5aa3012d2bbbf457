"""
Qloo Client — cultural-data API over httpx.

Every request passes through the circuit breaker first (so an open
breaker costs no rate-limit token), then waits for a rate-limiter token,
then goes out over a shared httpx.AsyncClient.

The base endpoint comes from the EnvironmentConfig passed into each call,
so switching environments re-targets the client without rebuilding it.

HTTP failures are raised as typed ExternalServiceError subclasses. The
breaker counts them; callers decide whether to tolerate them.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

import httpx

from culturaltruth.circuit_breaker import CircuitBreaker
from culturaltruth.environment import EnvironmentConfig
from culturaltruth.errors import (
    ConfigurationError,
    ExternalServiceError,
    ForbiddenError,
    RateLimitedError,
    ServerError,
    ServiceTimeoutError,
    UnauthorizedError,
)
from culturaltruth.logging import get_logger
from culturaltruth.rate_limit import TokenBucketRateLimiter
from culturaltruth.types import CulturalEntity

logger = get_logger("qloo")

USER_AGENT = "CulturalTruth/2.0"

# Only these properties survive into results, caches and audit records
SAFE_PROPERTIES = ("release_year", "popularity", "content_rating", "rating", "price_level")


def sanitize_entity(raw: Any) -> CulturalEntity:
    """Allow-list a raw Qloo entity. Malformed input becomes a placeholder."""
    if not isinstance(raw, Mapping):
        logger.warning(
            "Invalid entity in Qloo response",
            extra={"error_type": type(raw).__name__},
        )
        return CulturalEntity(name="Unknown", entity_id="unknown", type="unknown")

    props = raw.get("properties")
    if not isinstance(props, Mapping):
        props = {}

    safe: dict[str, Any] = {}
    for key in SAFE_PROPERTIES:
        value = props.get(key)
        if value is None:
            continue
        if key == "popularity" and isinstance(value, (int, float)):
            value = round(value, 2)
        safe[key] = value

    return CulturalEntity(
        name=raw.get("name") or "Unknown",
        entity_id=raw.get("entity_id") or "unknown",
        type=raw.get("type") or "unknown",
        subtype=raw.get("subtype"),
        properties=safe,
    )


def entity_tags(raw: Any) -> list[str]:
    """Tag names of a raw entity. Used for audience comparison only."""
    if not isinstance(raw, Mapping):
        return []
    props = raw.get("properties")
    if not isinstance(props, Mapping):
        return []
    tags = props.get("tags") or []
    return [
        t["name"] for t in tags
        if isinstance(t, Mapping) and isinstance(t.get("name"), str)
    ]


def _extract_entities(payload: Any) -> list[dict]:
    if not isinstance(payload, Mapping):
        raise ExternalServiceError("Qloo API returned an unexpected payload.")
    results = payload.get("results")
    if isinstance(results, list):
        return results
    if isinstance(results, Mapping):
        entities = results.get("entities") or []
        return list(entities) if isinstance(entities, list) else []
    return []


class QlooClient:
    """Resilient Qloo API client."""

    def __init__(
        self,
        api_key: str,
        rate_limiter: Optional[TokenBucketRateLimiter] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ConfigurationError("Qloo API key is required.")
        self.rate_limiter = rate_limiter or TokenBucketRateLimiter()
        self.circuit_breaker = circuit_breaker or CircuitBreaker()
        self._http = httpx.AsyncClient(
            headers={
                "X-Api-Key": api_key,
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            },
            timeout=timeout,
            follow_redirects=True,
            max_redirects=3,
            transport=transport,
        )
        self.request_count = 0

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------

    async def _get(
        self, config: EnvironmentConfig, path: str, params: Mapping[str, Any],
    ) -> list[dict]:
        return await self.circuit_breaker.call(self._limited_get, config, path, params)

    async def _limited_get(
        self, config: EnvironmentConfig, path: str, params: Mapping[str, Any],
    ) -> list[dict]:
        await self.rate_limiter.acquire(1)
        url = config.endpoint.rstrip("/") + path
        query = {k: v for k, v in params.items() if v is not None}

        self.request_count += 1
        try:
            response = await self._http.get(url, params=query)
        except httpx.TimeoutException as e:
            raise ServiceTimeoutError(f"Qloo request to {path} timed out.") from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Qloo request to {path} failed: {e}") from e

        status = response.status_code
        if status == 429:
            raise RateLimitedError("Rate limit exceeded. Please slow down requests.", status)
        if status == 401:
            raise UnauthorizedError("Invalid Qloo API key. Please check your credentials.", status)
        if status == 403:
            raise ForbiddenError("Qloo API access forbidden. Check your subscription.", status)
        if status >= 500:
            raise ServerError("Qloo API server error. Please try again later.", status)
        if status >= 400:
            raise ExternalServiceError(f"Qloo API returned HTTP {status} for {path}.", status)

        try:
            payload = response.json()
        except ValueError as e:
            raise ExternalServiceError("Qloo API returned invalid JSON.", status) from e
        return _extract_entities(payload)

    # ------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------

    async def search_entities(
        self,
        config: EnvironmentConfig,
        query: str,
        entity_type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        return await self._get(config, "/search", {
            "query": query, "type": entity_type, "limit": limit,
        })

    async def get_insights(
        self, config: EnvironmentConfig, params: Mapping[str, Any],
    ) -> list[dict]:
        """Basic and demographic insights share the /v2/insights/ endpoint."""
        return await self._get(config, "/v2/insights/", params)

    async def get_trending_entities(
        self,
        config: EnvironmentConfig,
        entity_type: str,
        demographic: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        return await self._get(config, "/trends/category", {
            "type": entity_type,
            "signal.demographics.age": demographic,
            "take": limit,
        })

    async def get_geospatial_insights(
        self, config: EnvironmentConfig, params: Mapping[str, Any],
    ) -> list[dict]:
        return await self._get(config, "/geospatial", params)

    async def compare_entities(
        self, config: EnvironmentConfig, entities_a: list[str], entities_b: list[str],
    ) -> list[dict]:
        return await self._get(config, "/v2/insights/compare", {
            "entities_a": ",".join(entities_a),
            "entities_b": ",".join(entities_b),
        })

    async def get_entities_by_ids(
        self, config: EnvironmentConfig, entity_ids: list[str],
    ) -> list[dict]:
        return await self._get(config, "/entities", {"ids": ",".join(entity_ids)})

    @property
    def stats(self) -> dict:
        return {
            "requests": self.request_count,
            "circuit_breaker": self.circuit_breaker.stats,
            "rate_limiter": self.rate_limiter.stats,
        }
