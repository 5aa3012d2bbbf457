"""
Shared fixtures — a fake Qloo API served through httpx.MockTransport.

No test talks to the real Qloo API.
"""

from __future__ import annotations

import os

os.environ.setdefault("QLOO_API_KEY", "test-key")

import httpx
import pytest

from culturaltruth.circuit_breaker import CircuitBreaker
from culturaltruth.engine import CulturalTruthEngine
from culturaltruth.environment import HACKATHON_CONFIG, EnvironmentHolder
from culturaltruth.qloo import QlooClient
from culturaltruth.rate_limit import TokenBucketRateLimiter


class FakeQloo:
    """Records requests and answers them like the Qloo API would."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.fail_queries: dict[str, int] = {}   # query -> HTTP status
        self.raise_on_path: dict[str, Exception] = {}
        self.groups: dict[str, list[dict]] = {}

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        params = request.url.params

        if path in self.raise_on_path:
            raise self.raise_on_path[path]

        if path == "/search":
            query = params["query"]
            if query in self.fail_queries:
                return httpx.Response(self.fail_queries[query], json={"error": "nope"})
            return httpx.Response(200, json={"results": {"entities": [
                make_raw_entity(query, f"id-{query.lower().replace(' ', '-')}"),
            ]}})

        if path in ("/v2/insights/", "/v2/insights/compare", "/trends/category", "/geospatial"):
            return httpx.Response(200, json={"results": {"entities": [
                make_raw_entity("Arrival", "movie-arrival"),
                make_raw_entity("Dune", "movie-dune"),
            ]}})

        if path == "/entities":
            ids = params["ids"].split(",")
            return httpx.Response(200, json={"results": {"entities": [
                entity for key in ids for entity in self.groups.get(key, [])
            ]}})

        return httpx.Response(404, json={"error": "not found"})


def make_raw_entity(name: str, entity_id: str, popularity: float = 0.87654,
                    tags: list[str] | None = None) -> dict:
    return {
        "name": name,
        "entity_id": entity_id,
        "type": "urn:entity:movie",
        "properties": {
            "popularity": popularity,
            "release_year": 2016,
            "tags": [{"name": t} for t in (tags or ["drama"])],
            "internal_score": 42,
        },
    }


@pytest.fixture
def fake_qloo():
    return FakeQloo()


@pytest.fixture
def make_engine(fake_qloo):
    """Factory: engine wired to the fake Qloo API."""

    def _make(config=HACKATHON_CONFIG, breaker=None, **kwargs) -> CulturalTruthEngine:
        client = QlooClient(
            api_key="test-key",
            rate_limiter=TokenBucketRateLimiter(tokens_per_interval=1000),
            circuit_breaker=breaker or CircuitBreaker(failure_threshold=5),
            transport=httpx.MockTransport(fake_qloo),
        )
        kwargs.setdefault("batch_delay", 0)
        return CulturalTruthEngine(
            client=client, environment=EnvironmentHolder(config), **kwargs,
        )

    return _make
