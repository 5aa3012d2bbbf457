"""
Engine — Analysis Orchestrator

One analysis runs:

  bias scan → entity extraction → (cache hit | Qloo lookup)
            → [demographic enrichment] → mitigation → audit append

The bias scan and scoring are synchronous and local: they never depend
on Qloo. Everything after extraction is best-effort. Individual Qloo
failures (ExternalServiceError, CircuitOpenError) are logged and dropped,
so a Qloo outage degrades an analysis to bias-only instead of failing it.

Any other exception is a system error: it is recorded in the audit log
as an `analysis_error` event and re-raised to the caller.

The engine also exposes the rest of the tool surface: reports, direct
Qloo lookups, batch analysis, realtime signals and environment control.
"""

from __future__ import annotations

import asyncio
import hashlib
import math
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, TypeVar

from culturaltruth.audit import AuditLog, hash_content
from culturaltruth.cache import BoundedCache, make_key
from culturaltruth.circuit_breaker import CircuitBreaker
from culturaltruth.config import settings
from culturaltruth.detector import detect_bias
from culturaltruth.environment import (
    EnvironmentConfig,
    EnvironmentHolder,
    build_environment,
    preset,
)
from culturaltruth.errors import (
    CircuitOpenError,
    ConfigurationError,
    ExternalServiceError,
    FeatureDisabledError,
    ValidationError,
)
from culturaltruth.extractor import extract_candidates
from culturaltruth.logging import get_logger
from culturaltruth.mitigation import synthesize_mitigation
from culturaltruth.qloo import QlooClient, entity_tags, sanitize_entity
from culturaltruth.rate_limit import TokenBucketRateLimiter
from culturaltruth.scorer import calculate_compliance_score
from culturaltruth.types import (
    AnalysisResult,
    AuditRecord,
    BatchItemResult,
    BatchResult,
    ComplianceScore,
    CulturalEntity,
    DemographicAnalysis,
)

logger = get_logger("engine")

T = TypeVar("T")

MAX_LOOKUP_CANDIDATES = 5
LOOKUP_LIMIT = 3
DEMOGRAPHIC_BUCKETS = ("young_adult", "middle_aged", "senior")
DEMOGRAPHIC_SEED_ENTITIES = 3
DEMOGRAPHIC_CONFIDENCE = 0.8
BATCH_CHUNK_SIZE = 5
MAX_TRENDS_LIMIT = 50
TRUNCATED_CONTENT_LENGTH = 1000
SIGNAL_INTERACTIONS = ("view", "like", "share", "purchase", "rating")
COMMON_TAG_SHARE = 0.3
MAX_COMMON_TAGS = 10

SYSTEM_ERROR_ACTION = "System error occurred during analysis"

TOLERATED_ERRORS = (ExternalServiceError, CircuitOpenError)


async def settle(
    calls: Sequence[Awaitable[T]],
) -> tuple[list[T], list[Exception]]:
    """
    Await every call and partition outcomes into (successes, failures).

    Only Qloo failures are partitioned out. Anything else is re-raised
    once all calls have finished.
    """
    outcomes = await asyncio.gather(*calls, return_exceptions=True)
    successes: list[T] = []
    failures: list[Exception] = []
    for outcome in outcomes:
        if isinstance(outcome, TOLERATED_ERRORS):
            failures.append(outcome)
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            successes.append(outcome)
    return successes, failures


@dataclass
class _RunCounters:
    """Per-analysis counters. Never shared across analyses."""
    external_calls: int = 0
    cache_hits: int = 0


class CulturalTruthEngine:
    """Bias detection + compliance scoring with Qloo enrichment."""

    def __init__(
        self,
        client: QlooClient,
        environment: Optional[EnvironmentHolder] = None,
        entity_cache: Optional[BoundedCache] = None,
        demographic_cache: Optional[BoundedCache] = None,
        audit_log: Optional[AuditLog] = None,
        max_content_length: Optional[int] = None,
        max_batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.client = client
        self.environment = environment or EnvironmentHolder()
        # Caches and the log define __len__, so an empty one is falsy
        if entity_cache is None:
            entity_cache = BoundedCache(
                max_size=settings.MAX_CACHE_SIZE, ttl_seconds=settings.CACHE_TTL_SECONDS,
            )
        if demographic_cache is None:
            demographic_cache = BoundedCache(
                max_size=settings.MAX_CACHE_SIZE, ttl_seconds=settings.CACHE_TTL_SECONDS,
            )
        if audit_log is None:
            audit_log = AuditLog(max_records=settings.MAX_AUDIT_RECORDS)
        self.entity_cache = entity_cache
        self.demographic_cache = demographic_cache
        self.audit_log = audit_log
        self.max_content_length = max_content_length or settings.MAX_CONTENT_LENGTH
        self.max_batch_size = max_batch_size or settings.MAX_BATCH_SIZE
        self.batch_delay = (
            settings.BATCH_DELAY_SECONDS if batch_delay is None else batch_delay
        )
        self._sleep = sleep
        self._clock = clock

    # ============================================================
    # ANALYSIS
    # ============================================================

    async def analyze_content(
        self,
        text: str,
        user_id: Optional[str] = None,
        include_demographics: bool = True,
    ) -> AnalysisResult:
        """Run one full analysis and append its audit record."""
        if not isinstance(text, str):
            raise ValidationError("Content must be a string.")
        if len(text) > self.max_content_length:
            raise ValidationError(
                f"Content exceeds maximum length of {self.max_content_length} characters."
            )

        # One snapshot per analysis; a concurrent swap never leaks in
        config = self.environment.current
        session_id = secrets.token_hex(8)
        run = _RunCounters()
        start = self._clock()

        try:
            findings = detect_bias(text, config)
            score = calculate_compliance_score(findings, config)

            entities: list[CulturalEntity] = []
            demographics = None
            candidates = extract_candidates(text)
            if candidates:
                entities = await self._lookup_entities(config, candidates, run)
                if entities and include_demographics and config.features.demographics:
                    demographics = await self._enrich_demographics(config, entities, run)

            actions = synthesize_mitigation(findings)
        except Exception as e:
            logger.error(
                "Analysis failed",
                exc_info=True,
                extra={
                    "session_id": session_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            self._append_record(
                text=text,
                session_id=session_id,
                user_id=user_id,
                findings=(),
                entity_ids=(),
                score=ComplianceScore.degraded("SYSTEM_ERROR"),
                actions=(SYSTEM_ERROR_ACTION,),
                start=start,
                run=run,
                event_type="analysis_error",
            )
            raise

        record = self._append_record(
            text=text,
            session_id=session_id,
            user_id=user_id,
            findings=tuple(findings),
            entity_ids=tuple(e.entity_id for e in entities),
            score=score,
            actions=tuple(actions),
            start=start,
            run=run,
        )

        logger.info(
            "Analysis complete",
            extra={
                "session_id": session_id,
                "user_id": user_id,
                "mode": config.mode,
                "detection_level": config.detection_level,
                "overall_score": score.overall,
                "risk_tier": score.risk_tier,
                "findings_count": len(findings),
                "entities_count": len(entities),
                "external_calls": run.external_calls,
                "cache_hits": run.cache_hits,
                "duration_ms": record.elapsed_ms,
            },
        )

        return AnalysisResult(
            session_id=session_id,
            findings=tuple(findings),
            compliance_score=score,
            cultural_entities=tuple(entities),
            mitigation_actions=tuple(actions),
            audit_record=record,
            demographics=demographics,
        )

    def _append_record(
        self,
        *,
        text: str,
        session_id: str,
        user_id: Optional[str],
        findings: tuple,
        entity_ids: tuple[str, ...],
        score: ComplianceScore,
        actions: tuple[str, ...],
        start: float,
        run: _RunCounters,
        event_type: str = "analysis",
    ) -> AuditRecord:
        record = AuditRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            session_id=session_id,
            user_id=user_id,
            content_digest=hash_content(text),
            truncated_content=text[:TRUNCATED_CONTENT_LENGTH],
            findings=findings,
            referenced_entity_ids=entity_ids,
            compliance_score=score,
            mitigation_actions=actions,
            elapsed_ms=round((self._clock() - start) * 1000, 2),
            external_call_count=run.external_calls,
            cache_hit_count=run.cache_hits,
            event_type=event_type,
        )
        return self.audit_log.append(record)

    async def _call_qloo(
        self, run: _RunCounters, fn: Callable[..., Awaitable[T]], *args: Any,
    ) -> T:
        """Invoke a client method, counting it unless the breaker short-circuits."""
        attempted = True
        try:
            return await fn(*args)
        except CircuitOpenError:
            attempted = False
            raise
        finally:
            if attempted:
                run.external_calls += 1

    def _log_tolerated(self, message: str, failures: list[Exception], **extra: Any) -> None:
        for failure in failures:
            logger.warning(
                message,
                extra={
                    "error": str(failure),
                    "error_type": type(failure).__name__,
                    **extra,
                },
            )

    async def _lookup_entities(
        self,
        config: EnvironmentConfig,
        candidates: list[str],
        run: _RunCounters,
    ) -> list[CulturalEntity]:
        key = make_key(*sorted(candidates))
        cached = self.entity_cache.get(key)
        if cached is not None:
            run.cache_hits += 1
            return [e.copy() for e in cached]

        batches, failures = await settle([
            self._call_qloo(run, self.client.search_entities, config, candidate, None, LOOKUP_LIMIT)
            for candidate in candidates[:MAX_LOOKUP_CANDIDATES]
        ])
        self._log_tolerated("Entity lookup failed", failures)

        entities = [sanitize_entity(raw) for batch in batches for raw in batch]
        # An all-failed fan-out is not a real "no entities" answer
        if batches:
            self.entity_cache.set(key, tuple(entities))
        return [e.copy() for e in entities]

    async def _enrich_demographics(
        self,
        config: EnvironmentConfig,
        entities: list[CulturalEntity],
        run: _RunCounters,
    ) -> tuple[DemographicAnalysis, ...]:
        seed_ids = ",".join(e.entity_id for e in entities[:DEMOGRAPHIC_SEED_ENTITIES])
        analyses, failures = await settle([
            self._demographic_bucket(config, bucket, seed_ids, run)
            for bucket in DEMOGRAPHIC_BUCKETS
        ])
        self._log_tolerated("Demographic lookup failed", failures)
        return tuple(analyses)

    async def _demographic_bucket(
        self,
        config: EnvironmentConfig,
        bucket: str,
        seed_ids: str,
        run: _RunCounters,
    ) -> DemographicAnalysis:
        key = make_key("demo", bucket, seed_ids)
        cached = self.demographic_cache.get(key)
        if cached is not None:
            run.cache_hits += 1
            entities = cached
        else:
            raw = await self._call_qloo(run, self.client.get_insights, config, {
                "filter.type": "urn:entity:movie",
                "signal.demographics.age": bucket,
                "take": 5,
            })
            entities = tuple(sanitize_entity(r) for r in raw)
            self.demographic_cache.set(key, entities)

        return DemographicAnalysis(
            demographic=bucket,
            entities=tuple(e.copy() for e in entities),
            confidence=DEMOGRAPHIC_CONFIDENCE,
            cultural_relevance=0.7 if entities else 0.3,
        )

    # ============================================================
    # BATCH
    # ============================================================

    async def batch_analyze(self, requests: Sequence[Any]) -> BatchResult:
        """
        Analyze many items in chunks of five with a fixed pause between
        chunks. A failed item becomes a PROCESSING_ERROR entry; it never
        aborts the batch.
        """
        config = self.environment.current
        if not config.features.batch:
            raise FeatureDisabledError("Batch processing is disabled in this environment.")
        if not requests:
            raise ValidationError("Batch must contain at least one item.")
        if len(requests) > self.max_batch_size:
            raise ValidationError(
                f"Batch exceeds maximum size of {self.max_batch_size} items."
            )

        start = self._clock()
        results: list[BatchItemResult] = []
        rounds = 0
        for offset in range(0, len(requests), BATCH_CHUNK_SIZE):
            if rounds:
                await self._sleep(self.batch_delay)
            chunk = requests[offset:offset + BATCH_CHUNK_SIZE]
            results.extend(await asyncio.gather(*(
                self._batch_item(offset + i, item) for i, item in enumerate(chunk)
            )))
            rounds += 1

        results.sort(key=lambda r: r.index)
        total = sum(r.compliance_score.overall for r in results)
        elapsed_ms = round((self._clock() - start) * 1000, 2)

        batch = BatchResult(
            results=tuple(results),
            total_processed=len(results),
            average_compliance_score=round(total / len(results), 2),
            critical_issues_count=sum(
                1 for r in results
                if r.error is None and r.compliance_score.risk_tier == "critical"
            ),
            elapsed_ms=elapsed_ms,
            rounds=rounds,
        )
        logger.info(
            "Batch complete",
            extra={
                "batch_size": batch.total_processed,
                "rounds": rounds,
                "overall_score": batch.average_compliance_score,
                "duration_ms": elapsed_ms,
            },
        )
        return batch

    async def _batch_item(self, index: int, item: Any) -> BatchItemResult:
        try:
            content, user_id, include_demographics = _unpack_batch_item(item)
            analysis = await self.analyze_content(
                content, user_id=user_id, include_demographics=include_demographics,
            )
        except Exception as e:
            logger.warning(
                "Batch item failed",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return BatchItemResult(
                index=index,
                findings=(),
                compliance_score=ComplianceScore.degraded("PROCESSING_ERROR"),
                cultural_entities=(),
                elapsed_ms=0.0,
                error=str(e),
            )
        return BatchItemResult(
            index=index,
            findings=analysis.findings,
            compliance_score=analysis.compliance_score,
            cultural_entities=analysis.cultural_entities,
            elapsed_ms=analysis.audit_record.elapsed_ms,
        )

    # ============================================================
    # REPORTING
    # ============================================================

    def generate_compliance_report(
        self, days_back: int = 7, now: Optional[datetime] = None,
    ) -> dict:
        """Report over the last days_back days (1 to 365)."""
        return self.audit_log.generate_report(days_back=days_back, now=now)

    # ============================================================
    # REALTIME SIGNALS
    # ============================================================

    def record_signal(
        self,
        entity_id: str,
        interaction: str,
        session_id: str,
        user_id: Optional[str] = None,
        value: Optional[float] = None,
        location: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """
        Record a user interaction as a `signal` audit record.

        value, location and metadata are kept on the record. Returns False
        when the signal lacks an entity or session id.
        """
        config = self.environment.current
        if not config.features.realtime_signals:
            raise FeatureDisabledError("Realtime signals are disabled in this environment.")
        if interaction not in SIGNAL_INTERACTIONS:
            raise ValidationError(
                f"Unknown interaction '{interaction}'. "
                f"Expected one of {', '.join(SIGNAL_INTERACTIONS)}."
            )
        if value is not None and not 0 <= value <= 5:
            raise ValidationError("Signal value must be between 0 and 5.")
        if not entity_id or not session_id:
            return False

        record = AuditRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            session_id=session_id,
            user_id=user_id,
            content_digest=hashlib.sha256((entity_id + interaction).encode()).hexdigest(),
            truncated_content=f"Real-time signal: {interaction} for {entity_id}",
            findings=(),
            referenced_entity_ids=(entity_id,),
            compliance_score=ComplianceScore(
                eu_ai_act=100.0, section_508=100.0, gdpr=100.0,
                overall=100.0, risk_tier="low",
            ),
            mitigation_actions=(f"Real-time signal processed: {interaction}",),
            elapsed_ms=0.0,
            external_call_count=0,
            cache_hit_count=0,
            event_type="signal",
            signal={
                "value": value,
                "location": location,
                "metadata": dict(metadata) if metadata else None,
            },
        )
        self.audit_log.append(record)
        logger.info(
            "Realtime signal recorded",
            extra={"session_id": session_id, "user_id": user_id},
        )
        return True

    # ============================================================
    # ENVIRONMENT
    # ============================================================

    def get_environment(self) -> EnvironmentConfig:
        return self.environment.current

    def set_environment(self, config: EnvironmentConfig) -> EnvironmentConfig:
        previous = self.environment.swap(config)
        logger.info(
            "Environment switched from %s to %s", previous.mode, config.mode,
            extra={"mode": config.mode, "detection_level": config.detection_level},
        )
        return config

    def configure_environment(
        self,
        mode: str,
        detection_level: Optional[str] = None,
        enabled_features: Optional[Mapping[str, bool]] = None,
        enable_full_potential: Optional[bool] = None,
    ) -> EnvironmentConfig:
        config = build_environment(
            mode,
            detection_level=detection_level,
            enabled_features=enabled_features,
            enable_full_potential=enable_full_potential,
        )
        return self.set_environment(config)

    # ============================================================
    # DIRECT QLOO LOOKUPS
    # ============================================================
    # These surface Qloo failures to the caller instead of absorbing them.

    async def search_cultural_entities(
        self,
        query: str,
        entity_type: Optional[str] = None,
        limit: int = 10,
    ) -> list[CulturalEntity]:
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("Search query must be a non-empty string.")
        if limit < 1:
            raise ValidationError("limit must be at least 1.")
        config = self.environment.current
        key = make_key("search", query, entity_type, limit)
        cached = self.entity_cache.get(key)
        if cached is not None:
            return [e.copy() for e in cached]
        raw = await self.client.search_entities(config, query, entity_type, limit)
        entities = tuple(sanitize_entity(r) for r in raw)
        self.entity_cache.set(key, entities)
        return [e.copy() for e in entities]

    async def get_insights(self, params: Mapping[str, Any]) -> list[CulturalEntity]:
        raw = await self.client.get_insights(self.environment.current, _check_params(params))
        return [sanitize_entity(r) for r in raw]

    async def get_demographic_insights(
        self, params: Mapping[str, Any],
    ) -> list[CulturalEntity]:
        params = _check_params(params)
        if "signal.demographics.age" not in params and "signal.demographics.gender" not in params:
            raise ValidationError("Demographic insights need an age or gender signal.")
        raw = await self.client.get_insights(self.environment.current, params)
        return [sanitize_entity(r) for r in raw]

    async def get_trending_entities(self, entity_type: str) -> list[CulturalEntity]:
        if not entity_type:
            raise ValidationError("entity_type is required.")
        raw = await self.client.get_trending_entities(self.environment.current, entity_type)
        return [sanitize_entity(r) for r in raw]

    async def get_cultural_trends(
        self,
        category: str,
        demographic: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[CulturalEntity]:
        config = self.environment.current
        if not config.features.trends:
            raise FeatureDisabledError("Cultural trends are disabled in this environment.")
        if not category:
            raise ValidationError("category is required.")
        if limit is not None:
            limit = min(limit, MAX_TRENDS_LIMIT)
        raw = await self.client.get_trending_entities(config, category, demographic, limit)
        return [sanitize_entity(r) for r in raw]

    async def get_geospatial_insights(
        self, params: Mapping[str, Any],
    ) -> list[CulturalEntity]:
        config = self.environment.current
        if not config.features.geospatial:
            raise FeatureDisabledError("Geospatial insights are disabled in this environment.")
        params = _check_params(params)
        if "filter.type" not in params:
            raise ValidationError("Geospatial insights need a 'filter.type' parameter.")
        raw = await self.client.get_geospatial_insights(config, params)
        return [sanitize_entity(r) for r in raw]

    async def compare_audiences(
        self, group_a_ids: Sequence[str], group_b_ids: Sequence[str],
    ) -> dict:
        """Compare two entity groups by popularity and shared tags."""
        if not group_a_ids or not group_b_ids:
            raise ValidationError("Both audience groups need at least one entity id.")
        config = self.environment.current
        raw_a, raw_b = await asyncio.gather(
            self.client.get_entities_by_ids(config, list(group_a_ids)),
            self.client.get_entities_by_ids(config, list(group_b_ids)),
        )
        group_a = _summarize_group(raw_a)
        group_b = _summarize_group(raw_b)
        return {
            "group_a": group_a,
            "group_b": group_b,
            **_delta_scores(group_a, group_b),
        }

    async def compare_entities(
        self, group_a_ids: Sequence[str], group_b_ids: Sequence[str],
    ) -> list[CulturalEntity]:
        """Qloo's own comparison of two entity groups (/v2/insights/compare)."""
        group_a = _check_ids(group_a_ids)
        group_b = _check_ids(group_b_ids)
        raw = await self.client.compare_entities(self.environment.current, group_a, group_b)
        return [sanitize_entity(r) for r in raw]

    # ============================================================
    # STATUS / LIFECYCLE
    # ============================================================

    def system_status(self) -> dict:
        config = self.environment.current
        return {
            "version": settings.VERSION,
            "environment": config.to_dict(),
            "qloo": self.client.stats,
            "entity_cache": self.entity_cache.stats,
            "demographic_cache": self.demographic_cache.stats,
            "audit": {
                "records": self.audit_log.count,
                "max_records": self.audit_log.max_records,
                "total_appended": self.audit_log.total_appended,
            },
        }

    async def aclose(self) -> None:
        await self.client.aclose()


# ============================================================
# HELPERS
# ============================================================

def _unpack_batch_item(item: Any) -> tuple[str, Optional[str], bool]:
    if isinstance(item, Mapping):
        return (
            item.get("content"),
            item.get("user_id"),
            item.get("include_demographics", True),
        )
    return (
        getattr(item, "content", None),
        getattr(item, "user_id", None),
        getattr(item, "include_demographics", True),
    )


def _check_params(params: Any) -> dict:
    if not isinstance(params, Mapping) or not params:
        raise ValidationError("Query parameters must be a non-empty mapping.")
    return dict(params)


def _check_ids(entity_ids: Any) -> list[str]:
    if isinstance(entity_ids, str) or not entity_ids:
        raise ValidationError("Each entity group needs at least one entity id.")
    ids = [i.strip() for i in entity_ids if isinstance(i, str) and i.strip()]
    if len(ids) != len(entity_ids):
        raise ValidationError("Entity ids must be non-empty strings.")
    return ids


def _summarize_group(raw_entities: list[Any]) -> dict:
    popularities = []
    tag_counts: dict[str, int] = {}
    for raw in raw_entities:
        props = raw.get("properties") if isinstance(raw, Mapping) else None
        popularity = props.get("popularity") if isinstance(props, Mapping) else None
        popularities.append(popularity if isinstance(popularity, (int, float)) else 0)
        for tag in entity_tags(raw):
            tag_counts[tag] = tag_counts.get(tag, 0) + 1

    count = len(raw_entities)
    min_count = math.ceil(count * COMMON_TAG_SHARE)
    common_tags = [
        tag for tag, n in tag_counts.items() if n >= min_count
    ][:MAX_COMMON_TAGS]

    return {
        "entities": [sanitize_entity(raw).to_dict() for raw in raw_entities],
        "average_popularity": round(sum(popularities) / count, 4) if count else 0.0,
        "common_tags": common_tags,
    }


def _delta_scores(group_a: dict, group_b: dict) -> dict:
    popularity_delta = group_a["average_popularity"] - group_b["average_popularity"]
    shared = set(group_a["common_tags"]) & set(group_b["common_tags"])
    widest = max(len(group_a["common_tags"]), len(group_b["common_tags"]))
    overlap = len(shared) / widest * 100 if widest else 0.0
    affinity = min(100.0, overlap + 50 * (1 - abs(popularity_delta)))

    recommendations = []
    if abs(popularity_delta) > 0.3:
        recommendations.append(
            f"High popularity gap detected ({popularity_delta * 100:.1f}%)"
        )
    if overlap < 20:
        recommendations.append(
            "Low cultural overlap - consider different targeting strategies"
        )
    if affinity > 80:
        recommendations.append(
            "Strong cultural affinity - excellent cross-promotion potential"
        )

    return {
        "popularity_delta": round(popularity_delta, 4),
        "overlap_percentage": round(overlap, 2),
        "cultural_affinity_score": round(affinity, 2),
        "recommendations": recommendations,
    }


def create_engine(
    api_key: Optional[str] = None,
    mode: Optional[str] = None,
    transport: Any = None,
) -> CulturalTruthEngine:
    """Build an engine from process settings. Fails fast without an API key."""
    api_key = api_key or settings.QLOO_API_KEY
    if not api_key:
        raise ConfigurationError("QLOO_API_KEY is not set.")

    client = QlooClient(
        api_key=api_key,
        rate_limiter=TokenBucketRateLimiter(
            tokens_per_interval=settings.RATE_LIMIT_PER_MINUTE,
            interval_seconds=60.0,
        ),
        circuit_breaker=CircuitBreaker(
            failure_threshold=settings.CIRCUIT_BREAKER_THRESHOLD,
            recovery_timeout=settings.CIRCUIT_BREAKER_TIMEOUT,
        ),
        timeout=settings.API_TIMEOUT,
        transport=transport,
    )
    initial = preset(mode or settings.DEFAULT_MODE)
    logger.info(
        "CulturalTruth engine ready",
        extra={"mode": initial.mode, "detection_level": initial.detection_level},
    )
    return CulturalTruthEngine(client=client, environment=EnvironmentHolder(initial))
