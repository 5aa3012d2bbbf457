"""
CulturalTruth API — Main Application

POST /analyze              — Bias analysis with Qloo cultural enrichment
POST /analyze/batch        — Batch analysis (chunks of 5)
GET  /report               — Compliance report over the audit log
GET  /audit                — Recent audit records
GET  /audit/verify         — Verify audit hash chain
GET  /patterns             — Bias rules for a detection level
GET  /patterns/{rule_id}   — One bias rule
GET  /entities/search      — Qloo entity search
POST /entities/compare     — Qloo comparison of two entity groups
POST /insights             — Qloo insights
POST /insights/demographic — Qloo demographic insights
GET  /trending             — Trending entities by type
GET  /trends               — Cultural trends (trends feature)
POST /geospatial           — Geospatial insights (geospatial feature)
POST /audiences/compare    — Compare two entity groups
POST /signals              — Record a realtime user signal
GET  /environment          — Active environment
PUT  /environment          — Switch / configure environment
GET  /status               — Engine, breaker, cache and audit status
GET  /health               — Health check
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from culturaltruth.config import settings
from culturaltruth.engine import CulturalTruthEngine, create_engine
from culturaltruth.errors import (
    CircuitOpenError,
    CulturalTruthError,
    ExternalServiceError,
    FeatureDisabledError,
    ValidationError,
)
from culturaltruth.logging import get_logger, setup_logging
from culturaltruth.patterns import get_rule, get_rules
from culturaltruth.schemas.tools import (
    AnalyzeRequest,
    AnalyzeResponse,
    AuditResponse,
    BatchRequest,
    BatchResponse,
    ChainVerification,
    CompareRequest,
    CompareResponse,
    EntityListResponse,
    EnvironmentRequest,
    EnvironmentResponse,
    HealthResponse,
    InsightsRequest,
    ReportResponse,
    SearchResponse,
    SignalRequest,
    SignalResponse,
)

logger = get_logger("api")


# ============================================================
# STARTUP / SHUTDOWN
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the engine on startup, close its HTTP client on shutdown."""
    setup_logging()
    engine = create_engine()
    app.state.engine = engine
    logger.info("CulturalTruth API starting",
                extra={"mode": engine.get_environment().mode})
    yield
    await engine.aclose()
    logger.info("CulturalTruth API shutting down")


app = FastAPI(
    title="CulturalTruth API",
    description="Bias detection and AI-regulation compliance scoring with Qloo cultural intelligence",
    version=settings.VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",")],
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    allow_credentials=False,
)


def get_engine(request: Request) -> CulturalTruthEngine:
    return request.app.state.engine


# ============================================================
# ERROR HANDLERS
# ============================================================

# First match wins; FeatureDisabledError is a ValidationError subclass
_STATUS_BY_ERROR = (
    (FeatureDisabledError, 403),
    (ValidationError, 400),
    (CircuitOpenError, 503),
    (ExternalServiceError, 502),
)


@app.exception_handler(CulturalTruthError)
async def culturaltruth_error_handler(request: Request, exc: CulturalTruthError):
    """Typed engine errors carry their own classification and remediation."""
    status_code = next(
        (code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 500,
    )
    logger.warning(
        f"Request failed: {exc.classification}",
        extra={
            "error": exc.message,
            "error_type": type(exc).__name__,
            "path": request.url.path,
            "status_code": status_code,
        },
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_error_handler(request: Request, exc: Exception):
    """Anything untyped becomes a plain 500 without internals."""
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        extra={"error": str(exc), "path": request.url.path, "method": request.method},
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error. The analysis could not be completed.",
        },
    )


# ============================================================
# ROUTES
# ============================================================

@app.post("/analyze", response_model=AnalyzeResponse)
async def analyze(
    request: AnalyzeRequest,
    engine: CulturalTruthEngine = Depends(get_engine),
):
    """Analyze content for bias and score regulatory compliance."""
    result = await engine.analyze_content(
        request.content,
        user_id=request.user_id,
        include_demographics=request.include_demographics,
    )
    return result.to_dict()


@app.post("/analyze/batch", response_model=BatchResponse)
async def analyze_batch(
    request: BatchRequest,
    engine: CulturalTruthEngine = Depends(get_engine),
):
    """Analyze several texts. Failed items are reported, not raised."""
    result = await engine.batch_analyze([item.model_dump() for item in request.items])
    return result.to_dict()


@app.get("/report", response_model=ReportResponse)
async def compliance_report(
    days: int = Query(7, ge=1, le=365),
    engine: CulturalTruthEngine = Depends(get_engine),
):
    return engine.generate_compliance_report(days_back=days)


@app.get("/audit", response_model=AuditResponse)
async def get_audit(
    limit: int = Query(20, ge=1, le=100),
    event_type: Optional[str] = None,
    engine: CulturalTruthEngine = Depends(get_engine),
):
    """Get recent audit records, oldest first."""
    records = engine.audit_log.recent(limit=limit, event_type=event_type)
    return {
        "entries": [r.to_dict() for r in records],
        "total_count": engine.audit_log.count,
    }


@app.get("/audit/verify", response_model=ChainVerification)
async def verify_audit(engine: CulturalTruthEngine = Depends(get_engine)):
    return engine.audit_log.verify_chain()


@app.get("/patterns")
async def patterns(
    level: Optional[str] = Query(None, pattern="^(strict|moderate|lenient)$"),
):
    """Bias rules, optionally restricted to one detection level."""
    rules = get_rules(level)
    return {"detection_level": level, "total": len(rules), "rules": rules}


@app.get("/patterns/{rule_id}")
async def pattern(rule_id: str):
    try:
        return get_rule(rule_id).to_dict()
    except KeyError:
        raise HTTPException(404, f"Unknown bias rule: {rule_id}")


@app.get("/entities/search", response_model=SearchResponse)
async def search_entities(
    query: str = Query(..., min_length=1, max_length=200),
    type: Optional[str] = None,
    limit: int = Query(10, ge=1, le=50),
    engine: CulturalTruthEngine = Depends(get_engine),
):
    entities = await engine.search_cultural_entities(query, entity_type=type, limit=limit)
    return {"query": query, "entities": [e.to_dict() for e in entities]}


@app.post("/entities/compare", response_model=EntityListResponse)
async def compare_entities(
    request: CompareRequest,
    engine: CulturalTruthEngine = Depends(get_engine),
):
    entities = await engine.compare_entities(request.group_a, request.group_b)
    return {"entities": [e.to_dict() for e in entities]}


@app.post("/insights", response_model=EntityListResponse)
async def insights(
    request: InsightsRequest,
    engine: CulturalTruthEngine = Depends(get_engine),
):
    entities = await engine.get_insights(request.params)
    return {"entities": [e.to_dict() for e in entities]}


@app.post("/insights/demographic", response_model=EntityListResponse)
async def demographic_insights(
    request: InsightsRequest,
    engine: CulturalTruthEngine = Depends(get_engine),
):
    entities = await engine.get_demographic_insights(request.params)
    return {"entities": [e.to_dict() for e in entities]}


@app.get("/trending", response_model=EntityListResponse)
async def trending(
    type: str = Query(..., min_length=1),
    engine: CulturalTruthEngine = Depends(get_engine),
):
    entities = await engine.get_trending_entities(type)
    return {"entities": [e.to_dict() for e in entities]}


@app.get("/trends", response_model=EntityListResponse)
async def cultural_trends(
    category: str = Query(..., min_length=1),
    demographic: Optional[str] = None,
    limit: Optional[int] = Query(None, ge=1),
    engine: CulturalTruthEngine = Depends(get_engine),
):
    entities = await engine.get_cultural_trends(category, demographic=demographic, limit=limit)
    return {"entities": [e.to_dict() for e in entities]}


@app.post("/geospatial", response_model=EntityListResponse)
async def geospatial(
    request: InsightsRequest,
    engine: CulturalTruthEngine = Depends(get_engine),
):
    entities = await engine.get_geospatial_insights(request.params)
    return {"entities": [e.to_dict() for e in entities]}


@app.post("/audiences/compare", response_model=CompareResponse)
async def compare_audiences(
    request: CompareRequest,
    engine: CulturalTruthEngine = Depends(get_engine),
):
    return await engine.compare_audiences(request.group_a, request.group_b)


@app.post("/signals", response_model=SignalResponse)
async def record_signal(
    request: SignalRequest,
    engine: CulturalTruthEngine = Depends(get_engine),
):
    recorded = engine.record_signal(
        entity_id=request.entity_id,
        interaction=request.interaction,
        session_id=request.session_id,
        user_id=request.user_id,
        value=request.value,
        location=request.location,
        metadata=request.metadata,
    )
    return {"recorded": recorded}


@app.get("/environment", response_model=EnvironmentResponse)
async def get_environment(engine: CulturalTruthEngine = Depends(get_engine)):
    return engine.get_environment().to_dict()


@app.put("/environment", response_model=EnvironmentResponse)
async def configure_environment(
    request: EnvironmentRequest,
    engine: CulturalTruthEngine = Depends(get_engine),
):
    config = engine.configure_environment(
        request.mode,
        detection_level=request.detection_level,
        enabled_features=request.enabled_features,
        enable_full_potential=request.enable_full_potential,
    )
    return config.to_dict()


@app.get("/status")
async def status(engine: CulturalTruthEngine = Depends(get_engine)):
    return engine.system_status()


@app.get("/health", response_model=HealthResponse)
async def health(engine: CulturalTruthEngine = Depends(get_engine)):
    config = engine.get_environment()
    return {
        "status": "operational",
        "version": settings.VERSION,
        "mode": config.mode,
        "detection_level": config.detection_level,
        "circuit_breaker": engine.client.circuit_breaker.state,
        "audit_records": engine.audit_log.count,
    }


# --- Security + Version Headers Middleware ---
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Add security and version headers to all responses."""
    response = await call_next(request)
    response.headers["X-CulturalTruth-Version"] = settings.VERSION
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


# --- Body Size Limit Middleware ---
_MAX_BODY_BYTES = 1_048_576  # 1 MB


@app.middleware("http")
async def enforce_body_size_limit(request: Request, call_next):
    """Reject requests exceeding 1MB, by Content-Length or by actual body."""
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > _MAX_BODY_BYTES:
        return JSONResponse(
            status_code=413,
            content={"detail": "Request body too large."},
        )

    if request.method in ("POST", "PUT", "PATCH"):
        body = await request.body()
        if len(body) > _MAX_BODY_BYTES:
            return JSONResponse(
                status_code=413,
                content={"detail": "Request body too large."},
            )

    return await call_next(request)


# --- Request Logging Middleware ---
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with method, path, status, duration."""
    path = request.url.path
    if path == "/health":
        return await call_next(request)

    start = time.time()
    response = await call_next(request)
    duration_ms = round((time.time() - start) * 1000, 1)

    logger.info(
        f"{request.method} {path} → {response.status_code} ({duration_ms}ms)",
        extra={
            "method": request.method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    return response


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host=settings.HOST, port=settings.PORT)
