"""
Nova - AI request orchestration
FastAPI Backend with reasoning model + tools
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
import logging
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import runtime_config
from logging_config import setup_logging
from routers import ai
from routers.ai_orchestration import (
    AIOrchestrator,
    ContextAccumulator,
    ContextAssembler,
    Executor,
    ModeClassifier,
    Planner,
    Validator,
)
from services.embeddings import EmbeddingClient
from services.llm_client import FastClassifierClient, ReasoningClient
from services.session_cache import SessionCache
from services.vector_index import VectorIndex
from tools.registry import load_tool_modules, tool_registry

setup_logging()
logger = logging.getLogger(__name__)


@dataclass
class StartupHealth:
    """Tracks component health through startup phases."""
    phase: str = "initializing"
    redis: str = "pending"
    postgres: str = "pending"
    tools: str = "pending"
    startup_complete: bool = False


_startup_health = StartupHealth()

# Instance ID - changes on every startup
INSTANCE_ID = str(uuid.uuid4())


def build_orchestrator(config, db=None, redis=None, registry=tool_registry, embedder=None, vector_index=None):
    """Wire the pipeline components from config and the shared clients."""
    llm = ReasoningClient.from_config(config)
    return AIOrchestrator(
        llm=llm,
        registry=registry,
        classifier=ModeClassifier(FastClassifierClient.from_config(config)),
        context_assembler=ContextAssembler(
            db=db,
            embedder=embedder,
            vector_index=vector_index,
            top_k=config.semantic_top_k,
            semantic_timeout=config.semantic_search_timeout,
        ),
        planner=Planner(llm),
        executor=Executor(
            registry,
            parallel=config.executor_parallel,
            failure_policy=config.executor_failure_policy,
            excerpt_chars=config.step_excerpt_chars,
        ),
        validator=Validator(llm, excerpt_chars=config.validation_excerpt_chars),
        session_cache=SessionCache(
            ttl_seconds=config.session_ttl, history_size=config.session_history_size, redis=redis
        ),
        accumulator=ContextAccumulator(db),
        max_iterations=config.max_tool_iterations,
        flush_delay=config.stream_flush_delay,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown events"""
    # --- Phase 1: Services ---
    _startup_health.phase = "services"

    redis = None
    try:
        from services.redis_client import get_redis

        redis = await get_redis()
        health = await redis.health_check()
        if health.get("status") == "connected":
            logger.info(f"Redis connected (latency: {health.get('latency_ms', '?')}ms)")
            _startup_health.redis = "healthy"
        elif health.get("status") == "fallback":
            logger.warning("Redis unavailable, using in-memory fallback (sessions won't persist)")
            _startup_health.redis = "fallback"
        else:
            logger.warning(f"Redis status: {health.get('status')}")
            _startup_health.redis = "failed"
    except Exception as e:
        logger.warning(f"Redis connection failed: {e}, sessions won't persist")
        _startup_health.redis = "failed"

    db = None
    try:
        from services.database import get_database

        db = await get_database()
        health = await db.health_check()
        _startup_health.postgres = "healthy" if health.get("status") == "connected" else health.get("status", "failed")
        if _startup_health.postgres != "healthy":
            logger.warning(f"PostgreSQL status: {_startup_health.postgres}, context lookups will be empty")
    except Exception as e:
        logger.warning(f"PostgreSQL connection failed: {e}, context lookups will be empty")
        _startup_health.postgres = "failed"

    # --- Phase 2: Tools ---
    _startup_health.phase = "tools"
    loaded = load_tool_modules(tool_registry, runtime_config.get_tool_modules())
    try:
        tool_registry.validate()
    except Exception as e:
        # Advertised tools without handlers - abort startup
        logger.error(f"Tool registry validation failed: {e}")
        raise
    _startup_health.tools = "healthy"
    logger.info(f"Tool catalog ready: {len(tool_registry)} tools from {loaded} module(s)")

    # --- Phase 3: Pipeline ---
    _startup_health.phase = "pipeline"
    embedder = EmbeddingClient.from_config(runtime_config)
    vector_index = VectorIndex.from_config(runtime_config)
    if embedder is None or vector_index is None:
        logger.info("Semantic search disabled (VOYAGE_API_KEY or QDRANT_URL not set)")

    orchestrator = build_orchestrator(
        runtime_config, db=db, redis=redis, embedder=embedder, vector_index=vector_index
    )
    app.state.db = db
    app.state.embedder = embedder
    app.state.vector_index = vector_index
    app.state.orchestrator = orchestrator

    _startup_health.phase = "ready"
    _startup_health.startup_complete = True
    logger.info("Nova ready")

    yield

    # Shutdown
    for name, closer in (
        ("reasoning client", orchestrator.llm.aclose),
        ("embedding client", embedder.aclose if embedder else None),
        ("vector index", vector_index.aclose if vector_index else None),
        ("classifier", orchestrator.classifier.client.aclose if orchestrator.classifier.client else None),
    ):
        if closer is None:
            continue
        try:
            await closer()
        except Exception as e:
            logger.debug(f"{name} close error: {e}")

    try:
        from services.database import close_database
        await close_database()
        logger.info("PostgreSQL pool closed")
    except Exception as e:
        logger.debug(f"PostgreSQL close error: {e}")

    try:
        from services.redis_client import close_redis
        await close_redis()
        logger.info("Redis connection closed")
    except Exception as e:
        logger.debug(f"Redis close error: {e}")

    logger.info("Nova signing off")


app = FastAPI(
    title="Nova",
    description="AI request orchestration for content management",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=runtime_config.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ai.router)


@app.get("/health")
async def health():
    """Health check - pings critical dependencies."""
    checks = {}

    try:
        from services.redis_client import get_redis
        redis = await get_redis()
        redis_health = await redis.health_check()
        checks["redis"] = "ok" if redis_health.get("status") in ("connected", "fallback") else "down"
    except Exception:
        checks["redis"] = "down"

    try:
        from services.database import get_database
        db = await get_database()
        db_health = await db.health_check()
        status = db_health.get("status")
        checks["postgres"] = "ok" if status == "connected" else ("disabled" if status == "disabled" else "down")
    except Exception:
        checks["postgres"] = "down"

    all_ok = all(v in ("ok", "disabled") for v in checks.values())
    return {
        "status": "healthy" if all_ok else "degraded",
        "service": "nova",
        "checks": checks,
        "tools": len(tool_registry),
        "startup_phase": _startup_health.phase,
        "startup_complete": _startup_health.startup_complete,
        "components": {
            "redis": _startup_health.redis,
            "postgres": _startup_health.postgres,
            "tools": _startup_health.tools,
        },
    }


@app.get("/api/instance")
async def get_instance():
    """Return instance ID - changes on each startup."""
    return {"instance_id": INSTANCE_ID}
