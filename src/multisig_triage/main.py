"""
Multisig Triage - Main Application
===================================

Urgency triage service for multisig approval tickets.

Modules:
- Triage: Score tickets, index them in ordered key-value storage
  and re-score pending tickets in the background

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Key-value storage, LLM, scheduler
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional, Tuple

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from multisig_triage.config import Settings, get_settings
from multisig_triage.core import ResourceNotFoundException, ValidationException

# Infrastructure
from multisig_triage.infrastructure.kvstore import (
    InMemoryKeyValueStore,
    OrderedKeyValueStore,
    create_key_value_store,
)
from multisig_triage.infrastructure.llm import ILLMClient, MockLLMClient, OpenAILLMClient

# Triage Module
from multisig_triage.triage.application import (
    IScoringBackend,
    ReTriageJob,
    TriageService,
    UrgencyScoringService,
)
from multisig_triage.triage.infrastructure import (
    CircuitBreaker,
    KeyValueTicketRepository,
    LLMScoringBackend,
    ReTriageScheduler,
)
from multisig_triage.triage.interfaces import triage_router

# Logging and middleware
from multisig_triage.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    global_exception_handler,
    not_found_exception_handler,
    validation_exception_handler,
)
from multisig_triage.shared.infrastructure.logging import get_logger, setup_logging

logger = get_logger(__name__)


def build_scoring_backend(
    settings: Settings
) -> Tuple[Optional[ILLMClient], Optional[IScoringBackend]]:
    """
    Build the optional LLM adjustment backend from settings.

    Returns:
        (llm_client, backend), both None when the LLM is disabled or
        cannot be configured
    """
    if not (settings.llm_enabled or settings.mock_llm):
        return None, None

    try:
        if settings.mock_llm:
            llm_client: ILLMClient = MockLLMClient()
        else:
            llm_client = OpenAILLMClient(
                model=settings.llm_model,
                base_url=settings.llm_base_url,
                api_key=settings.llm_api_key
            )
    except Exception as e:
        logger.warning(f"LLM client initialization failed: {e}")
        return None, None

    backend = LLMScoringBackend(
        llm_client,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        circuit_breaker=CircuitBreaker(
            failure_threshold=settings.llm_failure_threshold,
            recovery_timeout=settings.llm_recovery_seconds
        )
    )
    return llm_client, backend


def create_app(
    settings: Optional[Settings] = None,
    kv_store: Optional[OrderedKeyValueStore] = None,
    scoring_backend: Optional[IScoringBackend] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use, defaults to the environment
        kv_store: Pre-built store; the caller keeps ownership of it
        scoring_backend: Pre-built adjustment backend, overrides LLM settings
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """
        Application lifespan manager.

        STARTUP:
        1. Setup structured logging
        2. Open key-value storage
        3. Initialize LLM backend
        4. Wire triage services
        5. Start re-triage scheduler

        SHUTDOWN:
        1. Stop re-triage scheduler (waits for a running tick)
        2. Close LLM client
        3. Close storage
        """
        # === STARTUP ===
        setup_logging(settings.log_level, settings.environment)
        logger.info("Starting Multisig Triage", extra={
            "version": settings.app_version,
            "environment": settings.environment,
            "bootstrap_address": settings.bootstrap_address
        })

        owns_store = kv_store is None
        store = kv_store if kv_store is not None else create_key_value_store(
            settings.storage_url, echo=settings.debug
        )
        logger.info("Initializing key-value storage")
        await store.initialize()

        llm_client: Optional[ILLMClient] = None
        backend = scoring_backend
        if backend is None:
            llm_client, backend = build_scoring_backend(settings)
        if backend is None:
            logger.info("LLM adjustment disabled - using deterministic scoring only")

        repository = KeyValueTicketRepository(store)
        scorer = UrgencyScoringService(backend)
        triage_service = TriageService(
            repository,
            scorer,
            default_limit=settings.search_default_limit
        )
        retriage_job = ReTriageJob(repository, scorer, threshold=settings.retriage_threshold)

        scheduler: Optional[ReTriageScheduler] = None
        if settings.retriage_interval_seconds > 0:
            scheduler = await ReTriageScheduler(
                interval_seconds=settings.retriage_interval_seconds
            ).start(retriage_job.run)
        else:
            logger.info("Re-triage scheduler disabled")

        # Store services in app state for dependency injection
        app.state.settings = settings
        app.state.kv_store = store
        app.state.scorer = scorer
        app.state.triage_service = triage_service
        app.state.retriage_job = retriage_job
        app.state.scheduler = scheduler

        logger.info("Multisig Triage started successfully")

        yield  # Application runs here

        # === SHUTDOWN ===
        logger.info("Shutting down Multisig Triage")

        if scheduler:
            await scheduler.stop()

        if llm_client:
            await llm_client.close()

        if owns_store:
            await store.close()

        app.state.triage_service = None
        logger.info("Multisig Triage shutdown complete")

    app = FastAPI(
        title="Multisig Triage API",
        description="""
        ## Urgency triage for multisig approval tickets

        Tickets are scored on value, deadline proximity, approval progress,
        transaction type and recipient trust, optionally adjusted by a
        language model, then stored with secondary indexes on creation time,
        urgency, status, type and deadline.

        **Endpoints:**
        - `POST /tickets` - Score and store a ticket
        - `GET /tickets` - Union search by time range, urgency, status
        - `GET /tickets/due` - Tickets whose deadline has passed a threshold
        - `GET /tickets/stats` - Counts by status, urgency bucket and type
        - `GET /tickets/{id}` - Fetch one ticket
        - `DELETE /tickets/{id}` - Remove a ticket and its index entries
        """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.settings = settings

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ValidationException, validation_exception_handler)
    app.add_exception_handler(ResourceNotFoundException, not_found_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(triage_router)

    # === Health Check Endpoint ===

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """
        Health check endpoint for load balancers and orchestrators.

        Reports storage backend, scheduler state and LLM availability.
        """
        state = request.app.state
        store = getattr(state, "kv_store", None)
        scheduler = getattr(state, "scheduler", None)
        scorer = getattr(state, "scorer", None)

        if store is None:
            storage = "not_initialized"
        elif isinstance(store, InMemoryKeyValueStore):
            storage = "memory"
        else:
            storage = "connected"

        checks = {
            "storage": storage,
            "retriage_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
            "llm_backend": "available" if scorer and scorer.has_backend else "not_configured"
        }

        return {
            "status": "healthy" if store is not None else "starting",
            "version": settings.app_version,
            "environment": settings.environment,
            "bootstrap_address": settings.bootstrap_address,
            "checks": checks
        }

    @app.get("/ping", tags=["Health"])
    async def ping(nonce: int = Query(0, description="Echoed back incremented by one")):
        """Liveness probe answering a nonce with nonce + 1."""
        return {
            "nonce": nonce + 1,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "architecture": "Clean Architecture / Modular Monolith",
            "docs": "/docs",
            "health": "/health",
            "modules": {
                "triage": {
                    "prefix": "/tickets",
                    "endpoints": [
                        "POST /tickets - Submit ticket",
                        "GET /tickets - Search tickets",
                        "GET /tickets/due - Tickets due before a time",
                        "GET /tickets/stats - Ticket statistics",
                        "GET /tickets/{id} - Get ticket",
                        "DELETE /tickets/{id} - Delete ticket"
                    ]
                }
            }
        }

    return app


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    run()
