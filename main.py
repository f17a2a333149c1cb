# ============================================================================
# SANDBOX LEASE ORCHESTRATOR - MAIN APPLICATION
# ============================================================================
# STATUS: Core - FastAPI application entry point
# PURPOSE: Wire collaborators, run reconciliation and the event consumer
# CREATED: 14 OCT 2026
# ============================================================================
"""
Sandbox Lease Orchestrator Main Application

FastAPI application that:
1. Opens the record store pool and the directory / identity clients
2. Builds the lifecycle engine and its services with explicit wiring
3. Runs the reconciliation scheduler and the lifecycle event consumer in
   the background
4. Serves health and status endpoints

Deployment requirement:
    This host runs drift reconciliation only. Lease monitoring (budget and
    expiry termination, threshold alerts and freezes) needs a CostReporter
    implementation, passed to ReconciliationScheduler as a
    LeaseMonitoringService. No CostReporter ships with the orchestrator, so
    without one no budget or expiry events are ever emitted and leases are
    only terminated by operators.

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import asyncio
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from __version__ import __version__, BUILD_DATE, CODENAME
from core.config import ConfigProvider
from core.errors import ErrorKind, SandboxError
from core.logging import ComponentType, configure_logging, get_logger
from infrastructure.access import IdentityCenterAccessManager, IdentityConfig
from infrastructure.organizations import DirectoryConfig, OrganizationsDirectory
from messaging import LifecycleEventConsumer, MessagingConfig, ServiceBusEventPublisher
from orchestrator import ReconciliationScheduler
from repositories import AccountRepository, DatabaseConfig, LeaseRepository, open_pool
from services import (
    AccountLifecycleHandler,
    AccountPlacementManager,
    DriftReconciliationService,
    EventService,
    LeaseLifecycleEngine,
)

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = get_logger(__name__, ComponentType.API)

# Status codes per error kind
_STATUS_BY_KIND = {
    ErrorKind.CONFLICT: 409,
    ErrorKind.PRECONDITION: 400,
    ErrorKind.TRANSIENT: 503,
    ErrorKind.ROLLBACK: 500,
    ErrorKind.FATAL: 500,
}

# Application state, populated by the lifespan
_state: Dict[str, Any] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Builds every collaborator explicitly and hands them to the services
    that need them. Nothing is cached at module level beyond this state.
    """
    logger.info(f"Starting {CODENAME} v{__version__} (Build {BUILD_DATE})")

    config_provider = ConfigProvider()
    defaults = config_provider.load()

    pool = await open_pool(DatabaseConfig.from_env())
    lease_repo = LeaseRepository(pool)
    account_repo = AccountRepository(pool)

    directory = OrganizationsDirectory(DirectoryConfig.from_env(), defaults.placement)
    access = IdentityCenterAccessManager(IdentityConfig.from_env())

    messaging_config = MessagingConfig.from_env()
    publisher = ServiceBusEventPublisher(messaging_config)
    await publisher.connect()
    events = EventService(publisher)

    placement = AccountPlacementManager(account_repo, directory, config_provider)
    engine = LeaseLifecycleEngine(
        lease_repo, account_repo, placement, access, events, config_provider
    )
    drift_service = DriftReconciliationService(
        account_repo, lease_repo, directory, events, config_provider
    )

    # No CostReporter here: see "Deployment requirement" in the module docstring
    scheduler = ReconciliationScheduler(drift_service, config_provider)
    await scheduler.start()

    consumer: Optional[LifecycleEventConsumer] = None
    consumer_task: Optional[asyncio.Task] = None
    if messaging_config.lifecycle_subscription:
        consumer = LifecycleEventConsumer(
            messaging_config, AccountLifecycleHandler(engine, lease_repo)
        )
        consumer_task = asyncio.create_task(consumer.run(), name="lifecycle-consumer")
    else:
        logger.warning("SANDBOX_LIFECYCLE_SUBSCRIPTION not set, lifecycle consumer disabled")

    _state.update(
        pool=pool,
        engine=engine,
        scheduler=scheduler,
        consumer=consumer,
    )
    logger.info("Orchestrator started")

    yield

    # Shutdown
    logger.info("Shutting down orchestrator...")

    await scheduler.stop()
    if consumer is not None:
        await consumer.stop()
    if consumer_task is not None:
        consumer_task.cancel()
        try:
            await consumer_task
        except asyncio.CancelledError:
            pass
    await publisher.close()
    await pool.close()
    _state.clear()

    logger.info("Orchestrator stopped")


# Create FastAPI app
app = FastAPI(
    title=CODENAME,
    description="Lease and account lifecycle orchestration for pooled sandbox accounts",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(SandboxError)
async def sandbox_error_handler(request: Request, exc: SandboxError) -> JSONResponse:
    """Map orchestrator errors to responses by kind."""
    body = {"error": type(exc).__name__, "kind": exc.kind.value, "detail": str(exc)}
    if getattr(exc, "requires_manual_intervention", False):
        body["requires_manual_intervention"] = True
    return JSONResponse(status_code=_STATUS_BY_KIND[exc.kind], content=body)


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": CODENAME,
        "version": __version__,
        "build_date": BUILD_DATE,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/livez")
async def livez():
    """Process is up."""
    return {"status": "ok"}


@app.get("/health")
async def health():
    """Database reachability plus background loop status."""
    checks: Dict[str, Any] = {}
    healthy = True

    pool = _state.get("pool")
    if pool is None:
        checks["database"] = "not initialized"
        healthy = False
    else:
        try:
            async with pool.connection() as conn:
                await conn.execute("SELECT 1")
            checks["database"] = "ok"
        except Exception as e:
            logger.warning(f"Health check database query failed: {e}")
            checks["database"] = f"error: {e}"
            healthy = False

    scheduler = _state.get("scheduler")
    checks["scheduler"] = scheduler.stats if scheduler else None
    consumer = _state.get("consumer")
    checks["consumer"] = consumer.stats if consumer else None

    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "healthy" if healthy else "unhealthy", "checks": checks},
    )


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD", "false").lower() == "true",
    )
