"""
Control Plane Service Entrypoint

FastAPI application for the GhostLayer control plane.
Includes all API routers, the sync scheduler, and startup initialization.
"""
from fastapi import FastAPI
import logging

from control import config
from control.api import assist, auth, deps, join_requests, messages, servers, sync, users
from control.database import SessionLocal, init_db
from control.enrichment import EnrichmentService
from control.startup_profile import StartupProfile, validate_control_profile
from control.state_manager import StateManager
from control.store import DocumentStore, StateStore
from control.sync_engine import RandomUsageAccrual, SyncEngine, UpstreamUsageAccrual
from control.sync_scheduler import SyncScheduler

logger = logging.getLogger(__name__)

app = FastAPI(title="GhostLayer Control Plane")

# Include all API routers
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(servers.router)
app.include_router(messages.router)
app.include_router(join_requests.router)
app.include_router(sync.router)
app.include_router(assist.router)

# Global scheduler instance
sync_scheduler = None


def build_accrual():
    if config.ACCRUAL_MODE == "upstream":
        logger.info("Usage accrual: upstream subscription metering")
        return UpstreamUsageAccrual(timeout=config.UPSTREAM_TIMEOUT_SECONDS)
    logger.info(f"Usage accrual: simulated (max {config.ACCRUAL_MAX_GB} GB per tick)")
    return RandomUsageAccrual(max_increment_gb=config.ACCRUAL_MAX_GB)


@app.on_event("startup")
def startup_init():
    """Initialize database, load state and start the sync scheduler"""
    global sync_scheduler

    validate_control_profile(
        StartupProfile(role="CONTROL", host=config.BIND_HOST, port=config.API_PORT),
        sync_interval_seconds=config.SYNC_INTERVAL_SECONDS,
        accrual_mode=config.ACCRUAL_MODE,
        accrual_max_gb=config.ACCRUAL_MAX_GB,
    )

    init_db()

    manager = StateManager(StateStore(DocumentStore(SessionLocal), key=config.STATE_KEY))
    state = manager.current()
    logger.info(f"State loaded: {len(state.users)} users, {len(state.servers)} servers")

    deps.set_state_manager(manager)
    deps.set_enrichment(EnrichmentService.from_config())

    logger.info("Starting sync scheduler...")
    sync_scheduler = SyncScheduler(
        manager=manager,
        engine=SyncEngine(build_accrual()),
        interval_seconds=config.SYNC_INTERVAL_SECONDS,
    )
    sync_scheduler.start()
    deps.set_sync_scheduler(sync_scheduler)

    logger.info("Control plane startup complete")


@app.on_event("shutdown")
def shutdown_cleanup():
    """Stop sync scheduler on shutdown"""
    global sync_scheduler

    if sync_scheduler:
        logger.info("Stopping sync scheduler...")
        sync_scheduler.stop()

    logger.info("Control plane shutdown complete")


@app.get("/")
def root():
    return {
        "service": "control",
        "message": "GhostLayer control-plane service running",
    }
