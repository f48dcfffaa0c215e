from fastapi import APIRouter, Depends, HTTPException

from control.api.deps import get_manager, get_scheduler, require_admin
from control.errors import PersistenceError
from control.reports import dashboard_stats

router = APIRouter(prefix="/sync", tags=["sync"])


@router.get("/status")
def sync_status(manager=Depends(get_manager), scheduler=Depends(get_scheduler)):
    state = manager.current()
    return {
        "scheduler_running": bool(scheduler and scheduler.running),
        "interval_seconds": scheduler.interval if scheduler else None,
        "last_sync_time": state.last_sync_time.isoformat(),
        "last_day_settlement": state.last_day_settlement.isoformat(),
        "last_error": scheduler.last_error if scheduler else None,
    }


@router.post("/run", dependencies=[Depends(require_admin)])
def run_sync(scheduler=Depends(get_scheduler)):
    """Manual sync trigger (same pass the timer runs)"""
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Sync scheduler not initialized")
    try:
        state = scheduler.tick()
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"last_sync_time": state.last_sync_time.isoformat()}


@router.get("/dashboard", dependencies=[Depends(require_admin)])
def dashboard(manager=Depends(get_manager)):
    return dashboard_stats(manager.current())
