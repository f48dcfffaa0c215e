"""
Shared FastAPI dependencies for the control-plane routers.

The StateManager and SyncScheduler are injected by service.py at startup
(or directly by tests).
"""

from fastapi import Depends, Header, HTTPException

from control.auth import authenticate_admin
from control.errors import AuthenticationError, ConflictError, PersistenceError, ValidationError

_state_manager = None
_sync_scheduler = None
_enrichment = None


def set_state_manager(manager):
    global _state_manager
    _state_manager = manager


def set_sync_scheduler(scheduler):
    global _sync_scheduler
    _sync_scheduler = scheduler


def set_enrichment(service):
    global _enrichment
    _enrichment = service


def get_manager():
    if _state_manager is None:
        raise HTTPException(status_code=503, detail="State manager not initialized")
    return _state_manager


def get_scheduler():
    return _sync_scheduler


def get_enrichment():
    if _enrichment is None:
        raise HTTPException(status_code=503, detail="Enrichment service not initialized")
    return _enrichment


def require_admin(x_admin_password: str | None = Header(None), manager=Depends(get_manager)):
    if not x_admin_password or not authenticate_admin(manager.current(), x_admin_password):
        raise HTTPException(status_code=401, detail="Unauthorized")


def run(manager, operation, *args, **kwargs):
    """Apply a lifecycle operation, mapping control-plane errors to HTTP errors"""
    try:
        return manager.apply(operation, *args, **kwargs)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except ConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
