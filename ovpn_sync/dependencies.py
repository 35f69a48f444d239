"""Access to the services built in the lifespan (see main.py) from route handlers."""
from fastapi import HTTPException, Request, status

from ovpn_sync.events import EventBus
from ovpn_sync.services.scheduler import SyncScheduler
from ovpn_sync.services.user_sync import UserReconciler


def _service(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync service is not initialized.",
        )
    return service


def get_scheduler(request: Request) -> SyncScheduler:
    return _service(request, "sync_scheduler")


def get_reconciler(request: Request) -> UserReconciler:
    return _service(request, "user_reconciler")


def get_event_bus(request: Request) -> EventBus:
    return _service(request, "event_bus")
