import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from ovpn_sync.config import get_settings
from ovpn_sync.database import SessionLocal
from ovpn_sync.events import EventBus, UserChanged
from ovpn_sync.openvpn import build_gateway
from ovpn_sync.routers import sync, users
from ovpn_sync.services.device_monitor import DeviceMonitor
from ovpn_sync.services.scheduler import SyncScheduler
from ovpn_sync.services.user_sync import UserReconciler

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def build_services(settings, gateway=None, session_factory=SessionLocal) -> dict:
    """Wire gateway, reconciler, device monitor, scheduler and event bus together."""
    gateway = gateway or build_gateway(settings)
    reconciler = UserReconciler(
        gateway,
        session_factory,
        max_workers=settings.sync_max_workers,
        protected_accounts=settings.protected_accounts,
    )
    monitor = DeviceMonitor(gateway, session_factory)
    scheduler = SyncScheduler(
        reconciler,
        monitor,
        interval_minutes=settings.sync_interval_minutes,
        history_size=settings.sync_history_size,
    )
    bus = EventBus()
    bus.subscribe(UserChanged, scheduler.handle_user_event)
    return {
        "vpn_gateway": gateway,
        "user_reconciler": reconciler,
        "device_monitor": monitor,
        "sync_scheduler": scheduler,
        "event_bus": bus,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = build_services(settings)
    for name, service in services.items():
        setattr(app.state, name, service)
    scheduler = services["sync_scheduler"]
    if settings.sync_enabled:
        scheduler.start()
    else:
        logger.info("User sync scheduler disabled (SYNC_ENABLED=false)")
    try:
        yield
    finally:
        await scheduler.shutdown()
        await services["event_bus"].drain()
        services["vpn_gateway"].close()


app = FastAPI(title="OpenVPN User Sync API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sync.router)
app.include_router(users.router)


@app.get("/")
def root():
    return {"message": "OpenVPN User Sync API", "docs": "/docs"}


@app.get("/health")
def health(request: Request):
    scheduler = getattr(request.app.state, "sync_scheduler", None)
    if scheduler is None:
        return {"status": "starting", "scheduler": None}
    status = scheduler.get_status()
    return {
        "status": "ok",
        "scheduler": {
            "is_running": status.is_running,
            "is_syncing": status.is_syncing,
            "interval_minutes": status.interval_minutes,
            "next_run_at": status.next_run_at,
            "last_pass_status": status.last_pass.status if status.last_pass else None,
        },
    }
