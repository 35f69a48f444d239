import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from ovpn_sync.auth import get_current_user_admin
from ovpn_sync.database import get_db
from ovpn_sync.dependencies import get_reconciler, get_scheduler
from ovpn_sync.exceptions import GatewayError, SelfRemovalError, UserNotFoundError, ValidationError
from ovpn_sync.models.user import User
from ovpn_sync.repositories import device_repository
from ovpn_sync.schemas.sync import (
    AccountRemovedResponse,
    DeviceResponse,
    IntervalUpdate,
    PassOutcome,
    PassStatus,
    SchedulerControl,
    SchedulerStateResponse,
    SchedulerStatus,
    SingleUserSyncRequest,
    SyncRequest,
    SyncRunResponse,
    SyncStatusReport,
)
from ovpn_sync.services.scheduler import SyncScheduler
from ovpn_sync.services.user_sync import UserReconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])

GATEWAY_UNAVAILABLE = "Unable to reach the OpenVPN Access Server. Please ensure the container is running."


def _gateway_unavailable(e: GatewayError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=f"{GATEWAY_UNAVAILABLE} ({e})",
    )


def _run_message(outcome: PassOutcome) -> str:
    if outcome.status == PassStatus.SKIPPED:
        return "Sync skipped: another sync is already in progress"
    message = (
        "Dry run completed successfully (no changes made)"
        if outcome.dry_run
        else "User synchronization completed successfully"
    )
    if outcome.summary and outcome.summary.errors:
        message += f" with {len(outcome.summary.errors)} error(s)"
    return message


def _state(scheduler: SyncScheduler, message: str, changed: bool) -> SchedulerStateResponse:
    return SchedulerStateResponse(
        message=message,
        changed=changed,
        is_running=scheduler.is_running,
        interval_minutes=scheduler.interval_minutes,
        next_run_at=scheduler.next_run_at,
    )


# ---------- Passes ----------


@router.post("/users", response_model=SyncRunResponse)
async def sync_all_users(
    body: SyncRequest | None = None,
    admin: User = Depends(get_current_user_admin),
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    """
    Run one full reconciliation pass now (admin only). A pass already in flight
    makes this return a skipped outcome instead of waiting. Created accounts carry
    their temporary password in this response only.
    """
    body = body or SyncRequest()
    logger.info(
        "Admin %s initiating full user sync (dry_run=%s, delete_orphaned=%s)",
        admin.email, body.dry_run, body.delete_orphaned,
    )
    try:
        outcome = await scheduler.run_now(dry_run=body.dry_run, delete_orphaned=body.delete_orphaned)
    except GatewayError as e:
        raise _gateway_unavailable(e)
    return SyncRunResponse(message=_run_message(outcome), outcome=outcome)


@router.post("/users/{user_id}", response_model=SyncRunResponse)
async def sync_single_user(
    user_id: str,
    body: SingleUserSyncRequest | None = None,
    admin: User = Depends(get_current_user_admin),
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    """Create or update one user's Access Server account (admin only)."""
    body = body or SingleUserSyncRequest()
    logger.info("Admin %s syncing single user %s", admin.email, user_id)
    try:
        outcome = await scheduler.run_now(
            dry_run=body.dry_run,
            delete_orphaned=body.delete_orphaned,
            user_id=user_id,
        )
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except GatewayError as e:
        raise _gateway_unavailable(e)
    return SyncRunResponse(message=_run_message(outcome), outcome=outcome)


@router.delete("/accounts/{username}", response_model=AccountRemovedResponse)
def remove_account(
    username: str,
    admin: User = Depends(get_current_user_admin),
    reconciler: UserReconciler = Depends(get_reconciler),
):
    """Delete one account from the Access Server (admin only). Admins cannot remove their own account."""
    logger.info("Admin %s removing OpenVPN account %s", admin.email, username)
    try:
        removed = reconciler.remove_account(username, acting_username=admin.username)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except SelfRemovalError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except GatewayError as e:
        raise _gateway_unavailable(e)
    return AccountRemovedResponse(
        message=f"User {removed} removed from OpenVPN Access Server",
        username=removed,
    )


# ---------- Status ----------


@router.get("/status", response_model=SyncStatusReport)
def get_sync_status(
    admin: User = Depends(get_current_user_admin),
    reconciler: UserReconciler = Depends(get_reconciler),
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    """Local vs. Access Server counts, drift lists and scheduler state (admin only)."""
    try:
        report = reconciler.status_report(scheduler.get_status())
    except GatewayError as e:
        raise _gateway_unavailable(e)
    logger.info(
        "Sync status for %s: %d in sync, %d missing, %d orphaned",
        admin.email,
        report.comparison.in_sync,
        report.comparison.missing_in_vpn,
        report.comparison.orphaned_in_vpn,
    )
    return report


# ---------- Scheduler ----------


@router.get("/scheduler", response_model=SchedulerStatus)
def get_scheduler_status(
    _admin: User = Depends(get_current_user_admin),
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    return scheduler.get_status()


@router.post("/scheduler", response_model=SchedulerStateResponse)
async def control_scheduler(
    body: SchedulerControl,
    admin: User = Depends(get_current_user_admin),
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    """Start or stop the scheduler (admin only). Repeating the current state is a no-op."""
    logger.info("Admin %s requesting scheduler %s", admin.email, body.action)
    if body.action == "start":
        changed = scheduler.start()
        message = "Scheduler started successfully" if changed else "Scheduler is already running"
    else:
        changed = scheduler.stop()
        message = "Scheduler stopped successfully" if changed else "Scheduler is already stopped"
    return _state(scheduler, message, changed)


@router.put("/scheduler/interval", response_model=SchedulerStateResponse)
async def update_interval(
    body: IntervalUpdate,
    admin: User = Depends(get_current_user_admin),
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    """Change the sync interval, 1-60 minutes (admin only). A running timer restarts."""
    logger.info("Admin %s updating scheduler interval to %s minutes", admin.email, body.interval_minutes)
    try:
        minutes = scheduler.update_interval(body.interval_minutes)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _state(scheduler, f"Scheduler interval updated to {minutes} minutes", True)


@router.post("/scheduler/reset", response_model=SchedulerStatus)
def reset_statistics(
    admin: User = Depends(get_current_user_admin),
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    logger.info("Admin %s resetting scheduler statistics", admin.email)
    scheduler.reset_stats()
    return scheduler.get_status()


# ---------- Devices ----------


@router.get("/devices", response_model=list[DeviceResponse])
def list_devices(
    active_only: bool = False,
    limit: int = 100,
    _admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
):
    """Device registry as maintained by the connection monitor (admin only)."""
    return device_repository.list_devices(db, active_only=active_only, limit=min(max(limit, 1), 500))
