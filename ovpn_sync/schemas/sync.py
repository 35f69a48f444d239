import enum
from datetime import datetime
from typing import Literal
from pydantic import BaseModel, Field, StrictBool


class CreatedAccount(BaseModel):
    username: str
    # Returned once to the operator; None in dry runs and in history
    temp_password: str | None = None


class SyncIssue(BaseModel):
    username: str
    error: str


class SkippedUser(BaseModel):
    id: str | None = None
    username: str | None = None
    reason: str


class DeviceRefreshSummary(BaseModel):
    observed: int = 0
    created: int = 0
    refreshed: int = 0
    conflicts: list[dict] = Field(default_factory=list)
    deactivated: int = 0
    unresolved: list[str] = Field(default_factory=list)
    errors: list[SyncIssue] = Field(default_factory=list)


class SyncSummary(BaseModel):
    dry_run: bool = False
    created: list[CreatedAccount] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    errors: list[SyncIssue] = Field(default_factory=list)
    skipped: list[SkippedUser] = Field(default_factory=list)
    devices: DeviceRefreshSummary | None = None

    def counts(self) -> dict[str, int]:
        return {
            "created": len(self.created),
            "updated": len(self.updated),
            "deleted": len(self.deleted),
            "errors": len(self.errors),
            "skipped": len(self.skipped),
        }

    def redacted(self) -> "SyncSummary":
        """Copy without temporary passwords, safe to keep in history."""
        return self.model_copy(
            update={"created": [CreatedAccount(username=c.username) for c in self.created]},
            deep=True,
        )


class PassStatus(str, enum.Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"
    SKIPPED = "skipped"


class PassTrigger(str, enum.Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"
    EVENT = "event"


class PassOutcome(BaseModel):
    status: PassStatus
    trigger: PassTrigger
    started_at: datetime
    duration_ms: int = 0
    dry_run: bool = False
    user_id: str | None = None
    summary: SyncSummary | None = None
    error: str | None = None
    reason: str | None = None

    @property
    def success(self) -> bool:
        return self.status in (PassStatus.SUCCESS, PassStatus.PARTIAL)


class SchedulerStatistics(BaseModel):
    total_passes: int = 0
    successful_passes: int = 0
    partial_passes: int = 0
    failed_passes: int = 0
    skipped_passes: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    errors: int = 0

    @property
    def success_rate(self) -> float:
        if not self.total_passes:
            return 0.0
        return round((self.successful_passes + self.partial_passes) / self.total_passes * 100, 2)


class SchedulerStatus(BaseModel):
    is_running: bool
    is_syncing: bool
    interval_minutes: int
    next_run_at: datetime | None = None
    last_pass: PassOutcome | None = None
    history: list[PassOutcome] = Field(default_factory=list)
    statistics: SchedulerStatistics
    success_rate: float = 0.0


class LocalUserCounts(BaseModel):
    total: int
    with_username: int
    without_username: int
    verified: int
    eligible: int


class RemoteAccountCounts(BaseModel):
    total: int
    users: list[str]


class SyncComparison(BaseModel):
    in_sync: int
    missing_in_vpn: int
    orphaned_in_vpn: int
    sync_percentage: int


class SyncDrift(BaseModel):
    in_sync: list[str]
    missing_in_vpn: list[str]
    orphaned_in_vpn: list[str]


class SyncStatusReport(BaseModel):
    local: LocalUserCounts
    remote: RemoteAccountCounts
    comparison: SyncComparison
    details: SyncDrift
    scheduler: SchedulerStatus | None = None
    last_checked: datetime


class SyncRequest(BaseModel):
    dry_run: StrictBool = False
    delete_orphaned: StrictBool = False


class SingleUserSyncRequest(BaseModel):
    dry_run: StrictBool = False
    delete_orphaned: StrictBool = False


class SchedulerControl(BaseModel):
    action: Literal["start", "stop"]


class IntervalUpdate(BaseModel):
    interval_minutes: int


class SchedulerStateResponse(BaseModel):
    message: str
    changed: bool
    is_running: bool
    interval_minutes: int
    next_run_at: datetime | None = None


class DeviceResponse(BaseModel):
    id: int
    user_id: str
    tunnel_ip: str
    name: str
    last_ip: str | None
    last_seen_at: datetime | None
    is_active: bool

    class Config:
        from_attributes = True


class SyncRunResponse(BaseModel):
    message: str
    outcome: PassOutcome


class AccountRemovedResponse(BaseModel):
    message: str
    username: str
