"""
Reconcile OpenVPN Access Server accounts with the users table.

One pass: load users, list remote accounts, create missing accounts, refresh
drifted properties, then (optionally) delete orphans. Per-user gateway failures
are recorded in the summary and never abort the pass; failing to load either
side does, because there is nothing to diff.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from ovpn_sync.exceptions import GatewayError, SelfRemovalError, UserNotFoundError, ValidationError
from ovpn_sync.openvpn.config import PROP_DISPLAY_NAME, PROP_EMAIL, PROP_SUPERUSER
from ovpn_sync.openvpn.gateway import VpnGateway
from ovpn_sync.repositories import user_repository
from ovpn_sync.schemas.sync import (
    CreatedAccount,
    LocalUserCounts,
    RemoteAccountCounts,
    SchedulerStatus,
    SkippedUser,
    SyncComparison,
    SyncDrift,
    SyncIssue,
    SyncStatusReport,
    SyncSummary,
)
from ovpn_sync.utils.passwords import generate_temp_password

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserSnapshot:
    """Detached copy of a user row, safe to hand to worker threads."""
    id: str
    username: str | None
    email: str
    name: str
    is_admin: bool
    email_verified: bool
    eligible: bool
    reason: str | None

    @classmethod
    def from_model(cls, user) -> "UserSnapshot":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            name=user.name or "",
            is_admin=user.is_admin,
            email_verified=bool(user.email_verified),
            eligible=user.is_sync_eligible,
            reason=user.ineligibility_reason(),
        )


@dataclass
class _UserResult:
    action: str
    created: CreatedAccount | None = None
    error: str | None = None


def desired_properties(user: UserSnapshot) -> dict[str, str]:
    props = {}
    if user.email:
        props[PROP_EMAIL] = user.email
    if user.name:
        props[PROP_DISPLAY_NAME] = user.name
    props[PROP_SUPERUSER] = "true" if user.is_admin else "false"
    return props


class UserReconciler:

    def __init__(
        self,
        gateway: VpnGateway,
        session_factory,
        *,
        max_workers: int = 4,
        protected_accounts: set[str] | frozenset[str] = frozenset(),
        password_factory: Callable[[], str] = generate_temp_password,
    ):
        self.gateway = gateway
        self.session_factory = session_factory
        self.max_workers = max(1, max_workers)
        self.protected_accounts = frozenset(protected_accounts)
        self.password_factory = password_factory

    # ---------- loading ----------

    def load_users(self, user_id: str | None = None) -> list[UserSnapshot]:
        with self.session_factory() as db:
            if user_id is not None:
                user = user_repository.get_user(db, user_id)
                if user is None:
                    raise UserNotFoundError(f"User {user_id} not found")
                users = [user]
            else:
                users = user_repository.list_users(db)
            return [UserSnapshot.from_model(u) for u in users]

    # ---------- per-user work ----------

    def _apply(self, username: str, props: dict[str, str]) -> None:
        for key, value in props.items():
            self.gateway.set_property(username, key, value)

    def _sync_one(self, user: UserSnapshot, remote_props: dict[str, str] | None, dry_run: bool) -> _UserResult:
        desired = desired_properties(user)

        if remote_props is None:
            if dry_run:
                return _UserResult("created", CreatedAccount(username=user.username))
            password = self.password_factory()
            self.gateway.create_account(user.username, password)
            created = CreatedAccount(username=user.username, temp_password=password)
            logger.info("OpenVPN account created: %s", user.username)
            try:
                self._apply(user.username, desired)
            except Exception as e:
                # The account exists now; surface its password even though properties failed
                return _UserResult("created", created, error=str(e))
            return _UserResult("created", created)

        changes = {k: v for k, v in desired.items() if remote_props.get(k) != v}
        if not changes:
            return _UserResult("unchanged")
        if not dry_run:
            self._apply(user.username, changes)
            logger.info("OpenVPN account updated: %s (%s)", user.username, ", ".join(sorted(changes)))
        return _UserResult("updated")

    def _fan_out(self, items: list, fn) -> list[tuple]:
        """Run fn over items with bounded concurrency. Returns (item, result, error|None) in input order."""

        def guarded(item):
            try:
                return item, fn(item), None
            except GatewayError as e:
                return item, None, e
            except Exception as e:
                # Non-gateway faults stay per-user too
                logger.exception("Unexpected error syncing %s", getattr(item, "username", item))
                return item, None, e

        if self.max_workers == 1 or len(items) <= 1:
            return [guarded(item) for item in items]
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(items))) as executor:
            return list(executor.map(guarded, items))

    # ---------- passes ----------

    def sync_users(self, dry_run: bool = False, delete_orphaned: bool = False, user_id: str | None = None) -> SyncSummary:
        """
        Run one reconciliation pass, over every user or only `user_id`.
        Eligibility is computed fresh here; creates/updates finish before deletes start.
        """
        logger.info(
            "Starting user synchronization (dry_run=%s, delete_orphaned=%s, user_id=%s)",
            dry_run, delete_orphaned, user_id,
        )
        users = self.load_users(user_id)
        remote = self.gateway.list_accounts()
        logger.info("Loaded %d local users and %d OpenVPN accounts", len(users), len(remote))

        summary = SyncSummary(dry_run=dry_run)
        eligible = [u for u in users if u.eligible]
        for u in users:
            if not u.eligible:
                summary.skipped.append(SkippedUser(id=u.id, username=u.username, reason=u.reason))

        for user, result, error in self._fan_out(
            eligible, lambda u: self._sync_one(u, remote.get(u.username), dry_run)
        ):
            if error is not None:
                logger.error("Error syncing user %s: %s", user.username, error)
                summary.errors.append(SyncIssue(username=user.username, error=str(error)))
                continue
            if result.action == "created":
                summary.created.append(result.created)
            elif result.action == "updated":
                summary.updated.append(user.username)
            else:
                summary.unchanged.append(user.username)
            if result.error:
                logger.error("Error setting properties for new account %s: %s", user.username, result.error)
                summary.errors.append(SyncIssue(username=user.username, error=result.error))

        if delete_orphaned:
            self._delete_orphans(summary, users, eligible, remote, dry_run, scoped=user_id is not None)

        logger.info("User synchronization completed: %s", summary.counts())
        return summary

    def _delete_orphans(self, summary, users, eligible, remote, dry_run, scoped):
        eligible_names = {u.username for u in eligible}
        if scoped:
            candidates = [u.username for u in users if not u.eligible and u.username in remote]
        else:
            candidates = [name for name in remote if name not in eligible_names]

        to_delete = []
        for name in candidates:
            if name in self.protected_accounts:
                summary.skipped.append(SkippedUser(username=name, reason="protected"))
            else:
                to_delete.append(name)

        if dry_run:
            summary.deleted.extend(to_delete)
            return
        for name, _result, error in self._fan_out(to_delete, self.gateway.delete_account):
            if error is not None:
                logger.error("Error deleting orphaned account %s: %s", name, error)
                summary.errors.append(SyncIssue(username=name, error=str(error)))
            else:
                summary.deleted.append(name)

    def sync_single_user(self, user_id: str, dry_run: bool = False, delete_orphaned: bool = False) -> SyncSummary:
        return self.sync_users(dry_run=dry_run, delete_orphaned=delete_orphaned, user_id=user_id)

    def remove_account(self, username: str, acting_username: str | None = None) -> str:
        """Delete one remote account outside a pass. Refuses the caller's own account."""
        clean = (username or "").strip()
        if not clean:
            raise ValidationError("Invalid username. Must be a non-empty string.")
        if acting_username and acting_username == clean:
            raise SelfRemovalError("You cannot remove your own OpenVPN account")
        self.gateway.delete_account(clean)
        return clean

    # ---------- reporting ----------

    def status_report(self, scheduler_status: SchedulerStatus | None = None) -> SyncStatusReport:
        users = self.load_users()
        remote_names = sorted(self.gateway.list_accounts())

        local_names = {u.username for u in users if u.eligible}
        remote_set = set(remote_names)
        in_sync = sorted(local_names & remote_set)
        missing = sorted(local_names - remote_set)
        orphaned = sorted(remote_set - local_names)
        with_username = sum(1 for u in users if u.username and u.username.strip())

        return SyncStatusReport(
            local=LocalUserCounts(
                total=len(users),
                with_username=with_username,
                without_username=len(users) - with_username,
                verified=sum(1 for u in users if u.email_verified),
                eligible=len(local_names),
            ),
            remote=RemoteAccountCounts(total=len(remote_names), users=remote_names),
            comparison=SyncComparison(
                in_sync=len(in_sync),
                missing_in_vpn=len(missing),
                orphaned_in_vpn=len(orphaned),
                sync_percentage=round(len(in_sync) / len(local_names) * 100) if local_names else 100,
            ),
            details=SyncDrift(in_sync=in_sync, missing_in_vpn=missing, orphaned_in_vpn=orphaned),
            scheduler=scheduler_status,
            last_checked=datetime.utcnow(),
        )
