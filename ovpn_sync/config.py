import logging
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_SYNC_INTERVAL_MINUTES = 15
MIN_SYNC_INTERVAL_MINUTES = 1
MAX_SYNC_INTERVAL_MINUTES = 60


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./app.db"

    # JWT (tokens are issued by the user-management service)
    secret_key: str = "your-secret-key-change-in-production"
    algorithm: str = "HS256"

    # Frontend URL for CORS
    frontend_url: str = "http://localhost:3000"

    log_level: str = "INFO"

    # sacli transport: "docker" (docker exec), "ssh" (paramiko) or "proxy" (host profile proxy)
    sacli_transport: str = "docker"
    openvpn_container_name: str = "openvpn-server"
    sacli_binary: str = "sacli"
    sacli_timeout_seconds: float = 20.0

    # Profile proxy running on the Docker host, e.g. http://host.docker.internal:3001
    profile_proxy_url: str = "http://host.docker.internal:3001"

    # SSH access to the Access Server host (sacli_transport=ssh)
    openvpn_ssh_host: str = ""
    openvpn_ssh_user: str = "root"
    openvpn_ssh_password: str = ""

    # Scheduler
    sync_enabled: bool = True
    sync_interval_minutes: int = DEFAULT_SYNC_INTERVAL_MINUTES
    sync_max_workers: int = 4
    sync_history_size: int = 10

    # Comma-separated accounts that orphan deletion never touches
    sync_protected_accounts: str = "openvpn"

    class Config:
        env_file = ".env"

    @field_validator("sync_interval_minutes", mode="before")
    @classmethod
    def _fallback_interval(cls, value):
        try:
            minutes = int(value)
        except (TypeError, ValueError):
            minutes = 0
        if not MIN_SYNC_INTERVAL_MINUTES <= minutes <= MAX_SYNC_INTERVAL_MINUTES:
            logger.warning(
                "Invalid SYNC_INTERVAL_MINUTES %r, using default %d",
                value,
                DEFAULT_SYNC_INTERVAL_MINUTES,
            )
            return DEFAULT_SYNC_INTERVAL_MINUTES
        return minutes

    @field_validator("sync_max_workers")
    @classmethod
    def _clamp_workers(cls, value: int) -> int:
        return max(1, min(value, 8))

    @property
    def protected_accounts(self) -> set[str]:
        return {name.strip() for name in self.sync_protected_accounts.split(",") if name.strip()}


@lru_cache
def get_settings() -> Settings:
    return Settings()
