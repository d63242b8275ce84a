import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from .client import DEFAULT_BASE_URL
from .db import DB_PATH
from .workers import DEFAULT_POOL_SIZE

FAMILIES = ("stock", "bond", "fund")


class ConfigError(ValueError):
    pass


def _as_bool(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class SyncSettings:
    username: str
    password: str
    base_url: str = DEFAULT_BASE_URL
    timeout_s: float = 30.0
    sync_cron: str = "0 19 * * *"
    sync_on_start: bool = False
    families: Tuple[str, ...] = FAMILIES
    pool_size: int = DEFAULT_POOL_SIZE
    db_path: str = DB_PATH
    timezone: str = "UTC"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SyncSettings":
        """Read settings from the environment (call `load_dotenv()` first to pick up .env)."""
        env = os.environ if environ is None else environ

        username = env.get("PASARDANA_USERNAME", "").strip()
        password = env.get("PASARDANA_PASSWORD", "").strip()
        if not username or not password:
            raise ConfigError("PASARDANA_USERNAME and PASARDANA_PASSWORD must be set")

        try:
            pool_size = int(env.get("SCRAPE_POOL_SIZE", DEFAULT_POOL_SIZE))
            timeout_s = float(env.get("PASARDANA_TIMEOUT", 30))
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting: {e}") from e
        if pool_size < 1:
            raise ConfigError("SCRAPE_POOL_SIZE must be at least 1")

        families = tuple(
            f.strip().lower() for f in env.get("SYNC_FAMILIES", ",".join(FAMILIES)).split(",") if f.strip()
        )
        unknown = [f for f in families if f not in FAMILIES]
        if unknown:
            raise ConfigError(f"Unknown SYNC_FAMILIES entries: {', '.join(unknown)}")

        return cls(
            username=username,
            password=password,
            base_url=env.get("PASARDANA_BASE_URL", DEFAULT_BASE_URL),
            timeout_s=timeout_s,
            sync_cron=env.get("SYNC_CRON", cls.sync_cron),
            sync_on_start=_as_bool(env.get("SYNC_ON_START")),
            families=families,
            pool_size=pool_size,
            db_path=env.get("MARKET_DB_PATH", DB_PATH),
            timezone=env.get("SCHED_TZ", "UTC"),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
