from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote_plus

from dotenv import load_dotenv


def _load_repo_env() -> None:
    """Load the nearest .env starting from this file upward."""
    current = Path(__file__).resolve()
    for candidate in [current.parent, *current.parents]:
        env_file = candidate / ".env"
        if env_file.exists():
            load_dotenv(env_file)
            return


_load_repo_env()


def _require_env(name: str) -> str:
    value = os.getenv(name)
    if value is None or value == "":
        raise ValueError(f"Environment variable {name} is required")
    return value


def _require_env_int(name: str) -> int:
    raw = _require_env(name)
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


@dataclass(frozen=True)
class UserManagementConfig:
    redis_host: str
    redis_port: int
    redis_db: int
    record_prefix: str
    warehouse_host: str
    warehouse_port: int
    warehouse_name: str
    warehouse_user: str
    warehouse_password: str
    warehouse_dataset: str | None
    warehouse_table: str
    migration_queue_name: str
    log_level: str = "INFO"
    warehouse_dsn_override: str | None = None

    @property
    def warehouse_dsn(self) -> str:
        if self.warehouse_dsn_override:
            return self.warehouse_dsn_override
        user = quote_plus(self.warehouse_user)
        password = quote_plus(self.warehouse_password)
        return (
            f"postgresql+psycopg://{user}:{password}"
            f"@{self.warehouse_host}:{self.warehouse_port}/{self.warehouse_name}"
        )


def load_config() -> UserManagementConfig:
    dsn_override = os.getenv("USERMGMT_WAREHOUSE_DSN") or None
    if dsn_override:
        # Connection details come from the DSN; the parts are informational.
        warehouse_host = os.getenv("USERMGMT_WAREHOUSE_HOST", "")
        warehouse_port = _env_int("USERMGMT_WAREHOUSE_PORT", 5432)
        warehouse_name = os.getenv("USERMGMT_WAREHOUSE_NAME", "")
        warehouse_user = os.getenv("USERMGMT_WAREHOUSE_USER", "")
        warehouse_password = os.getenv("USERMGMT_WAREHOUSE_PASSWORD", "")
    else:
        warehouse_host = _require_env("USERMGMT_WAREHOUSE_HOST")
        warehouse_port = _require_env_int("USERMGMT_WAREHOUSE_PORT")
        warehouse_name = _require_env("USERMGMT_WAREHOUSE_NAME")
        warehouse_user = _require_env("USERMGMT_WAREHOUSE_USER")
        warehouse_password = _require_env("USERMGMT_WAREHOUSE_PASSWORD")

    return UserManagementConfig(
        redis_host=os.getenv("USERMGMT_REDIS_HOST", "localhost"),
        redis_port=_env_int("USERMGMT_REDIS_PORT", 6379),
        redis_db=_env_int("USERMGMT_REDIS_DB", 0),
        record_prefix=os.getenv("USERMGMT_RECORD_PREFIX", "users"),
        warehouse_host=warehouse_host,
        warehouse_port=warehouse_port,
        warehouse_name=warehouse_name,
        warehouse_user=warehouse_user,
        warehouse_password=warehouse_password,
        warehouse_dataset=os.getenv("USERMGMT_WAREHOUSE_DATASET", "user_management")
        or None,
        warehouse_table=os.getenv("USERMGMT_WAREHOUSE_TABLE", "users"),
        migration_queue_name=os.getenv("USERMGMT_MIGRATION_QUEUE", "migration"),
        log_level=os.getenv("USERMGMT_LOG_LEVEL", "INFO").upper(),
        warehouse_dsn_override=dsn_override,
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
