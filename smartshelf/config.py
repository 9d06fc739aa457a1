"""Runtime configuration: .env, optional YAML file, then environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "smartshelf.yaml"
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


@dataclass
class Settings:
    region: str = "us-west-2"
    table_prefix: str = ""
    stream_poll_interval: float = 1.0
    reports_bucket: Optional[str] = None
    reports_dir: str = "reports"
    email_function: str = "send-vendor-email"
    sms_function: str = "send-sms-alert"
    user_pool_client_id: Optional[str] = None
    alerts_limit: int = 50
    transactions_limit: int = 100
    audit_logs_limit: int = 100
    log_level: str = "INFO"


_ENV_OVERRIDES: dict[str, str] = {
    "region": "AWS_DEFAULT_REGION",
    "table_prefix": "SMARTSHELF_TABLE_PREFIX",
    "stream_poll_interval": "SMARTSHELF_STREAM_POLL_INTERVAL",
    "reports_bucket": "SMARTSHELF_REPORTS_BUCKET",
    "reports_dir": "SMARTSHELF_REPORTS_DIR",
    "email_function": "SMARTSHELF_EMAIL_FUNCTION",
    "sms_function": "SMARTSHELF_SMS_FUNCTION",
    "user_pool_client_id": "SMARTSHELF_USER_POOL_CLIENT_ID",
    "alerts_limit": "SMARTSHELF_ALERTS_LIMIT",
    "transactions_limit": "SMARTSHELF_TRANSACTIONS_LIMIT",
    "audit_logs_limit": "SMARTSHELF_AUDIT_LOGS_LIMIT",
    "log_level": "SMARTSHELF_LOG_LEVEL",
}


def _coerce(name: str, value: Any) -> Any:
    """Casts a raw YAML/env value to the type of the matching Settings field."""
    if value is None:
        return None
    default = getattr(Settings, name, None)
    try:
        if isinstance(default, bool):
            return str(value).lower() in ("1", "true", "yes")
        if isinstance(default, int):
            return int(value)
        if isinstance(default, float):
            return float(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for {name}: {value!r}") from e
    return str(value)


def load_settings(path: Optional[str] = None) -> Settings:
    """Builds Settings from .env, the YAML file and the environment (in that order)."""
    load_dotenv(override=False)

    values: dict[str, Any] = {}
    known = {f.name for f in fields(Settings)}

    config_path = Path(path or os.environ.get("SMARTSHELF_CONFIG", DEFAULT_CONFIG_FILE))
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        for key, value in raw.items():
            if key not in known:
                logger.warning("Unknown config key ignored: %s", key)
                continue
            values[key] = _coerce(key, value)

    for name, env_var in _ENV_OVERRIDES.items():
        env_value = os.environ.get(env_var)
        if env_value:
            values[name] = _coerce(name, env_value)

    return Settings(**values)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("mcp").setLevel(logging.WARNING)
