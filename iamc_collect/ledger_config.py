from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from iamc_collect.ledger.credentials import DEFAULT_AGENT_PIN
from iamc_collect.paths import OPS_DATA_DIR, OPS_EXPORTS_DIR

DEFAULT_DB_PATH = OPS_DATA_DIR / "iamc_ledger.sqlite"
DEFAULT_SESSION_FILE = OPS_DATA_DIR / "session.json"
DEFAULT_EXPORT_DIR = OPS_EXPORTS_DIR
DEFAULT_EXPORT_FORMAT = "xlsx"
DEFAULT_SEARCH_LIMIT = 50
DEFAULT_LOG_LEVEL = "INFO"

EXPORT_FORMATS = ("xlsx", "txt")
_VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


@dataclass(frozen=True)
class LedgerConfig:
    db_path: Path
    export_dir: Path
    session_file: Path
    default_pin: str
    export_format: str
    search_limit: int
    log_level: str


def _read_int_env(name: str, default: int, *, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    if value < minimum:
        return default
    return value


def _read_path_env(name: str, default: Path) -> Path:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    return Path(raw).expanduser()


def _normalize_log_level(raw_level: str) -> str:
    level = (raw_level or DEFAULT_LOG_LEVEL).strip().upper()
    if level in _VALID_LOG_LEVELS:
        return level
    return DEFAULT_LOG_LEVEL


def normalize_export_format(raw_format: str) -> str:
    fmt = (raw_format or DEFAULT_EXPORT_FORMAT).strip().lower()
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {raw_format!r} (expected one of {', '.join(EXPORT_FORMATS)})")
    return fmt


def load_ledger_config() -> LedgerConfig:
    default_pin = (os.getenv("IAMC_DEFAULT_PIN") or DEFAULT_AGENT_PIN).strip() or DEFAULT_AGENT_PIN
    if not default_pin.isdigit():
        raise ValueError("IAMC_DEFAULT_PIN must contain digits only.")

    return LedgerConfig(
        db_path=_read_path_env("IAMC_DB_PATH", DEFAULT_DB_PATH),
        export_dir=_read_path_env("IAMC_EXPORT_DIR", DEFAULT_EXPORT_DIR),
        session_file=_read_path_env("IAMC_SESSION_FILE", DEFAULT_SESSION_FILE),
        default_pin=default_pin,
        export_format=normalize_export_format(os.getenv("IAMC_EXPORT_FORMAT", DEFAULT_EXPORT_FORMAT)),
        search_limit=_read_int_env("IAMC_SEARCH_LIMIT", DEFAULT_SEARCH_LIMIT, minimum=1),
        log_level=_normalize_log_level(os.getenv("IAMC_LOG_LEVEL", DEFAULT_LOG_LEVEL)),
    )


def resolve_logging_level(name: str) -> int:
    return getattr(logging, _normalize_log_level(name), logging.INFO)
