"""Paths, timing constants and default settings."""

import os
from pathlib import Path

from platformdirs import user_data_dir

APP_NAME = "auto-accept-coordinator"


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


DATA_DIR = Path(os.getenv("AUTO_ACCEPT_DATA_DIR") or user_data_dir(APP_NAME))
DB_PATH = DATA_DIR / "state.db"
LOG_DIR = DATA_DIR / "logs"
LOG_FILE = LOG_DIR / "coordinator.log"
LOG_RETENTION_DAYS = max(1, _env_int("AUTO_ACCEPT_LOG_RETENTION_DAYS", 14))

# Lease / scheduling (milliseconds)
MAINTENANCE_INTERVAL_MS = 5_000
# Two maintenance intervals, so a single missed tick does not flap leadership.
LEASE_TTL_MS = 2 * MAINTENANCE_INTERVAL_MS
REVERIFY_INTERVAL_MS = 60 * 60 * 1000

# Poll cadence (milliseconds)
BASE_CADENCE_MS = 300
DEFAULT_PRO_CADENCE_MS = 1_000
MIN_CADENCE_MS = 100
MAX_CADENCE_MS = 10_000

# Trial
DAY_MS = 24 * 60 * 60 * 1000
TRIAL_DURATION_MS = 3 * DAY_MS

# Post-payment verification: every 5s for up to 2 minutes
VERIFY_INTERVAL_MS = 5_000
MAX_VERIFY_ATTEMPTS = 24

# Licensing backend
LICENSE_API = os.getenv("AUTO_ACCEPT_LICENSE_API", "https://auto-accept-backend.onrender.com/api")
LICENSE_TIMEOUT_SECONDS = 10.0

# CDP discovery
CDP_HOST = os.getenv("AUTO_ACCEPT_CDP_HOST", "127.0.0.1")
CDP_BASE_PORT = _env_int("AUTO_ACCEPT_CDP_PORT", 9000)
CDP_PORT_SPREAD = 3

# Server
HOST = "127.0.0.1"
PORT = _env_int("AUTO_ACCEPT_PORT", 8765)
OPEN_STATUS_PAGE = _env_bool("AUTO_ACCEPT_OPEN_BROWSER", False)

DEFAULT_BANNED_COMMANDS = [
    "rm -rf /",
    "rm -rf ~",
    "rm -rf *",
    "format c:",
    "del /f /s /q",
    "rmdir /s /q",
    ":(){:|:&};:",  # fork bomb
    "dd if=",
    "mkfs.",
    "> /dev/sda",
    "chmod -R 777 /",
]


def ensure_dirs() -> None:
    """Create required directories on first run."""
    for d in (DATA_DIR, LOG_DIR):
        d.mkdir(parents=True, exist_ok=True)
