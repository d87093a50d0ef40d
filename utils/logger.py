from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Any, Dict, Optional

LOG_FILE_PREFIX = "auto_reply"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# chatty third-party loggers, capped regardless of LOG_LEVEL
QUIET_LOGGERS = {
    "googleapiclient.discovery_cache": "ERROR",
    "googleapiclient.discovery": "WARNING",
    "google_auth_oauthlib.flow": "WARNING",
    "schedule": "WARNING",
}


def log_path_for(log_dir: Path, account: Optional[str] = None) -> Path:
    """One log file per account so parallel `run` processes do not interleave."""
    if not account or account == "default":
        return log_dir / f"{LOG_FILE_PREFIX}.log"
    return log_dir / f"{LOG_FILE_PREFIX}-{account}.log"


def configure_logging(log_dir: Path, level: str = "INFO", account: Optional[str] = None) -> Path:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_path_for(log_dir, account)
    console_format = "%(levelname)s | %(message)s"
    if account and account != "default":
        console_format = f"%(levelname)s | {account} | %(message)s"

    config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "file": {"format": LOG_FORMAT},
            "console": {"format": console_format},
        },
        "handlers": {
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "file",
                "filename": str(log_path),
                "maxBytes": 1_000_000,
                "backupCount": 3,
                "encoding": "utf-8",
            },
            "stdout": {
                "class": "logging.StreamHandler",
                "formatter": "console",
            },
        },
        "loggers": {name: {"level": quiet} for name, quiet in QUIET_LOGGERS.items()},
        "root": {
            "handlers": ["file", "stdout"],
            "level": level.upper(),
        },
    }

    logging.config.dictConfig(config)
    logging.getLogger(__name__).debug("Logging to %s at %s", log_path, level)
    return log_path
