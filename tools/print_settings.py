"""Print the effective logging and service configuration as JSON."""

import json
import logging
import os
import sys

from misunderstood.app_logging import read_log_config
from misunderstood.core.settings import load_settings, safe_url


def get_config() -> dict:
    log_config = read_log_config()
    settings = load_settings()
    return {
        "log_dir": os.path.abspath(log_config.log_dir),
        "log_level": logging.getLevelName(log_config.level),
        "log_json": log_config.json,
        "retention_days": log_config.retention_days,
        "rotate_utc": log_config.rotate_utc,
        "database_url": safe_url(settings.database_url) if settings.database_url else None,
        "knowledge_dir": os.path.abspath(settings.knowledge_dir),
        "polling_interval": settings.polling_interval,
        "max_backoff_factor": settings.max_backoff_factor,
    }


def main():
    sys.stdout.write(json.dumps(get_config(), indent=2) + "\n")


if __name__ == "__main__":
    main()
