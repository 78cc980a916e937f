"""Print the effective logging and e-mail event retention settings as JSON."""

import json
import logging
import os
import sys

from app.monitoring import get_retention_days


def _flag(name: str) -> bool:
    return os.getenv(name, "false").lower() == "true"


def get_log_config():
    log_dir = os.path.abspath(os.getenv("LOG_DIR", "logs"))
    log_level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)

    return {
        "log_dir": log_dir,
        "app_log": os.path.join(log_dir, "app.log"),
        "access_log": os.path.join(log_dir, "access.log"),
        "log_level": logging.getLevelName(log_level),
        "log_json": _flag("LOG_JSON"),
        "log_request_bodies": _flag("LOG_REQUEST_BODIES"),
        "retention_days": int(os.getenv("LOG_RETENTION_DAYS", "7")),
        "rotate_utc": _flag("LOG_ROTATE_UTC"),
        "email_event_retention_days": get_retention_days(),
    }


def main():
    sys.stdout.write(json.dumps(get_log_config(), indent=2) + "\n")


if __name__ == "__main__":
    main()
