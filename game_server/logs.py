import logging
import os
import time

from google.cloud.logging_v2 import Client as LoggingClient

logger = logging.getLogger("game_server")

_LOCAL_FORMAT = "%(levelname)s %(name)s %(message)s %(json_fields)s"


class _JsonFieldsDefault(logging.Filter):
    def filter(self, record):
        if not hasattr(record, "json_fields"):
            record.json_fields = {}
        return True


def cloud_logging_enabled() -> bool:
    return os.getenv("CLOUD_LOGGING", "true").lower() not in ("0", "false", "no")


def setup_logging() -> None:
    """Structured logs to stdout in serverless (Cloud Run/Functions).

    Locally, and whenever CLOUD_LOGGING is off, a plain stream handler is
    installed instead so no credentials are needed.
    """
    if cloud_logging_enabled():
        LoggingClient().setup_logging()  # installs StructuredLogHandler on root
        return

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOCAL_FORMAT))
        handler.addFilter(_JsonFieldsDefault())
        root.addHandler(handler)
    root.setLevel(logging.INFO)


def log(event: str, severity: str = "INFO", **fields):
    """Emit one structured record per event; fields become the JSON payload."""
    fields.update({
        "event": event,
        "severity": severity,
        "ts_ms": int(time.time() * 1000),
    })
    logger.log(logging.getLevelName(severity), event, extra={"json_fields": fields})
