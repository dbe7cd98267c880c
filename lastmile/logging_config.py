"""Process-wide logging setup.

Library modules only create ``logging.getLogger(__name__)``.
``open_dispatch_service`` calls ``configure_logging`` once from the
``logging`` config section; a host that builds ``DispatchService`` directly
calls it itself. Two formats are supported: ``text``
(``LEVEL:logger:message``) and ``json`` (one object per line for log
shippers).
"""

import json
import logging
import sys
from datetime import UTC, datetime

TEXT_FORMAT = "%(levelname)s:%(name)s:%(message)s"


class JsonFormatter(logging.Formatter):
    """Render records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "@timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }
        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Configure the root logger to write to stdout.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
        fmt: ``text`` or ``json``.
    """
    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    logging.getLogger("lastmile").setLevel(root.level)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
