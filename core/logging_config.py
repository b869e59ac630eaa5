"""
Logging setup shared by the API server and the mail poller.
"""

import json
import logging
import sys
from datetime import datetime

_CONTEXT_FIELDS = ("rfp_id", "vendor_id", "message_uid", "cycle_state")


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging in production"""

    def format(self, record):
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for name in _CONTEXT_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", log_format: str = "text", stream=None) -> logging.Logger:
    """Configure the root logger once per process"""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(root.handlers):
        if getattr(handler, "_rfpflow", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler._rfpflow = True
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        ))
    root.addHandler(handler)
    return root

