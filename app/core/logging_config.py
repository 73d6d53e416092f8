"""Root logger configuration."""

import json
import logging
from datetime import UTC, datetime

from app.core.config import LogFormatEnum, settings

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(level: str | None = None, log_format: LogFormatEnum | str | None = None) -> None:
    level_name = str(getattr(level or settings.log_level, "value", level or settings.log_level)).upper()
    log_format = LogFormatEnum(log_format or settings.log_format)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter() if log_format is LogFormatEnum.json else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    # httpx logs every request line at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
