import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from threading import local

_log_ctx = local()

CONTEXT_FIELDS = ("run_id", "page", "stage")
EXTRA_FIELDS = ("attempt", "delay_s", "reason", "duration_ms")


def set_log_context(**kwargs):
    for k, v in kwargs.items():
        setattr(_log_ctx, k, v)


def clear_log_context(keys=None):
    names = list(keys) if keys is not None else list(_log_ctx.__dict__)
    for name in names:
        if hasattr(_log_ctx, name):
            delattr(_log_ctx, name)


def get_log_context() -> dict:
    return {k: v for k, v in _log_ctx.__dict__.items() if not k.startswith("_")}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        ctx = get_log_context()
        data = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
                "%Y-%m-%dT%H:%M:%SZ"
            ),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        # Explicit extra= wins over the thread-local context.
        for field in CONTEXT_FIELDS:
            data[field] = getattr(record, field, ctx.get(field))
        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                data[field] = getattr(record, field)

        if record.exc_info:
            data["exc"] = self.formatException(record.exc_info)

        data = {k: v for k, v in data.items() if v is not None}
        return json.dumps(data, ensure_ascii=False)


def setup_logging(level=logging.INFO, log_file: Path | str | None = None) -> logging.Logger:
    logger = logging.getLogger("pagetranslate")
    logger.setLevel(level)
    logger.handlers.clear()

    formatter = JsonFormatter()

    sh = logging.StreamHandler(sys.stderr)
    sh.setFormatter(formatter)
    logger.addHandler(sh)

    if log_file:
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(formatter)
        logger.addHandler(fh)

    return logger
