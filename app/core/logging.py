from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from app.config import Settings
from app.core.context import get_mint_id

# attributes every LogRecord has; anything else came in through `extra=`
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "mint_id",
    "taskName",
}

_QUIET_LOGGERS = ("httpx", "httpcore", "web3", "urllib3")


def record_ts(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()


def extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS and not k.startswith("_")}


class MintIdFilter(logging.Filter):
    """Stamps each record with the mint_id of the workflow that emitted it."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.mint_id = get_mint_id() or "-"
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": record_ts(record),
            "level": record.levelname,
            "logger": record.name,
            "mint_id": getattr(record, "mint_id", "-"),
            "msg": record.getMessage(),
        }
        payload.update(extra_fields(record))
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = (
            f"{record_ts(record)} {record.levelname:<7} "
            f"mint_id={getattr(record, 'mint_id', '-')} {record.name}: {record.getMessage()}"
        )
        extras = extra_fields(record)
        if extras:
            line += " " + " ".join(f"{k}={v}" for k, v in extras.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(settings: Settings) -> None:
    """
    Install the stdout handler on the root logger. Calling it again replaces
    the handler it installed earlier and leaves other handlers alone.
    """
    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_gasless_mint", False):
            root.removeHandler(existing)
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler._gasless_mint = True  # type: ignore[attr-defined]
    handler.addFilter(MintIdFilter())
    handler.setFormatter(JsonFormatter() if settings.log_json else TextFormatter())
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
