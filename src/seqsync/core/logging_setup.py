"""
Logging bootstrap for seqsync.

Every run logs to three sinks:
  - stderr, INFO and above by default
  - <base_dir>/app.log, rotated at UTC midnight, DEBUG
  - <base_dir>/YYYY-MM-DD/<action>_<run_id>.log, DEBUG, one file per run

Records carry run/action/server context and pass through a filter that
masks Seq API keys, key tokens and passwords before any sink sees them.
"""

from __future__ import annotations

import logging
import logging.handlers
import re
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

LOG_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "run=%(run_id)s action=%(action)s server=%(server)s | %(message)s"
)
REDACTED = "***REDACTED***"


class MaskSecretsFilter(logging.Filter):
    """Redact Seq API keys, tokens and passwords from the rendered message."""

    _patterns = (
        re.compile(r"(X-Seq-ApiKey\s*[=:]\s*)([A-Za-z0-9._-]+)", re.IGNORECASE),
        re.compile(r"(api[_-]?key\s*[=:]\s*)([A-Za-z0-9._-]+)", re.IGNORECASE),
        re.compile(r"(\"Token\"\s*:\s*\")([^\"]+)", re.IGNORECASE),
        re.compile(r"(\btoken\s*[=:]\s*)([A-Za-z0-9._-]+)", re.IGNORECASE),
        re.compile(r"(password\s*[=:]\s*)([^,\s]+)", re.IGNORECASE),
    )

    @classmethod
    def mask(cls, text: str) -> str:
        for pat in cls._patterns:
            text = pat.sub(r"\g<1>" + REDACTED, text)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        # Secrets often arrive as %-args, so mask the merged message.
        if record.args:
            try:
                record.msg, record.args = record.getMessage(), None
            except (TypeError, ValueError):
                return True
        if isinstance(record.msg, str):
            record.msg = self.mask(record.msg)
        return True


class ContextDefaultsFilter(logging.Filter):
    """Give records from plain module loggers the context fields LOG_FORMAT expects."""

    _fields = ("run_id", "action", "server")

    def filter(self, record: logging.LogRecord) -> bool:
        for name in self._fields:
            if getattr(record, name, None) is None:
                setattr(record, name, "-")
        return True


class UtcFormatter(logging.Formatter):
    converter = time.gmtime

    def __init__(self) -> None:
        super().__init__(fmt=LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%SZ")


def _level(name: str, default: int) -> int:
    value = logging.getLevelName(str(name).upper())
    return value if isinstance(value, int) else default


def _prepare(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(UtcFormatter())
    handler.addFilter(MaskSecretsFilter())
    handler.addFilter(ContextDefaultsFilter())
    return handler


def _drop_handlers(logger: logging.Logger, match: Callable[[logging.Handler], bool]) -> None:
    for h in list(logger.handlers):
        if match(h):
            logger.removeHandler(h)
            h.close()


def _is_console(h: logging.Handler) -> bool:
    # FileHandler is a StreamHandler too.
    return isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)


def _configure_base(base: logging.Logger, base_dir: Path, console_level: str, file_level: str) -> None:
    """(Re)point the shared sinks of the base logger.

    The console handler is always recreated because stderr may have been
    swapped (pytest capture). The rotating handler is kept only while it
    still targets <base_dir>/app.log.
    """
    _drop_handlers(base, _is_console)
    base.addHandler(_prepare(logging.StreamHandler(stream=sys.stderr), _level(console_level, logging.INFO)))

    base_dir.mkdir(parents=True, exist_ok=True)
    app_log = (base_dir / "app.log").resolve()

    def stale(h: logging.Handler) -> bool:
        return (
            isinstance(h, logging.handlers.TimedRotatingFileHandler)
            and Path(h.baseFilename).resolve() != app_log
        )

    _drop_handlers(base, stale)
    if not any(isinstance(h, logging.handlers.TimedRotatingFileHandler) for h in base.handlers):
        rotating = logging.handlers.TimedRotatingFileHandler(
            str(app_log), when="midnight", backupCount=14, encoding="utf-8", utc=True,
        )
        base.addHandler(_prepare(rotating, _level(file_level, logging.DEBUG)))


def build_logger(
    *,
    name: str = "seqsync",
    run_id: str,
    action: str,
    base_dir: str = "logs",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    extra: Optional[Dict[str, Any]] = None,
) -> logging.LoggerAdapter:
    """Configure the `<name>` logger tree and return an adapter for this run.

    The adapter wraps `<name>.<action>.<run_id>`, which owns the per-run file
    and propagates to `<name>` for the console and app.log.
    """
    base = logging.getLogger(name)
    base.setLevel(logging.DEBUG)
    root_dir = Path(base_dir)
    _configure_base(base, root_dir, console_level, file_level)

    run_logger = logging.getLogger(f"{name}.{action}.{run_id}")
    run_logger.setLevel(logging.DEBUG)
    run_logger.propagate = True
    if not any(isinstance(h, logging.FileHandler) for h in run_logger.handlers):
        day_dir = root_dir / datetime.now(timezone.utc).strftime("%Y-%m-%d")
        day_dir.mkdir(parents=True, exist_ok=True)
        run_file = logging.FileHandler(str(day_dir / f"{action}_{run_id}.log"), encoding="utf-8")
        run_logger.addHandler(_prepare(run_file, _level(file_level, logging.DEBUG)))

    context = {"run_id": run_id, "action": action, "server": (extra or {}).get("server") or "-"}
    adapter = logging.LoggerAdapter(run_logger, context)
    adapter.debug("Logger initialised")
    return adapter
