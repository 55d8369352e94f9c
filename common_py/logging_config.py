import logging
import sys
import json
import inspect
from pathlib import Path
from typing import Any, Dict, Optional
from contextvars import ContextVar


# Identifies the subscription cycle (or one-shot run) a log line belongs to
cycle_id_var: ContextVar[Optional[str]] = ContextVar("cycle_id", default=None)

SERVICE_NAME = "aweme-sync"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "name": record.name,
            "level": record.levelname,
            "message": record.getMessage(),
        }
        cycle_id = cycle_id_var.get()
        if cycle_id:
            log_record["cycle_id"] = cycle_id

        if hasattr(record, "extra_kwargs"):
            log_record.update(record.extra_kwargs)
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_record["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(log_record, ensure_ascii=False, default=str)


class ContextLogger:
    """Logger facade taking structured fields as keyword arguments.

    `logger.info("Batch committed", table=name, inserted=3)` renders the fields as
    ` - key=value` suffixes for text output and hands them to JsonFormatter through
    `extra_kwargs`.
    """

    _STD_KWARGS = ("exc_info", "stack_info", "stacklevel", "extra")

    def __init__(self, base: logging.Logger):
        self._base = base

    @property
    def name(self) -> str:
        return self._base.name

    def setLevel(self, level: int) -> None:
        self._base.setLevel(level)

    def _log(self, level: int, msg: str, args: tuple, fields: Dict[str, Any]) -> None:
        if not self._base.isEnabledFor(level):
            return
        options = {key: fields.pop(key) for key in self._STD_KWARGS if key in fields}
        if fields:
            msg = " - ".join([msg] + [f"{key}={value}" for key, value in fields.items()])
            options["extra"] = {**(options.get("extra") or {}), "extra_kwargs": fields}
        self._base.log(level, msg, *args, **options)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, args, kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, args, kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, args, kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, args, kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, msg, args, kwargs)


def _standardize_logger_name(name: str) -> str:
    """Ensure logger name follows `service:module` when possible.

    If the provided name already contains a colon, it is returned unchanged.
    Otherwise the module name is inferred from the caller's file.
    Falls back to the original name if inference fails.
    """
    try:
        if ":" in name:
            return name

        frame = inspect.currentframe()
        if frame is None:
            return name
        caller = frame.f_back
        this_file = __file__
        while caller and caller.f_code.co_filename == this_file:
            caller = caller.f_back
        if not caller:
            return name

        p = Path(caller.f_code.co_filename).resolve()
        file_part = p.stem if p.name != "__init__.py" else p.parent.name
        return f"{name or SERVICE_NAME}:{file_part}"
    except Exception:
        return name


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    log_format: Optional[str] = None,
) -> ContextLogger:
    """Configure logging and return a ContextLogger that accepts kwargs.

    Usage:
        logger = configure_logging("aweme-sync:sync_engine")
        logger.info("Batch committed", table=table_name, inserted=3)
        logger.error("Failure", error=str(e))
    """
    service_name = _standardize_logger_name(service_name)
    if log_format == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter(
            log_format or "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    base = logging.getLogger(service_name)
    # Re-configuration replaces handlers instead of stacking them
    for handler in base.handlers[:]:
        base.removeHandler(handler)
        handler.close()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    base.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    base.addHandler(handler)
    base.propagate = False

    return ContextLogger(base)


def set_cycle_id(cycle_id: Optional[str]) -> None:
    """Sets the cycle ID for the current context."""
    cycle_id_var.set(cycle_id)
