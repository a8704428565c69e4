"""Logging setup shared by the engine, the CLI and the tests."""

from __future__ import annotations

import json
import logging
import os
from contextvars import ContextVar, Token
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping

from rich.console import Console
from rich.logging import RichHandler

_CONTEXT: Dict[str, ContextVar[str | None]] = {
    "operation_id": ContextVar("operation_id", default=None),
    "mode": ContextVar("mode", default=None),
}

# record attribute -> label in the rendered suffix
_SUFFIX_LABELS = {"operation_id": "op", "mode": "mode", "stage": "stage"}


class _ContextLoggerAdapter(logging.LoggerAdapter):
    """Adds the bound operation context and an optional ``stage`` to each record."""

    def process(self, msg: str, kwargs: MutableMapping[str, Any]):
        extra: Dict[str, Any] = dict(kwargs.get("extra") or {})
        extra.setdefault("module_name", self.extra["module_name"])

        stage = kwargs.pop("stage", None)
        if stage is not None:
            extra.setdefault("stage", stage)
        for name, var in _CONTEXT.items():
            value = var.get()
            if value is not None:
                extra.setdefault(name, value)

        kwargs["extra"] = extra
        return msg, kwargs


class _CompactFormatter(logging.Formatter):
    """Render ``[time] [LEVEL] [module] message (op=..., mode=..., stage=..., payload)``."""

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        message = record.message
        if record.exc_info and not record.exc_text:
            record.exc_text = self.formatException(record.exc_info)
        if record.exc_text:
            message = f"{message}\n{record.exc_text}"

        parts = [
            f"{label}={getattr(record, name)}"
            for name, label in _SUFFIX_LABELS.items()
            if getattr(record, name, None)
        ]
        payload = _stringify_payload(getattr(record, "payload", None))
        if payload:
            parts.append(payload)
        suffix = f" ({', '.join(parts)})" if parts else ""

        module_name = getattr(record, "module_name", record.name)
        time_str = self.formatTime(record, self.datefmt)
        return f"[{time_str}] [{record.levelname}] [{module_name}] {message}{suffix}"


def _stringify_payload(payload: Any) -> str:
    if not payload:
        return ""
    if isinstance(payload, str):
        return payload
    try:
        return json.dumps(payload, ensure_ascii=False, default=str)
    except TypeError:
        return str(payload)


class _DomainInfoFilter(logging.Filter):
    """Keep routine INFO chatter off the console; milestones and warnings pass."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno != logging.INFO or bool(getattr(record, "domain", False))


def setup_logging(level: str | None = None) -> logging.Logger:
    """Configure the root logger once: rich console plus a rotating file."""

    root = logging.getLogger()
    if getattr(root, "_dext_configured", False):
        return root

    for handler in list(root.handlers):
        root.removeHandler(handler)

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, level_name, None)
    root.setLevel(log_level if isinstance(log_level, int) else logging.INFO)

    console_handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        show_time=False,
        show_level=False,
        show_path=False,
        markup=False,
    )
    console_handler.setFormatter(_CompactFormatter(datefmt="%H:%M:%S"))
    if (os.getenv("LOG_NOISE", "low").strip().lower() or "low") != "debug":
        console_handler.addFilter(_DomainInfoFilter())

    logs_dir = Path(os.getenv("LOG_DIR", Path(__file__).resolve().parent / "logs"))
    logs_dir.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        logs_dir / "dext.log",
        maxBytes=5 * 1024 * 1024,
        backupCount=3,
        encoding="utf-8",
    )
    file_handler.setFormatter(_CompactFormatter(datefmt="%Y-%m-%d %H:%M:%S"))

    root.addHandler(console_handler)
    root.addHandler(file_handler)

    for noisy in ("httpx", "httpcore", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root._dext_configured = True  # type: ignore[attr-defined]
    return root


def get_logger(name: str) -> logging.LoggerAdapter:
    return _ContextLoggerAdapter(logging.getLogger(name), {"module_name": name})


def info_domain(module: str, message: str, *, stage: str | None = None, **context: Any) -> None:
    """Log an INFO milestone that stays visible on the filtered console."""

    extra: Dict[str, Any] = {"domain": True}
    if context:
        extra["payload"] = context
    get_logger(module).info(message, extra=extra, stage=stage)


def log_event(
    level: str | int,
    module: str,
    message: str,
    *,
    stage: str | None = None,
    extra: Mapping[str, Any] | None = None,
    exc_info: Any | None = None,
) -> None:
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    payload = {"payload": dict(extra)} if extra else None
    get_logger(module).log(level, message, exc_info=exc_info, extra=payload, stage=stage)


def bind_context(
    *, operation_id: str | None = None, mode: str | None = None
) -> Dict[str, Token]:
    """Bind context shown on every record of the current task; undo with reset_context."""

    values = {"operation_id": operation_id, "mode": mode}
    return {
        name: _CONTEXT[name].set(value) for name, value in values.items() if value is not None
    }


def reset_context(tokens: Mapping[str, Token]) -> None:
    for name, token in tokens.items():
        _CONTEXT[name].reset(token)


__all__ = [
    "setup_logging",
    "get_logger",
    "info_domain",
    "log_event",
    "bind_context",
    "reset_context",
]
