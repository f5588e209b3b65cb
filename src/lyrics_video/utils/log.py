from __future__ import annotations

import logging
import re
import sys
from contextlib import suppress
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog

from lyrics_video.config import get_settings

job_id_var: ContextVar[str | None] = ContextVar("job_id", default=None)
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)


def set_job_id(jid: str | None) -> None:
    job_id_var.set(jid)


def set_request_id(rid: str | None) -> None:
    request_id_var.set(rid)


def _log_path() -> Path:
    s = get_settings()
    return Path(s.log_dir) / "app.log"


# Media references may be presigned or carry basic-auth credentials.
_URL_CRED_RE = re.compile(r"(?i)([a-z][a-z0-9+\-.]*://)([^:@/\s]+):([^@/\s]+)@")
_SIG_RE = re.compile(r"(?i)([?&](?:x-amz-signature|signature|sig|token)=)[^&\s]+")


def _redact_str(s: str) -> str:
    s = _URL_CRED_RE.sub(r"\1***REDACTED***@", s)
    s = _SIG_RE.sub(r"\1***REDACTED***", s)
    return s


def redact_event(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    for k, v in list(event_dict.items()):
        if isinstance(v, str):
            event_dict[k] = _redact_str(v)
    return event_dict


def add_contextvars(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    jid = job_id_var.get()
    rid = request_id_var.get()
    if jid:
        event_dict.setdefault("job_id", jid)
    if rid:
        event_dict.setdefault("request_id", rid)
    return event_dict


def rename_event_to_msg(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    if "msg" not in event_dict and "event" in event_dict:
        event_dict["msg"] = event_dict.pop("event")
    return event_dict


def _configure_structlog() -> structlog.stdlib.BoundLogger:
    s = get_settings()
    level = str(s.log_level).upper()
    log_path = _log_path()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)

    # Avoid duplicates if re-imported
    if getattr(root, "_lyrics_video_structlog_configured", False):
        return structlog.get_logger("lyrics_video")

    foreign_pre_chain = [
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
        structlog.stdlib.add_log_level,
        add_contextvars,
        redact_event,
        structlog.processors.format_exc_info,
        rename_event_to_msg,
    ]

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(),
        foreign_pre_chain=foreign_pre_chain,
    )

    file_handler = RotatingFileHandler(
        filename=str(log_path),
        maxBytes=int(s.log_max_bytes),
        backupCount=int(s.log_backup_count),
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    root.handlers.clear()
    root.addHandler(file_handler)
    root.addHandler(stream_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            structlog.stdlib.add_log_level,
            add_contextvars,
            redact_event,
            structlog.processors.format_exc_info,
            rename_event_to_msg,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    root._lyrics_video_structlog_configured = True
    return structlog.get_logger("lyrics_video")


logger = _configure_structlog()

debug = logger.debug
info = logger.info
warning = logger.warning
error = logger.error
exception = logger.exception


def set_log_level(level: str) -> None:
    """
    Runtime log level override (CLI convenience).
    Does not change handlers/formatters; only raises/lowers filtering level.
    """
    lvl = getattr(logging, str(level).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(lvl)
    for h in root.handlers:
        with suppress(ValueError):
            h.setLevel(lvl)
