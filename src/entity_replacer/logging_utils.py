from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any

from uvicorn.config import LOGGING_CONFIG
from uvicorn.logging import AccessFormatter as UvicornAccessFormatter

_DEBUG_LOG = False
DEBUG_PREFIX = "[entity-replacer debug]"

ROUTE_ACTIONS = {
    "/": "page",
    "/api/session": "load",
    "/api/document": "edit",
    "/api/replace": "replace",
    "/api/restore": "restore",
    "/api/entities": "export",
}


def set_debug_logging(enabled: bool) -> None:
    global _DEBUG_LOG
    _DEBUG_LOG = enabled


def debug_enabled() -> bool:
    return _DEBUG_LOG


def debug_log(message: str) -> None:
    if _DEBUG_LOG:
        print(f"{DEBUG_PREFIX} {message}", flush=True)


def _record_path(record: logging.LogRecord) -> str | None:
    args = record.args
    if not isinstance(args, tuple) or len(args) != 5:
        return None
    full_path = args[2]
    if not isinstance(full_path, str):
        return None
    return full_path.split("?", 1)[0]


class EditorAccessFormatter(UvicornAccessFormatter):
    """Access log formatter that tags editor API calls with the action they perform."""

    def formatMessage(self, record):  # type: ignore[override]
        message = super().formatMessage(record)
        path = _record_path(record)
        action = ROUTE_ACTIONS.get(path) if path is not None else None
        return f"{message} [{action}]" if action else message


class QuietDocumentEditsFilter(logging.Filter):
    """Drop access lines for debounced document saves unless debug logging is on."""

    def filter(self, record: logging.LogRecord) -> bool:
        if _DEBUG_LOG:
            return True
        return _record_path(record) != "/api/document"


def build_uvicorn_log_config(*, debug: bool = False) -> dict[str, Any]:
    """Copy uvicorn's default logging config with the editor access formatter and filter."""
    config = deepcopy(LOGGING_CONFIG)
    formatter = config.get("formatters", {}).get("access")
    if isinstance(formatter, dict):
        formatter["()"] = "entity_replacer.logging_utils.EditorAccessFormatter"
    config.setdefault("filters", {})["quiet_document_edits"] = {
        "()": "entity_replacer.logging_utils.QuietDocumentEditsFilter",
    }
    access_handler = config.get("handlers", {}).get("access")
    if isinstance(access_handler, dict):
        access_handler.setdefault("filters", []).append("quiet_document_edits")
    if debug:
        for logger in config.get("loggers", {}).values():
            if isinstance(logger, dict) and "level" in logger:
                logger["level"] = "DEBUG"
    return config
