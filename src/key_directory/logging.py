"""Structured logging setup.

Every line is a JSON object with ``ts``, ``level``, ``msg`` and ``component``.
Rotation runs and mints bind ``run_id`` and ``purpose`` as context variables
(see :func:`bound_context`), so the retry, store and sweep lines they cause
carry them without threading a logger through every call.
"""
from __future__ import annotations

import logging
import sys
from typing import Dict

import structlog
from structlog.contextvars import bound_contextvars, merge_contextvars

_DEFAULT_LEVEL = "info"
_PACKAGE = "key_directory"

# Context keys a rotation run or a mint may bind.
CONTEXT_KEYS = ("run_id", "purpose")

_LEVELS: Dict[str, int] = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def configure_logging(level: str | None = None) -> None:
    numeric_level = _LEVELS.get((level or _DEFAULT_LEVEL).lower(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        handlers=[logging.StreamHandler(sys.stdout)],
        format="%(message)s",
        force=True,
    )

    structlog.configure(
        processors=[
            merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso", key="ts"),
            structlog.stdlib.add_log_level,
            _component_processor,
            _rename_event_to_msg,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        cache_logger_on_first_use=True,
    )


def bound_context(**values: object):
    """Bind ``run_id``/``purpose`` for the current task and the tasks it spawns."""
    unknown = set(values) - set(CONTEXT_KEYS)
    if unknown:
        raise ValueError(f"unsupported log context keys: {sorted(unknown)}")
    return bound_contextvars(**values)


def component_for(name: str | None) -> str:
    """``key_directory.services.rotation`` -> ``services.rotation``."""
    if not name or name == _PACKAGE:
        return _PACKAGE
    if name.startswith(_PACKAGE + "."):
        return name[len(_PACKAGE) + 1:]
    return name


def _component_processor(
    logger: structlog.BoundLoggerBase, _name: str, event_dict: dict[str, object]
) -> dict[str, object]:
    if event_dict.get("component") is None:
        event_dict["component"] = component_for(getattr(logger, "name", None))
    return event_dict


def _rename_event_to_msg(
    _logger: structlog.BoundLoggerBase, _name: str, event_dict: dict[str, object]
) -> dict[str, object]:
    if "msg" not in event_dict:
        event_dict["msg"] = event_dict.pop("event", "")
    return event_dict


__all__ = ["configure_logging", "bound_context", "component_for", "CONTEXT_KEYS"]
