from __future__ import annotations

import logging
from typing import Any, Dict, List

import structlog
from rich.logging import RichHandler

# Rendered first, in this order; everything else follows alphabetically.
_LEADING_KEYS = ("app", "component", "device", "speaker", "action", "available", "status", "details")

_EVENT_ICONS = {
    "starting": "🚀",
    "running": "🟢",
    "stopping": "🛑",
    "startup_check": "🧪",
    "startup_checks_complete": "🧪",
    "scheduled": "⏱️",
    "device_available": "📶",
    "device_unavailable": "📴",
    "availability_change": "🔁",
    "speaker_discovered": "🔊",
    "volume_capped": "🔉",
}

_LEVEL_STYLES = {
    "critical": ("❌", "bold red"),
    "error": ("❌", "bold red"),
    "warning": ("⚠️", "bold yellow"),
    "debug": ("✅", "dim"),
}


def configure_logging(level: str) -> None:
    level = level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, markup=True, show_path=False)],
    )
    # SoCo logs every UPnP request at INFO.
    for noisy in ("apscheduler", "soco"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _render,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level)),
        cache_logger_on_first_use=True,
    )


def get_logger(**kwargs: Any) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger().bind(**kwargs)


def _render(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> str:
    event = str(event_dict.pop("event", method_name))
    level = str(event_dict.pop("level", "")).lower()

    icon, style = _LEVEL_STYLES.get(level, ("✅", "bold cyan"))
    icon = _EVENT_ICONS.get(event, icon)
    title = "[%s]%s %s[/%s]" % (style, icon, event, style)

    fields: List[str] = []
    for key in _LEADING_KEYS:
        if key in event_dict:
            fields.append("%s=%r" % (key, event_dict.pop(key)))
    fields.extend("%s=%r" % (key, event_dict[key]) for key in sorted(event_dict))

    return "%s  %s" % (title, " ".join(fields)) if fields else title
