"""
Tagged panel events on top of stdlib logging.

Each line starts with ``[KIND:...]`` so order, trail and snapshot activity
can be grepped out of the panel log; on a terminal the tag is coloured.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_KIND_COLORS = {
    "ORDER_NEW": "35",
    "ORDER_FAIL": "31",
    "REJECT": "33",
    "TRAIL": "32",
    "BREAKEVEN": "34",
    "SNAPSHOT": "36",
    "WARN": "33",
    "ERROR": "31",
}
_WARNING_KINDS = {"WARN", "REJECT"}
_ERROR_KINDS = {"ERROR", "ORDER_FAIL"}

_default_logger = logging.getLogger("atr_panel.events")


class EventLogFormatter(logging.Formatter):
    def __init__(self, *, use_color: bool = False) -> None:
        super().__init__(fmt=DEFAULT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        kind = getattr(record, "event_kind", None)
        color = _KIND_COLORS.get(kind) if self.use_color else None
        if not color:
            return line
        tag = f"[KIND:{kind}]"
        return line.replace(tag, f"\033[{color}m{tag}\033[0m", 1)


def build_stream_handler() -> logging.Handler:
    handler = logging.StreamHandler()
    use_color = not os.getenv("NO_COLOR") and handler.stream.isatty()
    handler.setFormatter(EventLogFormatter(use_color=use_color))
    return handler


def log_event(
    kind: str,
    msg: str,
    *,
    symbol: Optional[str] = None,
    label: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
    level: Optional[int] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """Log ``msg`` as ``[KIND:kind] msg | sym=.. | label=.. | k=v,..``."""
    tags = []
    if symbol:
        tags.append(f"sym={symbol}")
    if label:
        tags.append(f"label={label}")
    if extra:
        tags.append(",".join(f"{key}={value}" for key, value in extra.items()))

    suffix = f" | {' | '.join(tags)}" if tags else ""
    if level is None:
        if kind in _WARNING_KINDS:
            level = logging.WARNING
        elif kind in _ERROR_KINDS:
            level = logging.ERROR
        else:
            level = logging.INFO

    (logger or _default_logger).log(level, f"[KIND:{kind}] {msg}{suffix}", extra={"event_kind": kind})
