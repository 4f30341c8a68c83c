"""Logging setup for the CLI, the API server and the realtime workers.

Interactive terminals get Rich output with colored component tags such as
``[RT]`` or ``[DISPATCH]``. Anything else (containers, CI, piped output)
gets one plain line per record so logs stay greppable.

Set ``TASKBOARD_RICH_LOGS`` to force either mode.
"""

from __future__ import annotations

import logging
import os
import sys

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

# Tag styles, keyed by the component name passed to format_component()
COMPONENT_STYLES = {
    "STORE": "cyan bold",
    "RT": "magenta bold",
    "DISPATCH": "yellow bold",
    "CACHE": "blue",
    "MUTATION": "green bold",
    "API": "blue bold",
    "WS": "magenta",
}

TASKBOARD_THEME = Theme(
    {
        "logging.level.error": "red bold",
        "logging.level.critical": "red bold reverse",
        **{name.lower(): style for name, style in COMPONENT_STYLES.items()},
    }
)

PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

# Client libraries that log every request or frame at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "websockets", "realtime", "uvicorn.access")

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def is_tty() -> bool:
    """Check if stdout is an interactive terminal."""
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


def should_use_rich() -> bool:
    """TASKBOARD_RICH_LOGS wins when set to a recognised flag, otherwise follow the TTY."""
    flag = os.environ.get("TASKBOARD_RICH_LOGS", "").strip().lower()
    if flag in _TRUTHY:
        return True
    if flag in _FALSY:
        return False
    return is_tty()


def _rich_handler() -> logging.Handler:
    handler = RichHandler(
        console=Console(theme=TASKBOARD_THEME, force_terminal=True),
        show_path=False,
        markup=True,
        rich_tracebacks=True,
        log_time_format=f"[{TIME_FORMAT}]",
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def _plain_handler() -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=TIME_FORMAT))
    return handler


def configure_logging(level: int | str = logging.INFO, force_rich: bool | None = None) -> None:
    """Replace the root handlers with a single Rich or plain handler.

    Args:
        level: Root level, as a number or a name like ``"debug"``.
        force_rich: True or False to pick the handler; None to detect.
    """
    use_rich = should_use_rich() if force_rich is None else force_rich

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(_rich_handler() if use_rich else _plain_handler())
    root.setLevel(level.upper() if isinstance(level, str) else level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def format_component(component: str) -> str:
    """Wrap a component tag in Rich markup, e.g. ``format_component('RT')``."""
    style = COMPONENT_STYLES.get(component.upper(), "white")
    return f"[{style}][{component}][/{style}]"
