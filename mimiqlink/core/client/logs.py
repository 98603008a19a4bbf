"""Default log formatting for the mimiqlink package."""

import logging
import sys
from typing import Optional

from mimiqlink.vis.terminal import _ansi, color_enabled

PACKAGE_LOGGER = "mimiqlink"

# (minimum level, ANSI colour, icon), checked from the top
_LEVEL_ICONS = [
    (logging.ERROR, "31", "✗"),
    (logging.WARNING, "33", "!"),
    (logging.INFO, "36", "•"),
    (logging.NOTSET, "90", "·"),
]


class _IconFormatter(logging.Formatter):
    """Prefix each record with a one-character level icon."""

    def __init__(self, enable_color: Optional[bool] = None) -> None:
        super().__init__()
        self.enable_color = color_enabled() if enable_color is None else enable_color

    def format(self, record: logging.LogRecord) -> str:
        for level, code, icon in _LEVEL_ICONS:
            if record.levelno >= level:
                break
        return f"{_ansi(code, icon, self.enable_color)} {record.getMessage()}"


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Make package logs visible unless the application configured its own."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    if not logger.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(_IconFormatter())
        logger.addHandler(handler)
        logger.setLevel(level)
    return logger
