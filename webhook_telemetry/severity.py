# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Log severities and their webhook presentation."""

import logging
from enum import IntEnum

AVATAR_URL_TEMPLATE = "https://cdn.discordapp.com/embed/avatars/{}.png"
FALLBACK_ICON_URL = AVATAR_URL_TEMPLATE.format(5)


class Severity(IntEnum):
    """Totally ordered log severity."""

    TRACE = 0
    DEBUG = 1
    INFO = 2
    WARN = 3
    ERROR = 4

    @classmethod
    def from_logging_level(cls, levelno: int) -> "Severity":
        """Map a stdlib logging level number onto a severity.

        Args:
            levelno: Numeric level from a ``logging.LogRecord``

        Returns:
            The closest severity, rounding down between stdlib levels
        """
        if levelno < logging.DEBUG:
            return cls.TRACE
        if levelno < logging.INFO:
            return cls.DEBUG
        if levelno < logging.WARNING:
            return cls.INFO
        if levelno < logging.ERROR:
            return cls.WARN
        return cls.ERROR

    @classmethod
    def parse(cls, value: str) -> "Severity":
        """Parse a severity name such as ``"info"`` or ``"WARNING"``."""
        name = value.strip().upper()
        if name == "WARNING":
            name = "WARN"
        try:
            return cls[name]
        except KeyError:
            raise ValueError(
                f"Invalid severity: {value}. Must be one of {[s.name for s in cls]}"
            ) from None

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @property
    def icon_url(self) -> str:
        return _ICON_URLS.get(self, FALLBACK_ICON_URL)

    @property
    def logging_level(self) -> int:
        """Equivalent stdlib logging level."""
        return _LOGGING_LEVELS[self]

    @property
    def is_error(self) -> bool:
        """Whether events of this severity go to the error destination."""
        return self >= Severity.ERROR


_DISPLAY_NAMES: dict[Severity, str] = {
    Severity.TRACE: "TRACE",
    Severity.DEBUG: "DEBUG",
    Severity.INFO: "INFO",
    Severity.WARN: "WARN",
    Severity.ERROR: "ERROR",
}

_ICON_URLS: dict[Severity, str] = {
    Severity.TRACE: AVATAR_URL_TEMPLATE.format(1),
    Severity.DEBUG: AVATAR_URL_TEMPLATE.format(1),
    Severity.INFO: AVATAR_URL_TEMPLATE.format(0),
    Severity.WARN: AVATAR_URL_TEMPLATE.format(3),
    Severity.ERROR: AVATAR_URL_TEMPLATE.format(4),
}

TRACE_LOGGING_LEVEL = 5

_LOGGING_LEVELS: dict[Severity, int] = {
    Severity.TRACE: TRACE_LOGGING_LEVEL,
    Severity.DEBUG: logging.DEBUG,
    Severity.INFO: logging.INFO,
    Severity.WARN: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}
