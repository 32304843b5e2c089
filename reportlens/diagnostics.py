"""Diagnostics capability handed to engine calls.

The engine never logs through a global; callers pass a ``Diagnostics`` object
(or get a fresh one per call). Every event is kept in ``events`` so tests and
UIs can inspect what happened, and forwarded to a stdlib logger.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Literal

Level = Literal["debug", "info", "warning", "error"]

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(frozen=True)
class Diagnostic:
    """A single structured event emitted by the engine."""

    level: Level
    code: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)


class Diagnostics:
    """Collects engine events and forwards them to a logger.

    Args:
        logger: Logger to forward to (defaults to the ``reportlens`` logger)
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("reportlens")
        self.events: list[Diagnostic] = []
        self._seen: set[tuple] = set()

    def emit(self, level: Level, code: str, message: str, **context: Any) -> Diagnostic:
        event = Diagnostic(level=level, code=code, message=message, context=context)
        self.events.append(event)
        self.logger.log(_LEVELS[level], "%s: %s", code, message)
        return event

    def debug(self, code: str, message: str, **context: Any) -> Diagnostic:
        return self.emit("debug", code, message, **context)

    def info(self, code: str, message: str, **context: Any) -> Diagnostic:
        return self.emit("info", code, message, **context)

    def warning(self, code: str, message: str, **context: Any) -> Diagnostic:
        return self.emit("warning", code, message, **context)

    def error(self, code: str, message: str, **context: Any) -> Diagnostic:
        return self.emit("error", code, message, **context)

    def warn_once(self, key: tuple, code: str, message: str, **context: Any) -> Diagnostic | None:
        """Emit a warning only the first time ``(code, *key)`` is seen.

        Returns:
            The emitted event, or None if it was suppressed
        """
        dedup_key = (code, *key)
        if dedup_key in self._seen:
            return None
        self._seen.add(dedup_key)
        return self.warning(code, message, **context)

    def by_code(self, code: str) -> list[Diagnostic]:
        """Return all recorded events with the given code."""
        return [event for event in self.events if event.code == code]

    def clear(self) -> None:
        self.events.clear()
        self._seen.clear()


def ensure_diagnostics(diagnostics: Diagnostics | None) -> Diagnostics:
    """Return the given diagnostics or a fresh collector."""
    return diagnostics if diagnostics is not None else Diagnostics()
