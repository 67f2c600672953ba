"""Logging for ubspectre.
Structured, categorized logging with configurable verbosity. Every entry
remembers the machine step it was emitted at, so an allocation or an
exposure can be traced back to the statement that caused it. The machine
logs its steps under ``machine``, the allocator under ``memory`` and the
integer-pointer cast model under ``intptrcast``.
"""

from __future__ import annotations

import logging
import os
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, TextIO


class LogLevel(IntEnum):
    """How much the interpreter reports."""

    QUIET = 0
    NORMAL = 1
    VERBOSE = 2
    DEBUG = 3
    TRACE = 4


class Category:
    """Category names used by the interpreter's components."""

    GENERAL = "general"
    MACHINE = "machine"
    MEMORY = "memory"
    INTPTRCAST = "intptrcast"
    TIMING = "timing"
    PYTHON = "python"


class Colors:
    RESET = "\033[0m"
    RED = "\033[31m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    MAGENTA = "\033[35m"
    CYAN = "\033[36m"
    GRAY = "\033[90m"


_INDICATORS = {
    LogLevel.NORMAL: ("•", ""),
    LogLevel.VERBOSE: ("→", Colors.BLUE),
    LogLevel.DEBUG: ("⚙", Colors.MAGENTA),
    LogLevel.TRACE: ("⋯", Colors.GRAY),
}


def supports_color(stream: TextIO) -> bool:
    """Whether ANSI colors should be written to ``stream``; honours ``NO_COLOR``."""
    if "NO_COLOR" in os.environ:
        return False
    isatty = getattr(stream, "isatty", None)
    if isatty is None or not isatty():
        return False
    if sys.platform == "win32":
        return bool(os.environ.get("TERM") or "ANSICON" in os.environ)
    return True


def _paint(text: str, color: str, enabled: bool) -> str:
    if not enabled or not color:
        return text
    return f"{color}{text}{Colors.RESET}"


@dataclass
class LogEntry:
    """One logged event, with the machine step it happened at (if any)."""

    level: LogLevel
    message: str
    category: str = Category.GENERAL
    step: int | None = None
    timestamp: float = field(default_factory=time.time)
    context: dict[str, Any] = field(default_factory=dict)

    def format(self, color: bool = True, show_time: bool = True) -> str:
        parts = []
        if show_time:
            clock = time.strftime("%H:%M:%S", time.localtime(self.timestamp))
            parts.append(_paint(clock, Colors.GRAY, color))
        if self.level in _INDICATORS:
            char, col = _INDICATORS[self.level]
            parts.append(_paint(char, col, color))
        if self.step is not None:
            parts.append(_paint(f"#{self.step}", Colors.GRAY, color))
        if self.category != Category.GENERAL:
            parts.append(_paint(f"[{self.category}]", Colors.CYAN, color))
        parts.append(self.message)
        return " ".join(parts)


@dataclass
class Timing:
    name: str
    elapsed: float = 0.0


class UbSpectreLogger:
    """Main logger for ubspectre.

    Entries are kept in memory up to ``keep_entries`` so tests and drivers
    can inspect what the machine did, independent of the display level.
    The machine announces each step with ``at_step``; entries logged until
    the next announcement are stamped with that step number.
    """

    def __init__(
        self,
        level: LogLevel = LogLevel.NORMAL,
        color: bool = True,
        stream: TextIO | None = None,
        keep_entries: int = 10000,
    ):
        self.level = level
        self._stream = stream or sys.stderr
        self._color = color and supports_color(self._stream)
        self._keep_entries = keep_entries
        self._entries: list[LogEntry] = []
        self._counters: dict[str, int] = {}
        self._step: int | None = None

    def set_level(self, level: LogLevel) -> None:
        self.level = level

    def at_step(self, step: int | None) -> None:
        """Stamp subsequent entries with ``step``; ``None`` when no machine runs."""
        self._step = step

    @property
    def current_step(self) -> int | None:
        return self._step

    def log(self, level: LogLevel, message: str, category: str = Category.GENERAL, **context: Any) -> None:
        entry = LogEntry(level=level, message=message, category=category, step=self._step, context=context)
        if len(self._entries) < self._keep_entries:
            self._entries.append(entry)
        if level <= self.level:
            self._write(entry.format(color=self._color))

    def info(self, message: str, **context: Any) -> None:
        self.log(LogLevel.NORMAL, message, **context)

    def verbose(self, message: str, **context: Any) -> None:
        self.log(LogLevel.VERBOSE, message, **context)

    def debug(self, message: str, **context: Any) -> None:
        self.log(LogLevel.DEBUG, message, **context)

    def trace(self, message: str, **context: Any) -> None:
        self.log(LogLevel.TRACE, message, **context)

    def warning(self, message: str) -> None:
        """Shown at every level, QUIET included."""
        self._write(f"{_paint('⚠', Colors.YELLOW, self._color)} {message}")

    def error(self, message: str) -> None:
        """Shown at every level, QUIET included."""
        self._write(f"{_paint('✗', Colors.RED, self._color)} {message}")

    def _write(self, line: str) -> None:
        self._stream.write(line + "\n")
        self._stream.flush()

    @contextmanager
    def timer(self, name: str, category: str = Category.TIMING):
        """Time the block; the yielded ``Timing`` holds the elapsed seconds afterwards."""
        timing = Timing(name)
        start = time.perf_counter()
        try:
            yield timing
        finally:
            timing.elapsed = time.perf_counter() - start
            self.verbose(f"{name}: {timing.elapsed:.3f}s", category=category)

    def count(self, name: str, increment: int = 1) -> int:
        """Bump counter ``name`` and return its new value."""
        self._counters[name] = self._counters.get(name, 0) + increment
        return self._counters[name]

    def get_count(self, name: str) -> int:
        return self._counters.get(name, 0)

    def get_entries(
        self,
        level: LogLevel | None = None,
        category: str | None = None,
        step: int | None = None,
    ) -> list[LogEntry]:
        """Retained entries, filtered by exact level, category and step."""
        return [
            e
            for e in self._entries
            if (level is None or e.level == level)
            and (category is None or e.category == category)
            and (step is None or e.step == step)
        ]

    def clear(self) -> None:
        """Forget retained entries, counters and the current step."""
        self._entries.clear()
        self._counters.clear()
        self._step = None


_logger: UbSpectreLogger | None = None


def get_logger() -> UbSpectreLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        _logger = UbSpectreLogger()
    return _logger


def set_logger(logger: UbSpectreLogger) -> None:
    global _logger
    _logger = logger


def configure_logging(
    level: LogLevel = LogLevel.NORMAL,
    color: bool = True,
    stream: TextIO | None = None,
) -> UbSpectreLogger:
    """Replace the global logger and return it."""
    set_logger(UbSpectreLogger(level=level, color=color, stream=stream))
    return get_logger()


class PythonLoggingBridge(logging.Handler):
    """Forward records of a standard-library logger into a ``UbSpectreLogger``."""

    def __init__(self, target_logger: UbSpectreLogger):
        super().__init__()
        self.target_logger = target_logger

    def emit(self, record: logging.LogRecord) -> None:
        message = self.format(record)
        if record.levelno >= logging.ERROR:
            self.target_logger.error(message)
        elif record.levelno >= logging.WARNING:
            self.target_logger.warning(message)
        elif record.levelno >= logging.INFO:
            self.target_logger.info(message, category=Category.PYTHON)
        else:
            self.target_logger.debug(message, category=Category.PYTHON)


def setup_python_logging(level: int = logging.INFO) -> None:
    """Route the ``ubspectre`` standard-library logger into the global logger."""
    logger = logging.getLogger("ubspectre")
    logger.setLevel(level)
    logger.addHandler(PythonLoggingBridge(get_logger()))


__all__ = [
    "LogLevel",
    "Category",
    "LogEntry",
    "Timing",
    "Colors",
    "UbSpectreLogger",
    "get_logger",
    "set_logger",
    "configure_logging",
    "PythonLoggingBridge",
    "setup_python_logging",
    "supports_color",
]
