"""devsuite Output Multiplexer.

Merges the stdout/stderr of every managed process into a single labeled
stream: ``[NAME] [HH:MM:SS] message``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from enum import StrEnum
import logging
import sys
import time
from typing import TextIO

logger = logging.getLogger(__name__)

ORCHESTRATOR_LABEL = "ORCHESTRATOR"

# Colors handed out to services in registration order
SERVICE_PALETTE = ("green", "yellow", "magenta", "blue", "red", "gray")


class StreamKind(StrEnum):
    """Which child stream a line came from."""

    STDOUT = "stdout"
    STDERR = "stderr"


class LineLevel(StrEnum):
    """Classification of an emitted line."""

    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    SUCCESS = "success"


class OutputMultiplexer:
    """Writes labeled, timestamped lines from many sources to one sink."""

    def __init__(
        self,
        output: TextIO | None = None,
        *,
        enable_colors: bool = True,
        benign_patterns: Iterable[str] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the multiplexer.

        Args:
            output: Output stream (defaults to stdout)
            enable_colors: Whether to use colored output
            benign_patterns: Stderr substrings not classified as warnings
            clock: Time source for line timestamps
        """
        self.output = output or sys.stdout
        self.enable_colors = (
            enable_colors and hasattr(self.output, "isatty") and self.output.isatty()
        )
        self.benign_patterns = tuple(benign_patterns)
        self.clock = clock
        self.lines_written = 0
        self._service_colors: dict[str, str] = {}

        # Color codes
        self.colors = (
            {
                "reset": "\033[0m",
                "bold": "\033[1m",
                "green": "\033[32m",
                "yellow": "\033[33m",
                "red": "\033[31m",
                "blue": "\033[34m",
                "magenta": "\033[35m",
                "cyan": "\033[36m",
                "gray": "\033[90m",
            }
            if self.enable_colors
            else dict.fromkeys(
                [
                    "reset",
                    "bold",
                    "green",
                    "yellow",
                    "red",
                    "blue",
                    "magenta",
                    "cyan",
                    "gray",
                ],
                "",
            )
        )

    def _colorize(self, text: str, color: str) -> str:
        """Apply color to text if colors are enabled."""
        return f"{self.colors[color]}{text}{self.colors['reset']}"

    def _color_for(self, label: str) -> str:
        if label == ORCHESTRATOR_LABEL:
            return "cyan"
        if label not in self._service_colors:
            index = len(self._service_colors) % len(SERVICE_PALETTE)
            self._service_colors[label] = SERVICE_PALETTE[index]
        return self._service_colors[label]

    def register(self, service_name: str) -> None:
        """Reserve a stable color for a service."""
        self._color_for(service_name)

    def timestamp(self) -> str:
        """Wall-clock time used in line prefixes."""
        return time.strftime("%H:%M:%S", time.localtime(self.clock()))

    def format_line(
        self, label: str, message: str, level: LineLevel = LineLevel.INFO
    ) -> str:
        """Build one output line."""
        color = self._color_for(label)
        prefix = self._colorize(f"[{label}]", color)
        stamp = self._colorize(f"[{self.timestamp()}]", color)

        if level == LineLevel.WARN:
            message = self._colorize(f"[WARN] {message}", "yellow")
        elif level == LineLevel.ERROR:
            message = self._colorize(f"[ERROR] {message}", "red")
        elif level == LineLevel.SUCCESS:
            message = self._colorize(message, "green")

        return f"{prefix} {stamp} {message}"

    def write(self, text: str, color: str | None = None) -> None:
        """Write unprefixed text (banners and summaries)."""
        if color:
            text = self._colorize(text, color)
        try:
            print(text, file=self.output, flush=True)
        except (BrokenPipeError, ValueError):
            # Sink closed underneath us
            return
        self.lines_written += 1

    def emit(
        self, label: str | None, message: str, level: LineLevel = LineLevel.INFO
    ) -> None:
        """Write one line to the combined stream."""
        self.write(self.format_line(label or ORCHESTRATOR_LABEL, message, level))

    def classify(self, message: str, kind: StreamKind) -> LineLevel:
        """Stderr lines are warnings unless they match a benign pattern."""
        if kind == StreamKind.STDERR and not any(
            pattern in message for pattern in self.benign_patterns
        ):
            return LineLevel.WARN
        return LineLevel.INFO

    async def pump(
        self, stream: asyncio.StreamReader, service_name: str, kind: StreamKind
    ) -> int:
        """Copy ``stream`` into the combined output until EOF.

        Returns:
            Number of lines emitted for this stream
        """
        emitted = 0
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # Line longer than the reader limit; take what is buffered
                raw = await stream.read(2**16)
            except (ConnectionError, OSError) as e:
                logger.debug("%s %s closed: %s", service_name, kind.value, e)
                break

            if not raw:
                break

            message = raw.decode("utf-8", errors="replace").rstrip()
            if not message:
                continue

            self.emit(service_name, message, self.classify(message, kind))
            emitted += 1

        logger.debug("%s %s ended after %d lines", service_name, kind.value, emitted)
        return emitted
