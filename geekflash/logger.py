import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

import colorama

from .constants import STDERR

colorama.init()

LOGGER_NAME = "geekflash"
_logger = logging.getLogger(LOGGER_NAME)
_logger.setLevel(logging.INFO)

# Records carrying this attribute are output lines of an external tool.
TOOL_STREAM = "tool_stream"


class ToolStreamFilter(logging.Filter):
    """Gives every record a ``tool_stream`` value so formatters can rely on it."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, TOOL_STREAM):
            setattr(record, TOOL_STREAM, "")
        return True


class ColoredConsoleFormatter(logging.Formatter):
    """Colours engine messages by their marker and tool stderr in yellow.

    ``[+]`` is success, ``[*]`` progress and ``[!]`` a problem (red from
    ERROR upwards). Tool output is printed as-is except for stderr.
    """

    MARKERS = {
        "[+]": colorama.Fore.GREEN,
        "[*]": colorama.Fore.CYAN,
    }
    RESET = colorama.Style.RESET_ALL

    def _colour(self, record: logging.LogRecord, msg: str) -> Optional[str]:
        stripped = msg.lstrip()
        for marker, colour in self.MARKERS.items():
            if stripped.startswith(marker):
                return colour
        if stripped.startswith("[!]"):
            return colorama.Fore.RED if record.levelno >= logging.ERROR else colorama.Fore.YELLOW
        if record.levelno >= logging.ERROR:
            return colorama.Fore.RED
        if getattr(record, TOOL_STREAM, "") == STDERR:
            return colorama.Fore.YELLOW
        return None

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        colour = self._colour(record, msg)
        return f"{colour}{msg}{self.RESET}" if colour else msg


def _file_formatter() -> logging.Formatter:
    return logging.Formatter("%(asctime)s %(tool_stream)-6s %(message)s", datefmt="%H:%M:%S")


if not _logger.handlers:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColoredConsoleFormatter("%(message)s"))
    _logger.addHandler(console_handler)
    _logger.addFilter(ToolStreamFilter())


def get_logger() -> logging.Logger:
    return _logger


@contextmanager
def logging_context(
    log_filename: Optional[Union[str, Path]] = None, verbose: bool = False
) -> Iterator[logging.Logger]:
    """Temporarily tee the log into ``log_filename`` and/or lower the level to DEBUG."""
    handlers_to_remove = []
    previous_level = _logger.level

    has_file_handler = any(isinstance(h, logging.FileHandler) for h in _logger.handlers)

    try:
        if verbose:
            _logger.setLevel(logging.DEBUG)
        if log_filename and not has_file_handler:
            file_handler = logging.FileHandler(log_filename, encoding="utf-8")
            file_handler.setFormatter(_file_formatter())
            _logger.addHandler(file_handler)
            handlers_to_remove.append(file_handler)

        yield _logger

    finally:
        _logger.setLevel(previous_level)
        for handler in handlers_to_remove:
            handler.close()
            _logger.removeHandler(handler)
