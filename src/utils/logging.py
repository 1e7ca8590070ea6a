"""Logging utilities module.

Log messages may wrap values in two markers which are rendered by the
formatters below:

- ``$$'value'$$`` for identifiers (titles, keys, file names)
- ``$${key: value}$$`` for structured details (counters, ids)

The console formatter colors them, the file formatter strips the markers.
"""

import logging
import re
import sys
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import ClassVar

import colorama
from colorama import Fore, Style

__all__ = ["CleanFormatter", "ColorFormatter", "Logger", "get_logger", "strip_markers"]

QUOTED_PATTERN = re.compile(r"\$\$'((?:[^']|'(?!\$\$))*)'\$\$")
BRACED_PATTERN = re.compile(r"\$\$\{(.*?)\}\$\$")

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def strip_markers(message: str) -> str:
    """Remove color markers from a message while keeping their content.

    Args:
        message (str): Message possibly containing ``$$`` markers.

    Returns:
        str: The message with plain quotes and braces.
    """
    message = QUOTED_PATTERN.sub("'\\1'", message)
    return BRACED_PATTERN.sub("{\\1}", message)


class _MarkerFormatter(logging.Formatter):
    """Formatter that rewrites the message markers before formatting."""

    def render(self, record: logging.LogRecord, message: str) -> str:
        """Rewrite a string message; subclasses decide how markers look."""
        raise NotImplementedError

    def format(self, record: logging.LogRecord) -> str:
        """Formats a log record after rendering its markers.

        The record is restored afterwards so other handlers see the raw message.

        Args:
            record (logging.LogRecord): Log record to format

        Returns:
            str: Formatted log message
        """
        if not isinstance(record.msg, str):
            return super().format(record)

        orig_msg = record.msg
        orig_levelname = record.levelname
        record.msg = self.render(record, record.msg)
        try:
            return super().format(record)
        finally:
            record.msg = orig_msg
            record.levelname = orig_levelname


class ColorFormatter(_MarkerFormatter):
    """Adds terminal colors to log levels and marked values.

    Color Scheme:
        DEBUG: Cyan
        INFO: Green
        SUCCESS: Bright Green
        WARNING: Yellow
        ERROR: Red
        CRITICAL: Bright Red
        Quoted values: Light Blue (e.g., $$'example'$$)
        Bracketed values: Dimmed (e.g., $${key: value}$$)
    """

    COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": Fore.CYAN,
        "INFO": Fore.GREEN,
        "SUCCESS": Fore.GREEN + Style.BRIGHT,
        "WARNING": Fore.YELLOW,
        "ERROR": Fore.RED,
        "CRITICAL": Fore.RED + Style.BRIGHT,
    }

    def render(self, record: logging.LogRecord, message: str) -> str:
        """Color the level name and the marked values of a message."""
        record.levelname = (
            f"{self.COLORS.get(record.levelname, '')}{record.levelname}"
            f"{Style.RESET_ALL}"
        )
        message = QUOTED_PATTERN.sub(
            f"{Fore.LIGHTBLUE_EX}'\\1'{Style.RESET_ALL}", message
        )
        return BRACED_PATTERN.sub(f"{Style.DIM}{{\\1}}{Style.RESET_ALL}", message)


class CleanFormatter(_MarkerFormatter):
    """Formatter that strips color markers, used for files and dumb terminals."""

    def render(self, record: logging.LogRecord, message: str) -> str:
        """Strip the markers from a message."""
        return strip_markers(message)


class Logger(logging.Logger):
    """Extended Logger class with class name prefixing and a SUCCESS level."""

    SUCCESS = logging.INFO + 5

    def __init__(self, name, level=logging.NOTSET):
        """Initialize the enhanced logger.

        Args:
            name (str): Logger name
            level (int, optional): Initial logging level. Defaults to NOTSET.
        """
        super().__init__(name, level)

        if logging.getLevelName(self.SUCCESS) != "SUCCESS":
            logging.addLevelName(self.SUCCESS, "SUCCESS")

    def _log(
        self,
        level,
        msg,
        args,
        exc_info=None,
        extra=None,
        stack_info=False,
        stacklevel=1,
    ):
        """Prefix messages logged from inside a method with the owning class name.

        Frame 0 is this method, frame 1 the public logging method (``info``,
        ``success``...), frame 2 the caller whose ``self``/``cls`` is inspected.
        """
        try:
            frame = sys._getframe(2)
            owner = frame.f_locals.get("self", frame.f_locals.get("cls"))
            class_name = None
            if isinstance(owner, type):
                class_name = owner.__name__
            elif owner is not None and not isinstance(owner, logging.Logger):
                class_name = owner.__class__.__name__

            if class_name and isinstance(msg, str):
                msg = f"{class_name}: {msg}"
        except (ValueError, KeyError, AttributeError):
            pass

        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )

    def success(self, msg, *args, **kwargs):
        """Log a message with SUCCESS level."""
        if self.isEnabledFor(self.SUCCESS):
            self._log(self.SUCCESS, msg, args, **kwargs)

    def setup(self, log_level: str, log_dir: str | None = None) -> None:
        """Configure the logger with console and (optionally) file output.

        The console gets colors when the terminal supports them; the rotating
        log file never does. Debug level adds the source location to each line.

        Args:
            log_level (str): Logging level ('DEBUG', 'INFO', 'SUCCESS', etc.)
            log_dir (str | None, optional): Directory where log files are stored.
        """
        has_color_support = False
        try:
            from src.utils.terminal import supports_color

            if supports_color():
                if sys.platform == "win32":
                    colorama.just_fix_windows_console()
                else:
                    colorama.init()
                has_color_support = True
        except (AttributeError, ImportError, OSError):
            has_color_support = False

        level = self.SUCCESS if log_level == "SUCCESS" else getattr(logging, log_level)
        self.setLevel(level)
        self.propagate = False

        for handler in self.handlers[:]:
            self.removeHandler(handler)

        if level <= logging.DEBUG:
            log_format = (
                "%(asctime)s - %(name)s - %(levelname)s\t"
                "%(filename)s:%(lineno)d\t%(message)s"
            )
        else:
            log_format = "%(asctime)s - %(name)s - %(levelname)s\t%(message)s"

        if log_dir is not None:
            log_path = Path(log_dir)
            log_path.mkdir(parents=True, exist_ok=True)

            file_handler = RotatingFileHandler(
                log_path / f"{self.name}.{log_level}.log",
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding="utf-8",
            )
            file_handler.setFormatter(CleanFormatter(log_format, datefmt=DATE_FORMAT))
            file_handler.setLevel(level)
            self.addHandler(file_handler)

        console_formatter_cls = ColorFormatter if has_color_support else CleanFormatter
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(
            console_formatter_cls(log_format, datefmt=DATE_FORMAT)
        )
        console_handler.setLevel(level)
        self.addHandler(console_handler)


logging.setLoggerClass(Logger)


def _get_logger(
    log_name: str, log_level: str = "INFO", log_dir: str | Path | None = None
) -> Logger:
    """Get a configured instance of Logger.

    Args:
        log_name (str): Name of the logger and base name for log file.
        log_level (str): Logging level. Defaults to "INFO".
        log_dir (str | Path | None): Directory where log files will be stored.

    Returns:
        Logger: Configured logger instance
    """
    logger = logging.getLogger(log_name)
    if not isinstance(logger, Logger):
        logger = Logger(log_name)

    logger.setup(log_level, str(log_dir) if log_dir is not None else None)
    return logger


@lru_cache(maxsize=1)
def get_logger() -> Logger:
    """Get the main application logger.

    Returns:
        Logger: Main application logger instance
    """
    from src.config.settings import get_config

    config = get_config()

    return _get_logger(
        log_name="AnimeMatcher",
        log_level=str(config.log_level),
        log_dir=config.data_path / "logs",
    )
