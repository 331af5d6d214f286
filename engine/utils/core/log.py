"""
Logging for the summary engine.

* ``set_logger`` / ``get_logger`` keep a request-scoped LoggerAdapter in a
  ContextVar so deep helpers (retry loop, chunk workers) log with the
  request id and file name without passing a logger around.
* ``setup_logging`` loads ``utils/logging_config.json`` through dictConfig;
  relative handler file names are placed under ``$DOCSUM_LOG_DIR``.
* ``request_tool_logger`` adds a rotating per-request file under
  ``$DOCSUM_LOG_DIR/<request_id>/<tool>.log``.
"""

import os
import json
import logging
import pathlib
import datetime
import logging.config
from typing import Union
from contextvars import ContextVar
from logging.handlers import RotatingFileHandler

AnyLogger = Union[logging.Logger, logging.LoggerAdapter]

_current_logger: ContextVar[AnyLogger | None] = ContextVar("doc_summary_logger", default=None)

ROOT_LOGGER_NAME = "DocSummaryBE"
LOGGING_CONFIG_FILE = pathlib.Path(__file__).resolve().parent.parent / "logging_config.json"

# libraries that log request bodies / retries on their own
QUIET_LIBRARIES = (
    "google_genai",
    "google.genai",
    "google.cloud.vision",
    "google.auth",
    "grpc",
    "httpx",
    "httpcore",
    "werkzeug",
    "hvac",
)

_CONTEXT_DEFAULTS = {
    "tool_name": "N/A",
    "request_id": "N/A",
    "ip_address": "no_ip",
    "request_type": "N/A",
    "file_name": "-",
}


def set_logger(logger: logging.Logger, **extra):
    _current_logger.set(logging.LoggerAdapter(logger, extra))


def get_logger() -> AnyLogger:
    """Request-scoped logger if one was set, otherwise the engine logger."""
    return _current_logger.get() or logging.getLogger(ROOT_LOGGER_NAME)


class NoDebugFilter(logging.Filter):
    def filter(self, record):
        return record.levelno > logging.DEBUG


class ContextFilter(logging.Filter):
    """Stamp request fields on every record so formatters can rely on them."""

    def filter(self, record):
        current = _current_logger.get()
        extra = current.extra if isinstance(current, logging.LoggerAdapter) else {}
        for key, default in _CONTEXT_DEFAULTS.items():
            if not hasattr(record, key):
                setattr(record, key, (extra or {}).get(key, default))
        return True


def setup_logging(config_file: pathlib.Path | str | None = None):
    with open(pathlib.Path(config_file or LOGGING_CONFIG_FILE)) as f_in:
        config = json.load(f_in)

    for handler in config.get("handlers", {}).values():
        if "filename" in handler:
            # relative file names live next to the per-request logs
            path = log_root() / pathlib.Path(handler["filename"]).expanduser()
            path.parent.mkdir(parents=True, exist_ok=True)
            handler["filename"] = str(path)

    logging.config.dictConfig(config)

    for name in QUIET_LIBRARIES:
        lib_logger = logging.getLogger(name)
        lib_logger.setLevel(logging.ERROR)
        lib_logger.propagate = False

    context_filter = ContextFilter()
    root_logger = logging.getLogger()
    for old in [f for f in root_logger.filters if isinstance(f, ContextFilter)]:
        root_logger.removeFilter(old)
    root_logger.addFilter(context_filter)
    for handler in root_logger.handlers:
        handler.addFilter(context_filter)
        handler.addFilter(NoDebugFilter())


class RequestFileFilter(logging.Filter):
    """DEBUG trail plus errors; INFO/WARNING already go to the console."""

    def filter(self, record):
        return record.levelno == logging.DEBUG or record.levelno >= logging.ERROR


def log_root() -> pathlib.Path:
    return pathlib.Path(os.getenv("DOCSUM_LOG_DIR", "~/process_logs")).expanduser()


def request_tool_logger(request_id: str, tool_name: str) -> logging.Logger:
    log_dir = log_root() / request_id
    log_dir.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(log_dir / f"{tool_name}.log", maxBytes=5_000_000, backupCount=1)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
    handler.addFilter(RequestFileFilter())

    # one logger per request: concurrent requests never share a file handler
    logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{request_id}.{tool_name}")
    logger.setLevel(logging.DEBUG)
    close_request_logger(logger)
    logger.addHandler(handler)
    logger.propagate = True
    return logger


def close_request_logger(logger: logging.Logger) -> None:
    """Detach and close the per-request file handlers once the request is done."""
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()


_ANSI = {
    "red": "\033[31m",
    "green": "\033[32m",
    "blue": "\033[34m",
    "orange": "\033[33m",
    "grey": "\033[90m",
    "white": "\033[97m",
    "purple": "\033[35m",
    "reset": "\033[0m",
}


class DynamicPrefixFormatter(logging.Formatter):
    """
    Fixed-width console line:

        [+] 2025-01-01 12:00:00 3f2a9c1b77de 10.0.0.4       POST   - INFO    - report.pdf : doc_summary_main  Analysis done ...

    ``color`` is set from the dictConfig entry.
    """

    # (record attribute, default, width, colour)
    COLUMNS = (
        ("request_id", "N/A", 12, "blue"),
        ("ip_address", "no_ip", 15, "orange"),
        ("request_type", "N/A", 6, None),
    )
    FILE_W = 24
    TOOL_W = 20
    LEVEL_W = 7

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = bool(color)

    def _paint(self, colour: str | None, text: str) -> str:
        if not self.color or colour is None:
            return text
        return f"{_ANSI[colour]}{text}"

    def _field(self, record, name, default, width) -> str:
        value = (getattr(record, name, default) or default)[:width]
        return f"{value:<{width}}"

    def format(self, record: logging.LogRecord) -> str:
        warn = record.levelno >= logging.WARNING
        method = (getattr(record, "request_type", "") or "").upper()

        if warn:
            marker = self._paint("red", "[-]")
        else:
            marker = self._paint("grey" if method == "GET" else "green", "[+]")

        stamp = datetime.datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        parts = [marker, self._paint("white", stamp)]
        for name, default, width, colour in self.COLUMNS:
            if name == "request_type":
                colour = "green" if method == "POST" else "white"
            parts.append(self._paint(colour, self._field(record, name, default, width)))

        dash = self._paint("red", " - ")
        level = self._paint(
            "red" if record.levelno >= logging.ERROR else "purple",
            f"{record.levelname:<{self.LEVEL_W}}",
        )
        where = self._paint(
            "grey",
            f"{self._field(record, 'file_name', '-', self.FILE_W)}: "
            f"{self._field(record, 'tool_name', 'N/A', self.TOOL_W)}",
        )

        line = " ".join(parts) + dash + level + dash + where + " " + record.getMessage()
        if self.color:
            line += _ANSI["reset"]
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        if record.stack_info:
            line += "\n" + self.formatStack(record.stack_info)
        return line
