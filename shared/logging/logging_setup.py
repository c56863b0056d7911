import contextvars
import logging
import logging.config
import os
from contextlib import contextmanager
from datetime import datetime
from logging import Logger
from typing import Iterator

from pytz import timezone

# document the current task works on, shown as [doc=<uuid>] in every line
_current_document: contextvars.ContextVar[str | None] = contextvars.ContextVar("current_document", default=None)

_ANSI_RESET = "\033[0m"
_COLOR_MAP: dict[str, str] = {
    "cyan": "\033[36m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "red": "\033[31m",
    "magenta": "\033[35m",
    "blue": "\033[34m",
    "white": "\033[37m",
}

_LEVEL_PREFIX = {
    logging.WARNING: "⚠️ ",
    logging.ERROR: "⛔ ",
    logging.CRITICAL: "⛔ ",
}

# pypdf reports recoverable structural problems of malformed PDFs as warnings
_PDF_NOISE = (
    "Ignoring wrong pointing object",
    "Multiple definitions in dictionary",
    "incorrect startxref pointer",
)

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(document)s%(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _is_debug() -> bool:
    return os.getenv("LOG_LEVEL", "info").lower() == "debug"


##########################################
############ DOCUMENT CONTEXT ############
##########################################

def bind_document(document_uuid: str) -> contextvars.Token:
    """Attach a document uuid to all log lines of the current task.

    Returns:
        contextvars.Token: Pass to release_document() to restore the previous value.
    """
    return _current_document.set(document_uuid)


def release_document(token: contextvars.Token) -> None:
    _current_document.reset(token)


@contextmanager
def document_context(document_uuid: str) -> Iterator[None]:
    token = bind_document(document_uuid)
    try:
        yield
    finally:
        release_document(token)


class DocumentContextFilter(logging.Filter):
    """Stamps every record with the document bound to the running task."""

    def filter(self, record: logging.LogRecord) -> bool:
        document_uuid = _current_document.get()
        record.document = f"[doc={document_uuid}] " if document_uuid else ""
        return True


class PdfParserNoiseFilter(logging.Filter):
    """Drop pypdf warnings about recoverable structural issues in uploaded PDFs."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith("pypdf") and not _is_debug():
            return not any(noise in str(record.msg) for noise in _PDF_NOISE)
        return True


##########################################
############### FORMATTING ###############
##########################################

class BridgeFormatter(logging.Formatter):
    """Timezone-aware formatter with level emojis and optional ANSI colors.

    Colors are applied only when colored=True and the record carries a
    ``color`` attribute, set by passing ``color=<name>`` to ColorLogger methods.
    """

    def __init__(self, tz_name: str, colored: bool = False, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tz = timezone(tz_name)
        self.colored = colored

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, self.tz)
        return dt.strftime(datefmt) if datefmt else dt.isoformat()

    def format(self, record) -> str:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # message and args do not match, log the raw template instead
            message = f"{record.msg} {record.args}"
        if not hasattr(record, "document"):
            record.document = ""

        record.msg = _LEVEL_PREFIX.get(record.levelno, "") + message
        record.args = ()
        line = super().format(record)

        ansi = _COLOR_MAP.get(getattr(record, "color", None) or "", "") if self.colored else ""
        return f"{ansi}{line}{_ANSI_RESET}" if ansi else line


class ColorLogger:
    """Wraps a :class:`logging.Logger` and adds a ``color=`` keyword to the log methods.

    Usage::

        logger.info("plain message")
        logger.info("document indexed", color="green")

    Colors only reach the console, the log file stays plain text.
    """

    def __init__(self, logger: Logger):
        self._logger = logger

    def _log(self, method: str, msg, args, color: str | None, kwargs: dict) -> None:
        if color is not None:
            kwargs["extra"] = {**(kwargs.get("extra") or {}), "color": color}
        getattr(self._logger, method)(msg, *args, **kwargs)

    def debug(self, msg, *args, color: str | None = None, **kwargs):
        self._log("debug", msg, args, color, kwargs)

    def info(self, msg, *args, color: str | None = None, **kwargs):
        self._log("info", msg, args, color, kwargs)

    def warning(self, msg, *args, color: str | None = None, **kwargs):
        self._log("warning", msg, args, color, kwargs)

    def error(self, msg, *args, color: str | None = None, **kwargs):
        self._log("error", msg, args, color, kwargs)

    def exception(self, msg, *args, color: str | None = None, **kwargs):
        self._log("exception", msg, args, color, kwargs)

    def __getattr__(self, name):
        """Delegate all other Logger attributes (e.g. setLevel, handlers)."""
        return getattr(self._logger, name)


##########################################
################# SETUP ##################
##########################################

def setup_logging() -> ColorLogger:
    """Configure root logging with a console and a rotating file handler.

    Environment:
        LOG_LEVEL: "debug" switches every handler and the transport loggers to DEBUG.
        ROOT_DIR: Base directory of ``logs/app.log``, defaults to the working directory.
        TIMEZONE: Timezone of the timestamps, defaults to Europe/Berlin.
        LOG_FILE_MAX_MB, LOG_FILE_BACKUPS: Rotation of the log file.

    Returns:
        ColorLogger: The application logger.
    """
    debug_mode = _is_debug()
    level = logging.DEBUG if debug_mode else logging.INFO
    log_dir = os.path.join(os.getenv("ROOT_DIR") or os.getcwd(), "logs")
    tz_name = os.getenv("TIMEZONE", "Europe/Berlin")
    max_bytes = int(float(os.getenv("LOG_FILE_MAX_MB", "10")) * 1024 * 1024)
    backups = int(os.getenv("LOG_FILE_BACKUPS", "5"))
    os.makedirs(log_dir, exist_ok=True)

    formatter = {"format": LOG_FORMAT, "datefmt": DATE_FORMAT, "tz_name": tz_name}
    filters = ["document", "pdf_noise"]
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "document": {"()": DocumentContextFilter},
            "pdf_noise": {"()": PdfParserNoiseFilter},
        },
        "formatters": {
            "plain": {"()": BridgeFormatter, **formatter},
            "colored": {"()": BridgeFormatter, "colored": True, **formatter},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "colored",
                "filters": filters,
                "level": level,
                "stream": "ext://sys.stdout",
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "formatter": "plain",
                "filters": filters,
                "level": level,
                "filename": os.path.join(log_dir, "app.log"),
                "maxBytes": max_bytes,
                "backupCount": backups,
                "encoding": "utf-8",
            },
        },
        "root": {"handlers": ["console", "file"], "level": level},
    })

    # per-request transport and SQL logs only in debug mode
    quiet = logging.DEBUG if debug_mode else logging.WARNING
    for name in ("httpx", "httpcore", "sqlalchemy.engine"):
        logging.getLogger(name).setLevel(quiet)

    return ColorLogger(logging.getLogger("pdf_rag_bridge"))
