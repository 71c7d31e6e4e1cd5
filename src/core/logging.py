"""Loguru setup shared by the API and the collection layer.

Two outputs, chosen by ``LogConfig.log_formatter_type``:
- **console**: Colored single lines with the record's bound context inline
- **json**: One object per line, bound context merged at the top level

Records from the standard library (uvicorn, SQLAlchemy, asyncio) are routed
into Loguru by ``InterceptHandler``. Collection managers and the change
notifier bind ``entity``, ``operation`` and ``topics``; the request middleware
binds ``correlation_id``. Those fields lead the console context.
"""

import inspect
import json
import logging
import sys
from typing import Any, Final, Protocol, cast

from loguru import logger

from src.core.config import LogConfig, get_settings

CORRELATION_ID_DISPLAY_LENGTH: Final = 8
MAX_FIELD_VALUE_LENGTH: Final = 100
LEADING_FIELDS: Final = ("correlation_id", "entity", "operation", "topics")
INTERCEPTED_LOGGERS: Final = ("uvicorn", "uvicorn.error", "uvicorn.access")
FALLBACK_FORMAT: Final = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name} | {message}\n"
)


class LoggingSettings(Protocol):
    """The part of ``Settings`` that ``setup_logging`` reads."""

    @property
    def debug(self) -> bool: ...

    @property
    def log_config(self) -> LogConfig: ...


class _State:
    def __init__(self) -> None:
        self.configured = False


_state = _State()


def _escape(value: object) -> str:
    """Escape braces so Loguru does not treat them as format fields."""
    return str(value).replace("{", "{{").replace("}", "}}")


def _format_extra_field(key: str, value: object) -> str | None:
    """Render one bound field as ``key=value``.

    Sensitive keys are redacted, correlation IDs shortened and long values
    cut. Returns ``None`` when the value cannot be rendered.
    """
    try:
        text = str(value)
    except (TypeError, ValueError) as e:
        logger.trace("Unrenderable log field {}: {}", key, e)
        return None

    if key in get_settings().log_config.sensitive_fields:
        text = "[REDACTED]"
    elif key == "correlation_id":
        text = text[:CORRELATION_ID_DISPLAY_LENGTH]
    elif len(text) > MAX_FIELD_VALUE_LENGTH:
        text = text[: MAX_FIELD_VALUE_LENGTH - 3] + "..."
    return f"{_escape(key)}={_escape(text)}"


def _format_context_fields(extra: dict[str, Any]) -> list[str]:
    """Leading fields in fixed order, then the rest as bound; private keys skipped."""
    ordered = [key for key in LEADING_FIELDS if extra.get(key) is not None]
    ordered += [
        key
        for key, value in extra.items()
        if key not in LEADING_FIELDS and not key.startswith("_") and value is not None
    ]

    parts = []
    for key in ordered:
        rendered = _format_extra_field(key, extra[key])
        if rendered is None:
            continue
        tag = "yellow" if key in LEADING_FIELDS else "dim"
        parts.append(f"<{tag}>{rendered}</{tag}>")
    return parts


def format_console_with_context(record: dict[str, Any]) -> str:
    """Loguru format function for console output."""
    try:
        stamp = record["time"].strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        level = getattr(record["level"], "name", record["level"])
        where = f"{record['name']}:{record['function']}:{record['line']}"
    except (KeyError, AttributeError, TypeError) as e:
        logger.trace("Falling back to plain log format: {}", e)
        return FALLBACK_FORMAT

    line = (
        f"<green>{stamp}</green> | <level>{level: <8}</level> | <cyan>{where}</cyan>"
    )
    if context := _format_context_fields(record.get("extra", {})):
        line += " | " + " ".join(f"[{part}]" for part in context)
    line += " | " + _escape(record.get("message", ""))
    if record.get("exception"):
        line += "\n{exception}"
    return line + "\n"


def serialize_for_json(record: dict[str, Any]) -> str:
    """Render a record as one JSON line."""
    entry: dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name,
        "message": record["message"],
        "logger": record["name"],
        "module": record["module"],
        "function": record["function"],
        "line": record["line"],
    }
    entry.update(
        (key, value)
        for key, value in record.get("extra", {}).items()
        if not key.startswith("_")
    )
    if exc := record.get("exception"):
        entry["exception"] = {
            "type": exc.type.__name__ if exc.type else None,
            "value": str(exc.value) if exc.value else None,
        }
    return json.dumps(entry, default=str) + "\n"


def _json_sink(message: Any) -> None:  # noqa: ANN401 - loguru Message
    sys.stdout.write(serialize_for_json(message.record))
    sys.stdout.flush()


class InterceptHandler(logging.Handler):
    """Standard library handler that re-emits records through Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Skip logging's own frames so Loguru reports the real caller
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(settings: LoggingSettings) -> None:
    """Install the configured Loguru sink; later calls are ignored."""
    if _state.configured:
        return

    config = settings.log_config
    formatter = config.log_formatter_type or "console"

    logger.remove()
    if formatter == "json":
        logger.add(
            _json_sink,
            level=config.log_level,
            enqueue=True,
            diagnose=False,
            backtrace=False,
        )
    else:
        logger.add(
            sys.stdout,
            format=cast("Any", format_console_with_context),
            level=config.log_level,
            enqueue=True,
            colorize=True,
            diagnose=settings.debug,
            backtrace=settings.debug,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in INTERCEPTED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False

    _state.configured = True
    logger.info(
        "Logging configured with {} formatter", formatter, log_level=config.log_level
    )
