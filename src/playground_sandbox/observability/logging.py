"""Structured logging for sandbox sessions: queue-backed JSON lines with redaction.

Library modules log through ``logging.getLogger(__name__)`` and attach data
with ``extra=``; nothing is emitted until :func:`setup_structured_logging`
installs a handler on the ``playground_sandbox`` logger. Submitted source
text never reaches a sink: ``code``/``source`` fields are masked like secrets.
"""

from __future__ import annotations

import atexit
import contextvars
import copy
import json
import logging
import logging.handlers
import math
import queue
import re
import sys
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]

REDACTED: Final[str] = "***REDACTED***"
PACKAGE_LOGGER: Final[str] = "playground_sandbox"
CORRELATION_KEYS: Final[tuple[str, ...]] = ("session_id", "request_id", "operation")

# Exact field names that carry user-submitted program text.
_SOURCE_FIELDS: Final[frozenset[str]] = frozenset({"code", "source", "source_code"})
_SECRET_FIELD = re.compile(
    r"secret|token|password|api_?key|authorization|credential|private_key", re.IGNORECASE
)
_SECRET_ASSIGNMENT = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b(\s*[:=]\s*)[^\s,;]+"
)
_BEARER = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")

_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None))
) | {"message", "asctime", "taskName", "correlation"}

_correlation: contextvars.ContextVar[tuple[tuple[str, str], ...]] = contextvars.ContextVar(
    "playground_sandbox_correlation", default=()
)
_active_lock = threading.Lock()
_active: StructuredLoggingHandle | None = None


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for queue-backed structured logging.

    ``log_dir=None`` disables the file sink; ``log_to_console`` writes the same
    JSON lines to stderr so stdout stays free for command output.
    """

    session_id: str
    log_dir: Path | str | None = Path("logs")
    logger_name: str = PACKAGE_LOGGER
    level: int | str = "INFO"
    queue_size: int = 4096
    log_filename: str = "sandbox.jsonl"
    log_to_console: bool = False
    max_bytes: int = 10_000_000
    backup_count: int = 5
    redact_secrets: bool = True

    def __post_init__(self) -> None:
        for name in ("session_id", "logger_name", "log_filename"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{name} must be a non-empty string")
        if Path(self.log_filename).name != self.log_filename:
            raise ValueError("log_filename must not include path separators")
        if isinstance(self.queue_size, bool) or not isinstance(self.queue_size, int):
            raise ValueError("queue_size must be an integer")
        if self.queue_size <= 0:
            raise ValueError("queue_size must be > 0")
        _level_number(self.level)

    @property
    def log_path(self) -> Path | None:
        return None if self.log_dir is None else Path(self.log_dir) / self.log_filename


def logging_config_from(
    observability: Mapping[str, object],
    *,
    session_id: str,
    log_dir: Path | str | None = None,
) -> LoggingConfig:
    """Build a ``LoggingConfig`` from the ``[observability]`` config section."""

    level = observability.get("log_level", "INFO")
    directory = observability.get("log_dir", "logs") if log_dir is None else log_dir
    return LoggingConfig(
        session_id=session_id,
        log_dir=directory if isinstance(directory, (Path, str)) else None,
        level=level if isinstance(level, (int, str)) else "INFO",
        log_to_console=bool(observability.get("log_to_console", False)),
        redact_secrets=bool(observability.get("redact_secrets", True)),
    )


class Redactor:
    """Masks source text always, and secret-looking keys and assignments when asked."""

    def __init__(self, *, secrets: bool = True) -> None:
        self.secrets = secrets

    def __call__(self, value: JSONValue) -> JSONValue:
        if isinstance(value, dict):
            return {key: self._field(key, item) for key, item in value.items()}
        if isinstance(value, list):
            return [self(item) for item in value]
        if isinstance(value, str) and self.secrets:
            masked = _SECRET_ASSIGNMENT.sub(rf"\1\2{REDACTED}", value)
            return _BEARER.sub(f"Bearer {REDACTED}", masked)
        return value

    def _field(self, key: str, value: JSONValue) -> JSONValue:
        if key.lower() in _SOURCE_FIELDS:
            return REDACTED
        if self.secrets and _SECRET_FIELD.search(key):
            return REDACTED
        return self(value)


class _SessionQueueHandler(logging.handlers.QueueHandler):
    """Never blocks the emitting thread: records that don't fit are counted and dropped."""

    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self._traceback_formatter = logging.Formatter()
        self._dropped = 0
        self._dropped_lock = threading.Lock()

    @property
    def dropped(self) -> int:
        with self._dropped_lock:
            return self._dropped

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Correlation lives in a contextvar, so it is read on the emitting thread.
        prepared = copy.copy(record)
        prepared.correlation = dict(_correlation.get())
        prepared.msg = record.getMessage()
        prepared.args = None
        if record.exc_info:
            prepared.exc_text = self._traceback_formatter.formatException(record.exc_info)
        prepared.exc_info = None
        prepared.stack_info = None
        return prepared

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1


class _JsonLinesFormatter(logging.Formatter):
    def __init__(self, redactor: LogRedactor, session_id: str) -> None:
        super().__init__()
        self._redactor = redactor
        self._session_id = session_id

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _utc_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": _text(self._redactor(record.getMessage())),
            "session_id": self._session_id,
        }
        event.update(getattr(record, "correlation", {}))

        fields: dict[str, JSONValue] = {}
        for key, value in vars(record).items():
            if key in _RECORD_ATTRIBUTES or key.startswith("_"):
                continue
            if key in CORRELATION_KEYS:
                if isinstance(value, str) and value.strip():
                    event[key] = value.strip()
                continue
            fields[key] = _jsonable(value)
        if fields:
            event["fields"] = self._redactor(fields)
        if record.exc_text:
            event["exception"] = _text(self._redactor(record.exc_text))
        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class StructuredLoggingHandle:
    """An installed logging setup; :meth:`shutdown` drains the queue and closes sinks."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        config: LoggingConfig,
        queue_handler: _SessionQueueHandler,
        listener: logging.handlers.QueueListener,
        sinks: tuple[logging.Handler, ...],
        previous_propagate: bool,
    ) -> None:
        self.logger = logger
        self.session_id = config.session_id.strip()
        self.log_path = config.log_path
        self._queue_handler = queue_handler
        self._listener = listener
        self._sinks = sinks
        self._previous_propagate = previous_propagate
        self._lock = threading.Lock()
        self._is_shutdown = False

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    def shutdown(self) -> None:
        with self._lock:
            if self._is_shutdown:
                return
            self._is_shutdown = True
            self.logger.removeHandler(self._queue_handler)
            self._listener.stop()
            self.logger.propagate = self._previous_propagate
            self._queue_handler.close()
            for sink in self._sinks:
                sink.close()


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Install queue-backed JSON-lines logging on ``config.logger_name``.

    Any previously active handle is shut down first, so repeated calls (one
    per CLI invocation or test) never stack handlers.
    """

    global _active
    level = _level_number(config.level)
    formatter = _JsonLinesFormatter(
        Redactor(secrets=config.redact_secrets), config.session_id.strip()
    )

    sinks: list[logging.Handler] = []
    if config.log_path is not None:
        config.log_path.parent.mkdir(parents=True, exist_ok=True)
        sinks.append(
            logging.handlers.RotatingFileHandler(
                config.log_path,
                maxBytes=max(1, config.max_bytes),
                backupCount=max(1, config.backup_count),
                encoding="utf-8",
            )
        )
    if config.log_to_console:
        sinks.append(logging.StreamHandler(sys.stderr))
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    with _active_lock:
        if _active is not None:
            _active.shutdown()
            _active = None

        logger = logging.getLogger(config.logger_name.strip())
        for stale in list(logger.handlers):
            logger.removeHandler(stale)
            stale.close()
        previous_propagate = logger.propagate
        logger.setLevel(level)
        logger.propagate = False

        log_queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
        queue_handler = _SessionQueueHandler(log_queue)
        queue_handler.setLevel(level)
        listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)
        listener.start()
        logger.addHandler(queue_handler)

        _active = StructuredLoggingHandle(
            logger=logger,
            config=config,
            queue_handler=queue_handler,
            listener=listener,
            sinks=tuple(sinks),
            previous_propagate=previous_propagate,
        )
        return _active


def shutdown_logging(handle: StructuredLoggingHandle | None = None) -> None:
    """Shut down ``handle``, or the active setup when none is given."""

    global _active
    with _active_lock:
        target = handle if handle is not None else _active
        if target is _active:
            _active = None
    if target is not None:
        target.shutdown()


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields (``request_id``, ``operation``...) for records in scope.

    A ``None`` value removes a field bound by an outer scope.
    """

    bound = dict(_correlation.get())
    for key, value in fields.items():
        if value is None:
            bound.pop(key, None)
        elif isinstance(value, str) and value.strip():
            bound[key] = value.strip()
        else:
            raise ValueError(f"correlation value for {key!r} must be a non-empty string")
    token = _correlation.set(tuple(bound.items()))
    try:
        yield
    finally:
        _correlation.reset(token)


def _level_number(level: object) -> int:
    if isinstance(level, int) and not isinstance(level, bool):
        return level
    if isinstance(level, str):
        number = logging.getLevelName(level.strip().upper())
        if isinstance(number, int):
            return number
    raise ValueError(f"unsupported logging level {level!r}")


def _utc_timestamp(epoch_seconds: float) -> str:
    moment = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _text(value: JSONValue) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _jsonable(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_jsonable(item) for item in value), key=repr)
    return repr(value)


atexit.register(shutdown_logging)


__all__ = [
    "CORRELATION_KEYS",
    "JSONScalar",
    "JSONValue",
    "LogRedactor",
    "LoggingConfig",
    "PACKAGE_LOGGER",
    "REDACTED",
    "Redactor",
    "StructuredLoggingHandle",
    "correlation_scope",
    "logging_config_from",
    "setup_structured_logging",
    "shutdown_logging",
]
