"""
cadence-engine: structured logging sink.

File: src/cadence_engine/observability/logging.py

Purpose
- Write planner and orchestrator logs to ``<log_dir>/<session_id>/cadence.jsonl``.
- Route ``structlog`` decision events into the same standard-library handlers.
- Stamp each line with correlation fields bound through ``structlog.contextvars``.

Functional requirements
- Records pass through a bounded queue; a full queue drops the record and counts it.
- Secret-looking keys, ``token=...`` style assignments, and bearer tokens are
  redacted unless redaction is disabled.
"""

from __future__ import annotations

import atexit
import json
import logging
import logging.handlers
import queue
import re
import threading
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Final, Literal

import structlog

from cadence_engine.domain.models import JSONValue

LogFormat = Literal["json", "text"]
LogRedactor = Callable[[JSONValue], JSONValue]

REDACTED: Final[str] = "***REDACTED***"
ROOT_LOGGER: Final[str] = "cadence_engine"
CORRELATION_FIELDS: Final[tuple[str, ...]] = ("session_id", "run_id", "plan_id", "correlation_id")

_TEXT_FORMAT: Final[str] = "%(asctime)s %(levelname)s %(name)s %(message)s"
_SECRET_KEY: Final[re.Pattern[str]] = re.compile(
    r"(?i)secret|token|password|api_?key|authorization|credential|private_key"
)
_SECRET_ASSIGNMENT: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b\s*([:=])\s*[^\s,;]+"
)
_BEARER: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")
_RECORD_ATTRIBUTES: Final[frozenset[str]] = frozenset(
    vars(logging.makeLogRecord({}))
) | {"message", "asctime", "taskName", "correlation"}

_active_lock = threading.Lock()
_active: LoggingHandle | None = None
_atexit_installed = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Settings for one logging session."""

    session_id: str
    base_log_dir: Path | str = Path("logs")
    logger_name: str = ROOT_LOGGER
    level: int | str = "INFO"
    log_format: LogFormat = "json"
    queue_size: int = 4096
    log_filename: str = "cadence.jsonl"
    log_to_stderr: bool = False
    redact_secrets: bool = True

    @classmethod
    def from_config(cls, config: Mapping[str, Any], *, session_id: str) -> LoggingConfig:
        section = config.get("observability", {})
        return cls(
            session_id=session_id,
            base_log_dir=section.get("log_dir", "logs"),
            level=section.get("log_level", "INFO"),
            log_format="text" if section.get("log_format") == "text" else "json",
            redact_secrets=bool(section.get("redact_secrets", True)),
        )


class _CorrelatingQueueHandler(logging.handlers.QueueHandler):
    """Attach bound correlation fields at emit time; never block when the queue is full."""

    def __init__(self, log_queue: queue.Queue[Any], on_drop: Callable[[], None]) -> None:
        super().__init__(log_queue)
        self._on_drop = on_drop

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        bound = get_correlation_context()
        if bound:
            record.correlation = bound
        return super().prepare(record)

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self._on_drop()


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record with correlation fields lifted to the top level."""

    def __init__(self, session_id: str, redactor: LogRedactor) -> None:
        super().__init__()
        self._session_id = session_id
        self._redact = redactor

    def format(self, record: logging.LogRecord) -> str:
        line: dict[str, JSONValue] = {
            "timestamp": _utc_iso(datetime.fromtimestamp(record.created, tz=UTC)),
            "level": record.levelname,
            "logger": record.name,
            "message": self._redact(record.getMessage()),
            "session_id": self._session_id,
        }
        line.update(getattr(record, "correlation", {}))
        for name in CORRELATION_FIELDS:
            value = getattr(record, name, None)
            if isinstance(value, str) and value.strip():
                line[name] = value.strip()

        fields = {
            key: _jsonable(value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES
            and key not in CORRELATION_FIELDS
            and not key.startswith("_")
        }
        if fields:
            line["fields"] = self._redact(fields)
        if record.exc_info:
            line["exception"] = self._redact(self.formatException(record.exc_info))
        return json.dumps(line, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class LoggingHandle:
    """A running logging session; owns the queue listener and file sink."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        session_id: str,
        log_path: Path,
        queue_handler: logging.Handler,
        listener: logging.handlers.QueueListener,
        sinks: tuple[logging.Handler, ...],
    ) -> None:
        self.logger = logger
        self.session_id = session_id
        self.log_path = log_path
        self._queue_handler = queue_handler
        self._listener = listener
        self._sinks = sinks
        self._lock = threading.Lock()
        self._dropped = 0
        self._closed = False

    @property
    def dropped_records(self) -> int:
        with self._lock:
            return self._dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def count_drop(self) -> None:
        with self._lock:
            self._dropped += 1

    def shutdown(self) -> None:
        """Drain queued records into the sinks, then detach and close them."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._listener.stop()
        self.logger.removeHandler(self._queue_handler)
        self._queue_handler.close()
        for sink in self._sinks:
            sink.close()


def setup_structured_logging(config: LoggingConfig) -> LoggingHandle:
    """Start a logging session, replacing any session that is still active."""
    global _active
    shutdown_logging()

    session_id = _text(config.session_id, "session_id")
    filename = _text(config.log_filename, "log_filename")
    if Path(filename).name != filename:
        raise ValueError("log_filename must not include path separators")
    if config.queue_size < 1:
        raise ValueError("queue_size must be >= 1")
    level = _level(config.level)

    log_path = Path(config.base_log_dir) / session_id / filename
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter: logging.Formatter
    if config.log_format == "text":
        formatter = logging.Formatter(_TEXT_FORMAT)
    else:
        redactor = default_log_redactor if config.redact_secrets else _keep
        formatter = JsonLineFormatter(session_id, redactor)

    sinks: list[logging.Handler] = [logging.FileHandler(log_path, encoding="utf-8")]
    if config.log_to_stderr:
        sinks.append(logging.StreamHandler())
    for sink in sinks:
        sink.setLevel(level)
        sink.setFormatter(formatter)

    logger = logging.getLogger(_text(config.logger_name, "logger_name"))
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    logger.setLevel(level)
    logger.propagate = False

    log_queue: queue.Queue[Any] = queue.Queue(maxsize=config.queue_size)
    drops: list[Callable[[], None]] = []
    queue_handler = _CorrelatingQueueHandler(log_queue, lambda: drops[0]())
    queue_handler.setLevel(level)
    listener = logging.handlers.QueueListener(log_queue, *sinks, respect_handler_level=True)

    handle = LoggingHandle(
        logger=logger,
        session_id=session_id,
        log_path=log_path,
        queue_handler=queue_handler,
        listener=listener,
        sinks=tuple(sinks),
    )
    drops.append(handle.count_drop)
    listener.start()
    logger.addHandler(queue_handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    with _active_lock:
        _active = handle
    _install_atexit()
    return handle


def shutdown_logging(handle: LoggingHandle | None = None) -> None:
    """Shut down ``handle``, or the active session when none is given."""
    global _active
    with _active_lock:
        target = handle if handle is not None else _active
        if target is None:
            return
        if _active is target:
            _active = None
    target.shutdown()


def get_active_logging_handle() -> LoggingHandle | None:
    with _active_lock:
        return _active


def get_correlation_context() -> dict[str, str]:
    return {key: str(value) for key, value in structlog.contextvars.get_contextvars().items()}


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """
    Bind correlation fields for the duration of the block.

    A ``None`` value unbinds that field inside the block. Previous bindings are
    restored on exit.
    """
    previous = structlog.contextvars.get_contextvars()
    binds = {key: _text(value, f"correlation field {key!r}") for key, value in fields.items() if value is not None}
    structlog.contextvars.unbind_contextvars(*(key for key, value in fields.items() if value is None))
    structlog.contextvars.bind_contextvars(**binds)
    try:
        yield
    finally:
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(**previous)


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Redact secret-named keys at any depth and inline credentials inside strings."""
    if isinstance(value, str):
        masked = _SECRET_ASSIGNMENT.sub(lambda match: f"{match.group(1)}{match.group(2)}{REDACTED}", value)
        return _BEARER.sub(f"Bearer {REDACTED}", masked)
    if isinstance(value, list):
        return [default_log_redactor(item) for item in value]
    if isinstance(value, dict):
        return {
            key: REDACTED if _SECRET_KEY.search(key) else default_log_redactor(item)
            for key, item in value.items()
        }
    return value


def _keep(value: JSONValue) -> JSONValue:
    return value


def _install_atexit() -> None:
    global _atexit_installed
    if not _atexit_installed:
        atexit.register(shutdown_logging)
        _atexit_installed = True


def _text(value: object, name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string, got {type(value).__name__}")
    if not value.strip():
        raise ValueError(f"{name} must not be empty")
    return value.strip()


def _level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    resolved = logging.getLevelName(value.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"unsupported logging level {value!r}")
    return resolved


def _utc_iso(moment: datetime) -> str:
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _jsonable(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return _jsonable(value.value)
    if isinstance(value, datetime):
        return _utc_iso(value if value.tzinfo else value.replace(tzinfo=UTC))
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_jsonable(item) for item in value]
        return sorted(items, key=repr) if isinstance(value, (set, frozenset)) else items
    return str(value) if isinstance(value, Path) else repr(value)


__all__ = [
    "CORRELATION_FIELDS",
    "JsonLineFormatter",
    "LogFormat",
    "LogRedactor",
    "LoggingConfig",
    "LoggingHandle",
    "correlation_scope",
    "default_log_redactor",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_structured_logging",
    "shutdown_logging",
]
