"""Rank-aware logging backends for a simulation run.

A run writes three named backends, all attached to the ``flowsim`` package
logger so that every module-level ``logger`` reaches them:

``PRTLOG``
    Primary report file ``<base>.PRT`` (everything except debug messages).
``STREAMLOG``
    Console output on stdout (info and above).
``DEBUGLOG``
    Hidden debug file ``.<base>.DEBUG`` (all severities).

Under a distributed run the non-zero ranks insert their rank into the file
names (``<base>.<rank>.PRT``) so that concurrent processes never write the
same file; :mod:`flowsim.merge` folds those fragments back afterwards.

The backends live in an explicit :class:`LoggingContext` rather than in
module globals.  The context is a context manager and
:meth:`LoggingContext.remove_all_backends` is idempotent, so teardown can be
guaranteed on every exit path.
"""
from __future__ import annotations

import enum
import logging
import sys
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, TextIO, Tuple

from . import constants
from .schema import MessageLimits
from .topology import ProcessTopology

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "flowsim"

NOTE = 15
PROBLEM = 45
BUG = 55
logging.addLevelName(NOTE, "NOTE")
logging.addLevelName(PROBLEM, "PROBLEM")
logging.addLevelName(BUG, "BUG")


class MessageType(enum.IntEnum):
    """Message severities, ordered so that a level threshold acts as a filter."""

    DEBUG = logging.DEBUG
    NOTE = 15
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    PROBLEM = 45
    BUG = 55

    @property
    def label(self) -> str:
        return self.name.capitalize()


PRIMARY_BACKEND = "PRTLOG"
STREAM_BACKEND = "STREAMLOG"
DEBUG_BACKEND = "DEBUGLOG"

#: Per-tag limit applied to the console backend
STREAM_TAG_LIMIT = 10

_PREFIXES = {
    MessageType.WARNING: "Warning: ",
    MessageType.ERROR: "Error: ",
    MessageType.PROBLEM: "Problem: ",
    MessageType.BUG: "Bug: ",
}
_COLORS = {
    MessageType.WARNING: "\033[33;1m",
    MessageType.ERROR: "\033[31;1m",
    MessageType.PROBLEM: "\033[35;1m",
    MessageType.BUG: "\033[31;1m",
}
_RESET = "\033[0m"


def file_message(filename: Any, lineno: int, message: str) -> str:
    """Attach a source location to ``message``."""

    return f"\nIn file {filename}, line {lineno}\n{message}"


def limits_from_policy(limits: MessageLimits) -> Dict[int, int]:
    """Map the message-limit policy onto severity levels."""

    return {
        MessageType.NOTE: limits.comment_print_limit,
        MessageType.INFO: limits.message_print_limit,
        MessageType.WARNING: limits.warning_print_limit,
        MessageType.ERROR: limits.error_print_limit,
        MessageType.PROBLEM: limits.problem_print_limit,
        MessageType.BUG: limits.bug_print_limit,
    }


class LimitDecision(enum.Enum):
    PRINT = "print"
    JUST_OVER_TAG = "just_over_tag"
    JUST_OVER_CATEGORY = "just_over_category"
    SUPPRESS = "suppress"


class MessageLimiter:
    """Count messages per tag and per severity for a single backend."""

    def __init__(
        self,
        tag_limit: Optional[int] = None,
        category_limits: Optional[Mapping[int, int]] = None,
    ) -> None:
        self.tag_limit = tag_limit
        self.category_limits = dict(category_limits or {})
        self._tag_counts: Dict[str, int] = defaultdict(int)
        self._category_counts: Dict[int, int] = defaultdict(int)

    def check(self, record: logging.LogRecord) -> LimitDecision:
        tag = getattr(record, "tag", None)
        if tag is not None and self.tag_limit is not None:
            self._tag_counts[tag] += 1
            count = self._tag_counts[tag]
            if count == self.tag_limit + 1:
                return LimitDecision.JUST_OVER_TAG
            if count > self.tag_limit + 1:
                return LimitDecision.SUPPRESS
        limit = self.category_limits.get(record.levelno)
        self._category_counts[record.levelno] += 1
        if limit is None:
            return LimitDecision.PRINT
        count = self._category_counts[record.levelno]
        if count <= limit:
            return LimitDecision.PRINT
        if count == limit + 1:
            return LimitDecision.JUST_OVER_CATEGORY
        return LimitDecision.SUPPRESS

    def count(self, levelno: int) -> int:
        return self._category_counts.get(levelno, 0)


class SimpleMessageFormatter(logging.Formatter):
    """Plain message text with a severity prefix for warnings and worse."""

    def __init__(self, use_prefix: bool = True, use_color: bool = False) -> None:
        super().__init__()
        self.use_prefix = use_prefix
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        text = record.getMessage()
        if record.exc_info:
            text = f"{text}\n{self.formatException(record.exc_info)}"
        try:
            mtype: Optional[MessageType] = MessageType(record.levelno)
        except ValueError:
            mtype = None
        if self.use_prefix and mtype in _PREFIXES:
            text = _PREFIXES[mtype] + text
        if self.use_color and mtype in _COLORS:
            text = f"{_COLORS[mtype]}{text}{_RESET}"
        return text


class _LimitedBackend:
    """Mixin applying a :class:`MessageLimiter` before a handler emits."""

    limiter: Optional[MessageLimiter] = None

    def handle(self, record: logging.LogRecord) -> Any:
        self._count(record)
        if self.limiter is not None:
            decision = self.limiter.check(record)
            if decision is LimitDecision.SUPPRESS:
                return False
            if decision is LimitDecision.JUST_OVER_TAG:
                record = _notice(record, f"Message limit reached for message tag: {record.tag}")
            elif decision is LimitDecision.JUST_OVER_CATEGORY:
                label = logging.getLevelName(record.levelno).capitalize()
                record = _notice(record, f"Message limit reached for message category: {label}")
        return super().handle(record)  # type: ignore[misc]

    def _count(self, record: logging.LogRecord) -> None:
        return None


def _notice(record: logging.LogRecord, text: str) -> logging.LogRecord:
    # Records are shared between backends; build a copy instead of mutating.
    payload = dict(record.__dict__)
    payload.update(msg=text, args=(), exc_info=None, exc_text=None)
    return logging.makeLogRecord(payload)


class StreamBackend(_LimitedBackend, logging.StreamHandler):
    """Console backend."""

    def __init__(self, stream: Optional[TextIO] = None, limiter: Optional[MessageLimiter] = None) -> None:
        super().__init__(stream if stream is not None else sys.stdout)
        self.limiter = limiter
        self.setFormatter(SimpleMessageFormatter())


class PrtFileBackend(_LimitedBackend, logging.FileHandler):
    """File backend that can append a severity summary when it is closed."""

    def __init__(
        self,
        path: Path,
        *,
        limiter: Optional[MessageLimiter] = None,
        print_summary: bool = False,
    ) -> None:
        super().__init__(str(path), mode="w", encoding="utf-8", delay=True)
        self.limiter = limiter
        self.setFormatter(SimpleMessageFormatter())
        self.print_summary = print_summary
        self.message_counts: Dict[int, int] = defaultdict(int)
        self._summary_written = False

    def _count(self, record: logging.LogRecord) -> None:
        self.message_counts[record.levelno] += 1

    def _open(self):
        # The output directory is created on first write only.
        Path(self.baseFilename).parent.mkdir(parents=True, exist_ok=True)
        return super()._open()

    def summary(self) -> str:
        rows = (
            ("Warnings", MessageType.WARNING),
            ("Problems", MessageType.PROBLEM),
            ("Errors", MessageType.ERROR),
            ("Bugs", MessageType.BUG),
        )
        lines = ["", "", "Error summary:"]
        lines.extend(f"{label:<18}{self.message_counts.get(level, 0)}" for label, level in rows)
        return "\n".join(lines) + "\n"

    def close(self) -> None:
        self.acquire()
        try:
            if self.print_summary and not self._summary_written:
                if self.stream is None:
                    self.stream = self._open()
                self.stream.write(self.summary())
                self.flush()
                self._summary_written = True
        finally:
            self.release()
        super().close()


class LoggingContext:
    """Named logging backends owned by one pipeline run."""

    def __init__(self, logger_name: str = PACKAGE_LOGGER) -> None:
        self.logger = logging.getLogger(logger_name)
        self._backends: Dict[str, logging.Handler] = {}
        self._saved: Optional[Tuple[int, bool]] = None

    def __enter__(self) -> "LoggingContext":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.remove_all_backends()

    def add_backend(self, name: str, handler: logging.Handler) -> logging.Handler:
        if name in self._backends:
            raise ValueError(f"Logging backend {name!r} already exists")
        if self._saved is None:
            self._saved = (self.logger.level, self.logger.propagate)
            self.logger.setLevel(logging.DEBUG)
            self.logger.propagate = False
        handler.set_name(name)
        self._backends[name] = handler
        self.logger.addHandler(handler)
        return handler

    def has_backend(self, name: str) -> bool:
        return name in self._backends

    def get_backend(self, name: str) -> logging.Handler:
        return self._backends[name]

    @property
    def backend_names(self) -> Tuple[str, ...]:
        return tuple(self._backends)

    def add_message(
        self,
        message_type: int,
        text: str,
        *,
        tag: Optional[str] = None,
    ) -> None:
        extra = {"tag": tag} if tag is not None else None
        self.logger.log(int(message_type), text, extra=extra)

    def remove_all_backends(self) -> None:
        """Close and detach every backend; safe to call more than once."""

        for handler in list(self._backends.values()):
            self.logger.removeHandler(handler)
            handler.close()
        self._backends.clear()
        if self._saved is not None:
            level, propagate = self._saved
            self.logger.setLevel(level)
            self.logger.propagate = propagate
            self._saved = None


def log_base_name(deck_filename: Any) -> str:
    """Base name shared by every log artifact of a case."""

    return Path(str(deck_filename)).stem


def log_file_names(output_dir: Path, base_name: str, topology: ProcessTopology) -> Tuple[Path, Path]:
    """Return ``(prt_path, debug_path)`` for this rank."""

    rank_marker = f".{topology.rank}" if topology.must_distribute and topology.rank != 0 else ""
    prt = Path(output_dir) / f"{base_name}{rank_marker}{constants.PRT_SUFFIX}"
    debug = Path(output_dir) / f".{base_name}{rank_marker}{constants.DEBUG_SUFFIX}"
    return prt, debug


def setup_logging(
    deck_filename: Any,
    output_dir: Path,
    topology: ProcessTopology,
    limits: Optional[MessageLimits] = None,
    *,
    stream: Optional[TextIO] = None,
) -> LoggingContext:
    """Create the PRT, console and debug backends for this rank."""

    policy = limits_from_policy(limits or MessageLimits())
    prt_path, debug_path = log_file_names(output_dir, log_base_name(deck_filename), topology)

    context = LoggingContext()
    try:
        _add_backends(context, prt_path, debug_path, topology, policy, stream)
    except Exception:
        context.remove_all_backends()
        raise

    if topology.is_output_rank:
        context.add_message(MessageType.DEBUG, "\n---------------    Reading parameters     ---------------\n")
    return context


def _add_backends(
    context: LoggingContext,
    prt_path: Path,
    debug_path: Path,
    topology: ProcessTopology,
    policy: Dict[int, int],
    stream: Optional[TextIO],
) -> None:
    prt = PrtFileBackend(
        prt_path,
        limiter=MessageLimiter(category_limits=policy),
        print_summary=topology.is_output_rank,
    )
    prt.setLevel(MessageType.NOTE)
    prt.setFormatter(SimpleMessageFormatter(use_color=False))
    context.add_backend(PRIMARY_BACKEND, prt)

    console = StreamBackend(stream, limiter=MessageLimiter(STREAM_TAG_LIMIT, policy))
    console.setLevel(MessageType.INFO)
    is_tty = bool(getattr(console.stream, "isatty", lambda: False)())
    console.setFormatter(SimpleMessageFormatter(use_color=is_tty))
    context.add_backend(STREAM_BACKEND, console)

    debug = PrtFileBackend(debug_path)
    debug.setLevel(MessageType.DEBUG)
    debug.setFormatter(SimpleMessageFormatter(use_color=False))
    context.add_backend(DEBUG_BACKEND, debug)


def forward_messages(context: LoggingContext, messages: Iterable[Any]) -> int:
    """Forward parse-layer messages into the live backends.

    Each message exposes ``mtype``, ``text`` and an optional ``location`` with
    ``filename`` and ``lineno``.
    """

    count = 0
    for msg in messages:
        text = msg.text
        location = getattr(msg, "location", None)
        if location is not None:
            text = file_message(location.filename, location.lineno, text)
        context.add_message(MessageType(int(msg.mtype)), text)
        count += 1
    return count


__all__ = [
    "BUG",
    "DEBUG_BACKEND",
    "LimitDecision",
    "LoggingContext",
    "MessageLimiter",
    "MessageType",
    "NOTE",
    "PRIMARY_BACKEND",
    "PROBLEM",
    "PrtFileBackend",
    "STREAM_BACKEND",
    "SimpleMessageFormatter",
    "StreamBackend",
    "file_message",
    "forward_messages",
    "limits_from_policy",
    "log_base_name",
    "log_file_names",
    "setup_logging",
]
