"""\
.. currentmodule:: pglogstats.model

Value types shared by the log parser and the analyzers. Objects defined here
carry no parsing nor aggregation logic and are never mutated once built.

.. autoclass:: Severity
    :members:
.. autoclass:: LogEntry
.. autoclass:: AnalysisResult
.. autoclass:: TimingAnalysis
"""

import dataclasses
import enum
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


@enum.unique
class Severity(str, enum.Enum):
    """Severity of a log entry.

    ``STATEMENT`` and ``DURATION`` are not PostgreSQL levels. The parser uses
    them for ``statement:`` and ``duration:`` messages since statement text
    and timing are logged on distinct lines.
    """

    DEBUG = "DEBUG"
    LOG = "LOG"
    INFO = "INFO"
    NOTICE = "NOTICE"
    WARNING = "WARNING"
    ERROR = "ERROR"
    FATAL = "FATAL"
    PANIC = "PANIC"
    STATEMENT = "STATEMENT"
    DURATION = "DURATION"
    UNKNOWN = "UNKNOWN"
    """Any keyword not listed above: DETAIL, HINT, CONTEXT, etc."""

    @classmethod
    def from_keyword(cls, keyword: str) -> "Severity":
        """Map a log level keyword as written by PostgreSQL."""
        keyword = keyword.upper()
        if keyword.startswith("DEBUG"):
            return cls.DEBUG
        try:
            severity = cls(keyword)
        except ValueError:
            return cls.UNKNOWN
        if severity is cls.DURATION:
            # Never written as a level keyword.
            return cls.UNKNOWN
        return severity

    @property
    def is_error(self) -> bool:
        return self in (Severity.ERROR, Severity.FATAL, Severity.PANIC)


@dataclasses.dataclass(frozen=True)
class LogEntry:
    """One logical log record, possibly spanning several physical lines.

    .. attribute:: timestamp

        :type: :class:`datetime.datetime`

    .. attribute:: process_id

        Backend PID from ``%p``, ``None`` if the prefix lacks it.

    .. attribute:: severity

        :type: :class:`Severity`

    .. attribute:: message

        Message text following the level keyword. Continuation lines are
        joined with newlines.

    .. attribute:: query

        Statement text of ``STATEMENT`` entries, ``None`` otherwise.

    .. attribute:: duration_ms

        Duration of ``DURATION`` entries in milliseconds, ``None`` otherwise.

    ``user``, ``database``, ``client_host`` and ``application_name`` are
    ``None`` unless the prefix provides them.
    """

    timestamp: datetime
    process_id: Optional[int]
    severity: Severity
    message: str
    user: Optional[str] = None
    database: Optional[str] = None
    client_host: Optional[str] = None
    application_name: Optional[str] = None
    query: Optional[str] = None
    duration_ms: Optional[float] = None

    def __post_init__(self) -> None:
        if self.query is not None and self.duration_ms is not None:
            raise ValueError("a log entry cannot carry both query and duration")

    def __repr__(self) -> str:
        return "<%s %s: %.32s...>" % (
            self.__class__.__name__,
            self.severity.value,
            self.message.replace("\n", ""),
        )

    def as_dict(self) -> Dict[str, Any]:
        """Returns entry fields as a :class:`dict`."""
        return dataclasses.asdict(self)


def _freeze(obj: Any, name: str) -> None:
    # Read-only copy of a mapping field of a frozen dataclass.
    object.__setattr__(obj, name, MappingProxyType(dict(getattr(obj, name))))


def _fields(obj: Any) -> Dict[str, Any]:
    return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}


@dataclasses.dataclass(frozen=True)
class AnalysisResult:
    """Query statistics computed by :class:`~pglogstats.analytics.QueryAnalyzer`.

    Durations are in milliseconds. Query keys are normalized statements.
    Query lists are tuples and mappings are read-only.
    """

    total_queries: int = 0
    query_types: Mapping[str, int] = dataclasses.field(default_factory=dict)
    most_frequent_queries: Tuple[Tuple[str, int], ...] = ()
    slowest_queries: Tuple[Tuple[str, float], ...] = ()
    total_duration: float = 0.0
    average_duration: float = 0.0
    min_duration: float = 0.0
    max_duration: float = 0.0
    p95_duration: float = 0.0
    p99_duration: float = 0.0
    error_count: int = 0
    connection_count: int = 0

    def __post_init__(self) -> None:
        _freeze(self, "query_types")
        for name in ("most_frequent_queries", "slowest_queries"):
            object.__setattr__(
                self, name, tuple(tuple(item) for item in getattr(self, name))
            )

    def as_dict(self) -> Dict[str, Any]:
        values = _fields(self)
        values["query_types"] = {
            getattr(k, "value", k): v for k, v in self.query_types.items()
        }
        return values


@dataclasses.dataclass(frozen=True)
class TimingAnalysis:
    """Latency distribution computed by :class:`~pglogstats.analytics.TimingAnalyzer`.

    ``hourly_patterns`` maps hour of day to mean duration. ``daily_patterns``
    maps the bucket index, counted from the midnight preceding the first
    sample, to mean duration.
    """

    total_samples: int = 0
    average_response_time: float = 0.0
    min_response_time: float = 0.0
    max_response_time: float = 0.0
    p95_response_time: float = 0.0
    p99_response_time: float = 0.0
    hourly_patterns: Mapping[int, float] = dataclasses.field(default_factory=dict)
    daily_patterns: Mapping[int, float] = dataclasses.field(default_factory=dict)
    bucket_size: timedelta = timedelta(days=1)

    def __post_init__(self) -> None:
        _freeze(self, "hourly_patterns")
        _freeze(self, "daily_patterns")

    def as_dict(self) -> Dict[str, Any]:
        values = _fields(self)
        values["hourly_patterns"] = dict(self.hourly_patterns)
        values["daily_patterns"] = dict(self.daily_patterns)
        return values
