import enum
import logging
import re
from collections import Counter
from typing import Iterable, List, Optional, Sequence, Tuple

from .._helpers import nearest_rank
from ..errors import ConfigurationError
from ..model import AnalysisResult, LogEntry, Severity

logger = logging.getLogger(__name__)


@enum.unique
class QueryType(str, enum.Enum):
    """Statement class, from the first keyword of the statement."""

    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    DDL = "DDL"
    """CREATE, ALTER, DROP and TRUNCATE."""
    OTHER = "OTHER"
    """BEGIN, COMMIT, VACUUM, EXPLAIN, etc."""


_keyword_types = {
    "SELECT": QueryType.SELECT,
    "INSERT": QueryType.INSERT,
    "UPDATE": QueryType.UPDATE,
    "DELETE": QueryType.DELETE,
    "CREATE": QueryType.DDL,
    "ALTER": QueryType.DDL,
    "DROP": QueryType.DDL,
    "TRUNCATE": QueryType.DDL,
}
_first_word_re = re.compile(r"[\s(]*([A-Za-z]+)")


def classify_query(sql: str) -> QueryType:
    """Classify a statement by its first keyword, case insensitive."""
    match = _first_word_re.match(sql)
    if not match:
        return QueryType.OTHER
    return _keyword_types.get(match.group(1).upper(), QueryType.OTHER)


# Order matters: strings may contain anything, numbers must not eat
# parameter numbers.
_normalizations = [
    # Single-quoted string, with '' escapes and optional E prefix.
    (re.compile(r"(?<!\w)[Ee]?'(?:[^']|'')*'"), "S"),
    # Positional parameter.
    (re.compile(r"\$\d+"), "?"),
    # Integer or decimal number, not part of an identifier.
    (re.compile(r"\b\d+(?:\.\d+)?\b"), "N"),
    (re.compile(r"\s+"), " "),
]


def normalize_query(sql: str) -> str:
    """Rewrite literals out of a statement.

    ``$1`` parameters become ``?``, string literals become ``S`` and numbers
    become ``N``. Whitespace runs are collapsed. Normalizing a normalized
    statement returns it unchanged.

    >>> normalize_query("SELECT * FROM users WHERE id = $1 AND name = 'Bob'")
    'SELECT * FROM users WHERE id = ? AND name = S'
    """
    for pattern, replacement in _normalizations:
        sql = pattern.sub(replacement, sql)
    return sql.strip()


_duration_statement_re = re.compile(
    r"duration: [\d.]+ ms\s+(?:statement|(?:execute|parse|bind) [^:]*): (?P<sql>.*)",
    re.DOTALL,
)


def statement_text(entry: LogEntry) -> Optional[str]:
    """Statement of entry, if any.

    This is :attr:`~pglogstats.model.LogEntry.query` for ``STATEMENT``
    entries, or the statement following the duration of a ``duration: X ms
    statement: …`` message.
    """
    if entry.query is not None:
        return entry.query
    match = _duration_statement_re.match(entry.message)
    if match:
        return match.group("sql").strip()
    return None


_error_severities = {Severity.ERROR, Severity.FATAL, Severity.PANIC}
_connection_phrases = [
    "connection received:",
    "connection authorized:",
    "connection authenticated:",
    "disconnection:",
]


def is_connection_event(message: str) -> bool:
    return any(phrase in message for phrase in _connection_phrases)


class QueryAnalyzer:
    """Classify and aggregate statements from log entries.

    Each entry is considered on its own: statements are counted from
    ``STATEMENT`` entries, durations from entries carrying
    :attr:`~pglogstats.model.LogEntry.duration_ms`. The analyzer does not pair
    statements with durations.

    :param slow_query_threshold: milliseconds above which
        :meth:`find_slow_queries` reports an entry.
    :param max_slow_queries: length of
        :attr:`~pglogstats.model.AnalysisResult.slowest_queries`.
    :param max_frequent_queries: length of
        :attr:`~pglogstats.model.AnalysisResult.most_frequent_queries`.

    .. automethod:: analyze
    .. automethod:: find_slow_queries
    .. automethod:: error_rate
    """

    classify_query = staticmethod(classify_query)
    normalize_query = staticmethod(normalize_query)

    def __init__(
        self,
        slow_query_threshold: float = 1000.0,
        max_slow_queries: int = 10,
        max_frequent_queries: int = 20,
    ) -> None:
        if slow_query_threshold < 0:
            raise ConfigurationError(
                "slow_query_threshold must be positive, got %s" % slow_query_threshold
            )
        if max_slow_queries < 0 or max_frequent_queries < 0:
            raise ConfigurationError("query list lengths must be positive")
        self.slow_query_threshold = slow_query_threshold
        self.max_slow_queries = max_slow_queries
        self.max_frequent_queries = max_frequent_queries

    def __repr__(self) -> str:
        return "<%s threshold=%sms>" % (
            self.__class__.__name__,
            self.slow_query_threshold,
        )

    def analyze(self, entries: Iterable[LogEntry]) -> AnalysisResult:
        """Compute query statistics over entries.

        Empty input gives a zeroed result.
        """
        total_queries = 0
        query_types: Counter = Counter()
        frequencies: Counter = Counter()
        timed: List[Tuple[str, float]] = []
        error_count = 0
        connection_count = 0

        for entry in entries:
            if entry.severity == Severity.STATEMENT:
                sql = entry.query if entry.query is not None else entry.message
                total_queries += 1
                query_types[classify_query(sql)] += 1
                frequencies[normalize_query(sql)] += 1
            if entry.duration_ms is not None:
                sql = statement_text(entry)
                label = normalize_query(sql) if sql is not None else entry.message
                timed.append((label, entry.duration_ms))
            if entry.severity in _error_severities:
                error_count += 1
            if is_connection_event(entry.message):
                connection_count += 1

        durations = sorted(d for _, d in timed)
        total_duration = sum(durations)
        # sorted() is stable: ties keep first-seen order.
        slowest = sorted(timed, key=lambda t: t[1], reverse=True)

        logger.debug(
            "Analyzed %d statements, %d durations, %d errors.",
            total_queries,
            len(durations),
            error_count,
        )
        return AnalysisResult(
            total_queries=total_queries,
            query_types=dict(query_types),
            most_frequent_queries=frequencies.most_common(self.max_frequent_queries),
            slowest_queries=slowest[: self.max_slow_queries],
            total_duration=total_duration,
            average_duration=total_duration / len(durations) if durations else 0.0,
            min_duration=durations[0] if durations else 0.0,
            max_duration=durations[-1] if durations else 0.0,
            p95_duration=nearest_rank(durations, 95),
            p99_duration=nearest_rank(durations, 99),
            error_count=error_count,
            connection_count=connection_count,
        )

    def find_slow_queries(
        self, entries: Iterable[LogEntry], threshold_ms: Optional[float] = None
    ) -> List[LogEntry]:
        """Entries lasting more than ``threshold_ms``, slowest first.

        :param threshold_ms: defaults to analyzer's ``slow_query_threshold``.
        """
        if threshold_ms is None:
            threshold_ms = self.slow_query_threshold
        slow = [
            e
            for e in entries
            if e.duration_ms is not None and e.duration_ms > threshold_ms
        ]
        return sorted(slow, key=lambda e: e.duration_ms or 0.0, reverse=True)

    def error_rate(self, entries: Sequence[LogEntry]) -> float:
        """Ratio of ERROR, FATAL and PANIC entries over all entries."""
        if not entries:
            return 0.0
        errors = sum(1 for e in entries if e.severity in _error_severities)
        return errors / len(entries)


def analyze_queries(
    entries: Iterable[LogEntry],
    slow_query_threshold: float = 1000.0,
    max_slow_queries: int = 10,
    max_frequent_queries: int = 20,
) -> AnalysisResult:
    """Helper around :class:`QueryAnalyzer`."""
    analyzer = QueryAnalyzer(
        slow_query_threshold=slow_query_threshold,
        max_slow_queries=max_slow_queries,
        max_frequent_queries=max_frequent_queries,
    )
    return analyzer.analyze(entries)
