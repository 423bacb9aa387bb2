import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Sequence, Tuple

from .._helpers import nearest_rank
from ..errors import ConfigurationError
from ..model import LogEntry, Severity, TimingAnalysis

logger = logging.getLogger(__name__)


def calculate_percentiles(
    durations: Iterable[float], percentiles: Sequence[float]
) -> List[Tuple[float, float]]:
    """Nearest-rank percentiles of durations.

    :returns: ``(percentile, value)`` pairs, in the order of ``percentiles``.
        Values are 0 if ``durations`` is empty.

    >>> calculate_percentiles(range(1, 101), [99, 50])
    [(99, 99), (50, 50)]
    """
    ordered = sorted(durations)
    return [(p, nearest_rank(ordered, p)) for p in percentiles]


def _means(groups: Dict[int, List[float]]) -> Dict[int, float]:
    return {k: sum(v) / len(v) for k, v in sorted(groups.items())}


class TimingAnalyzer:
    """Compute latency distribution of log entries, regardless of statements.

    :param bucket_size: width of :attr:`~pglogstats.model.TimingAnalysis.daily_patterns`
        buckets.
    :param use_statement_durations: whether to sample durations of any entry
        carrying :attr:`~pglogstats.model.LogEntry.duration_ms`, not only
        ``DURATION`` entries.
    """

    def __init__(
        self,
        bucket_size: timedelta = timedelta(days=1),
        use_statement_durations: bool = False,
    ) -> None:
        if bucket_size <= timedelta(0):
            raise ConfigurationError(
                "bucket_size must be positive, got %s" % bucket_size
            )
        self.bucket_size = bucket_size
        self.use_statement_durations = use_statement_durations

    def __repr__(self) -> str:
        return "<%s bucket=%s>" % (self.__class__.__name__, self.bucket_size)

    def samples(self, entries: Iterable[LogEntry]) -> List[Tuple[datetime, float]]:
        samples = []
        for entry in entries:
            if entry.duration_ms is None:
                continue
            if entry.severity != Severity.DURATION and not self.use_statement_durations:
                continue
            samples.append((entry.timestamp, entry.duration_ms))
        return samples

    def analyze(self, entries: Iterable[LogEntry]) -> TimingAnalysis:
        """Compute timing statistics over entries.

        Empty input gives a zeroed result. Hours and buckets are computed on
        wall-clock time as written in the log, whatever the zone.
        """
        samples = [(ts.replace(tzinfo=None), d) for ts, d in self.samples(entries)]
        if not samples:
            return TimingAnalysis(bucket_size=self.bucket_size)

        first = min(ts for ts, _ in samples)
        origin = first.replace(hour=0, minute=0, second=0, microsecond=0)
        hours: Dict[int, List[float]] = defaultdict(list)
        buckets: Dict[int, List[float]] = defaultdict(list)
        for ts, duration in samples:
            hours[ts.hour].append(duration)
            buckets[(ts - origin) // self.bucket_size].append(duration)

        durations = sorted(d for _, d in samples)
        (_, p95), (_, p99) = calculate_percentiles(durations, [95, 99])

        logger.debug(
            "Analyzed %d durations over %d buckets.", len(durations), len(buckets)
        )
        return TimingAnalysis(
            total_samples=len(durations),
            average_response_time=sum(durations) / len(durations),
            min_response_time=durations[0],
            max_response_time=durations[-1],
            p95_response_time=p95,
            p99_response_time=p99,
            hourly_patterns=_means(hours),
            daily_patterns=_means(buckets),
            bucket_size=self.bucket_size,
        )

    calculate_percentiles = staticmethod(calculate_percentiles)


def analyze_timing(
    entries: Iterable[LogEntry],
    bucket_size: timedelta = timedelta(days=1),
    use_statement_durations: bool = False,
) -> TimingAnalysis:
    """Helper around :class:`TimingAnalyzer`."""
    analyzer = TimingAnalyzer(
        bucket_size=bucket_size,
        use_statement_durations=use_statement_durations,
    )
    return analyzer.analyze(entries)
