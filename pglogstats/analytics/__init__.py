"""\
.. currentmodule:: pglogstats.analytics

Analyzers consume the sequence of :class:`~pglogstats.model.LogEntry` produced
by :mod:`pglogstats.log`. Each analyzer makes its own pass over the entries and
returns an independent, immutable result. Analyzing empty input is not an
error: it gives zeroed statistics.

Percentiles use the nearest-rank method: sort the sample, take the value at
index ``ceil(p / 100 * n) - 1``.

.. autoclass:: QueryAnalyzer
.. autoclass:: QueryType
.. autofunction:: analyze_queries
.. autofunction:: classify_query
.. autofunction:: normalize_query
.. autoclass:: TimingAnalyzer
.. autofunction:: analyze_timing
.. autofunction:: calculate_percentiles
"""

from .queries import (
    QueryAnalyzer,
    QueryType,
    analyze_queries,
    classify_query,
    normalize_query,
)
from .timing import TimingAnalyzer, analyze_timing, calculate_percentiles

__all__ = [
    o.__name__  # type: ignore[attr-defined]
    for o in [
        QueryAnalyzer,
        QueryType,
        TimingAnalyzer,
        analyze_queries,
        analyze_timing,
        calculate_percentiles,
        classify_query,
        normalize_query,
    ]
]
