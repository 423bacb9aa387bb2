from datetime import datetime, timedelta

import pytest


def test_severity_from_keyword():
    from pglogstats.model import Severity

    assert Severity.DEBUG is Severity.from_keyword("DEBUG1")
    assert Severity.DEBUG is Severity.from_keyword("DEBUG")
    assert Severity.LOG is Severity.from_keyword("log")
    assert Severity.STATEMENT is Severity.from_keyword("STATEMENT")
    assert Severity.UNKNOWN is Severity.from_keyword("DETAIL")
    assert Severity.UNKNOWN is Severity.from_keyword("CONTEXT")
    assert Severity.UNKNOWN is Severity.from_keyword("DURATION")
    assert "WARNING" == Severity.from_keyword("WARNING")

    assert Severity.ERROR.is_error
    assert Severity.FATAL.is_error
    assert Severity.PANIC.is_error
    assert not Severity.WARNING.is_error
    assert not Severity.STATEMENT.is_error


def test_log_entry():
    import dataclasses
    from pglogstats.model import LogEntry, Severity

    entry = LogEntry(
        timestamp=datetime(2024, 8, 15, 10, 30),
        process_id=12345,
        severity=Severity.STATEMENT,
        message="statement: SELECT 1\n  FROM t",
        query="SELECT 1\n  FROM t",
    )
    assert entry.user is None
    assert entry.duration_ms is None
    assert "\n" not in repr(entry)
    assert "STATEMENT" in repr(entry)
    assert 12345 == entry.as_dict()["process_id"]

    with pytest.raises(dataclasses.FrozenInstanceError):
        entry.query = "SELECT 2"

    with pytest.raises(ValueError):
        LogEntry(
            timestamp=datetime(2024, 8, 15, 10, 30),
            process_id=1,
            severity=Severity.STATEMENT,
            message="",
            query="SELECT 1",
            duration_ms=1.0,
        )


def test_analysis_result_as_dict():
    import json
    from pglogstats._helpers import JSONDateEncoder
    from pglogstats.analytics import QueryType
    from pglogstats.model import AnalysisResult

    result = AnalysisResult(
        total_queries=3,
        query_types={QueryType.SELECT: 2, QueryType.DDL: 1},
        most_frequent_queries=[("SELECT N", 2)],
    )
    values = result.as_dict()
    assert {"SELECT": 2, "DDL": 1} == values["query_types"]
    assert all(type(k) is str for k in values["query_types"])
    assert 3 == values["total_queries"]

    payload = json.dumps(values, cls=JSONDateEncoder)
    assert '"SELECT N"' in payload


def test_timing_analysis_as_dict():
    import json
    from pglogstats._helpers import JSONDateEncoder
    from pglogstats.model import TimingAnalysis

    analysis = TimingAnalysis(
        total_samples=1,
        hourly_patterns={10: 4.0},
        bucket_size=timedelta(hours=6),
    )
    values = analysis.as_dict()
    assert {10: 4.0} == values["hourly_patterns"]

    payload = json.loads(json.dumps(values, cls=JSONDateEncoder))
    assert "21600s" == payload["bucket_size"]
    assert {"10": 4.0} == payload["hourly_patterns"]


def test_results_are_read_only():
    from pglogstats.model import AnalysisResult, TimingAnalysis

    frequent = [("SELECT N", 2)]
    types = {"SELECT": 2}
    result = AnalysisResult(
        query_types=types,
        most_frequent_queries=frequent,
        slowest_queries=[["SELECT N", 3.0]],
    )
    types["DDL"] = 1
    frequent.append(("BEGIN", 1))
    assert {"SELECT": 2} == result.query_types
    assert (("SELECT N", 2),) == result.most_frequent_queries
    assert (("SELECT N", 3.0),) == result.slowest_queries

    with pytest.raises(TypeError):
        result.query_types["DDL"] = 1
    with pytest.raises(AttributeError):
        result.most_frequent_queries.append(("BEGIN", 1))

    analysis = TimingAnalysis(hourly_patterns={10: 4.0}, daily_patterns={0: 4.0})
    with pytest.raises(TypeError):
        analysis.hourly_patterns[11] = 5.0
    with pytest.raises(TypeError):
        analysis.daily_patterns[1] = 5.0
    assert TimingAnalysis(hourly_patterns={10: 4.0}, daily_patterns={0: 4.0}) == (
        analysis
    )
    assert isinstance(analysis.as_dict()["daily_patterns"], dict)
