def test_open_or_stdin(mocker):
    from pglogstats._helpers import open_or_stdin

    stdin = object()
    assert open_or_stdin("-", stdin=stdin) is stdin

    open_ = mocker.patch("pglogstats._helpers.open", create=True)
    open_.return_value = fo = object()

    assert open_or_stdin("postgresql.log") is fo
    open_.assert_called_once_with("postgresql.log")


def test_timer():
    from pglogstats._helpers import Timer

    with Timer() as timer:
        pass

    assert timer.start
    assert timer.start.tzinfo
    assert timer.delta is not None


def test_format_timedelta():
    from datetime import timedelta
    from pglogstats._helpers import format_timedelta

    assert "5s" == format_timedelta(timedelta(seconds=5))
    assert "1d 5s" == format_timedelta(timedelta(days=1, seconds=5))
    assert "20us" == format_timedelta(timedelta(microseconds=20))
    assert "0s" == format_timedelta(timedelta())


def test_json_encoder():
    from datetime import datetime, timedelta
    import json
    from pglogstats._helpers import JSONDateEncoder
    from pglogstats.model import Severity

    data_ = dict(
        date=datetime(year=2012, month=12, day=21),
        delta=timedelta(seconds=40),
        integer=42,
        severity=Severity.ERROR,
    )

    payload = json.dumps(data_, cls=JSONDateEncoder)

    assert '"2012-12-21T00:00:00' in payload
    assert '"40s"' in payload
    assert ": 42" in payload
    assert '"ERROR"' in payload


def test_nearest_rank():
    from pglogstats._helpers import nearest_rank

    ordered = [float(i) for i in range(1, 101)]
    assert 95.0 == nearest_rank(ordered, 95)
    assert 99.0 == nearest_rank(ordered, 99)
    assert 50.0 == nearest_rank(ordered, 50)
    assert 1.0 == nearest_rank(ordered, 0)
    assert 100.0 == nearest_rank(ordered, 100)
    assert 100.0 == nearest_rank(ordered, 150)
    assert 0.0 == nearest_rank([], 95)
    assert 3.0 == nearest_rank([1.0, 2.0, 3.0], 95)
