import json

import pytest

LINES = """\
2024-08-15 10:30:15.123 UTC [12345] postgres@testdb psql: LOG:  statement: SELECT * FROM users WHERE id = 1;
2024-08-15 10:30:15.456 UTC [12345] postgres@testdb psql: LOG:  duration: 45.123 ms
2024-08-15 10:30:16 [12345] LOG:  connection received: host=[local]
2024-08-15 10:30:16.789 UTC [12346] admin@analytics pgbench: ERROR:  relation "missing_table" does not exist
2024-08-15 10:30:16.789 UTC [12346] admin@analytics pgbench: STATEMENT:  SELECT * FROM missing_table;
"""  # noqa


@pytest.fixture
def logfile(tmp_path):
    path = tmp_path / "postgresql.log"
    path.write_text(LINES)
    return str(path)


def test_main(mocker, caplog, capsys, logfile):
    mocker.patch("pglogstats.__main__.logging.basicConfig", autospec=True)

    from pglogstats.__main__ import main

    assert 0 == main(argv=[logfile], environ=dict())
    out, err = capsys.readouterr()
    report = json.loads(out)

    queries = report["queries"]
    assert 2 == queries["total_queries"]
    assert {"SELECT": 2} == queries["query_types"]
    assert 1 == queries["error_count"]
    assert ["SELECT * FROM users WHERE id = N;", 1] == (
        queries["most_frequent_queries"][0]
    )
    assert 45.123 == queries["max_duration"]

    timing = report["timing"]
    assert 1 == timing["total_samples"]
    assert {"10": 45.123} == timing["hourly_patterns"]
    assert "1d" == timing["bucket_size"]

    for record in caplog.records:
        if "10:30:16 [12345]" in record.getMessage():
            assert ":3:" in record.getMessage()
            break
    else:
        assert False, "Bad line not logged"


def test_main_stdin(mocker, capsys):
    import io

    mocker.patch("pglogstats.__main__.logging.basicConfig", autospec=True)
    open_ = mocker.patch("pglogstats.__main__.open_or_stdin", autospec=True)
    open_.return_value = io.StringIO(LINES)

    from pglogstats.__main__ import main

    assert 0 == main(argv=["--quick"], environ=dict())
    open_.assert_called_once_with("-")
    out, err = capsys.readouterr()
    report = json.loads(out)
    assert 2 == report["queries"]["total_queries"]
    assert "slowest_queries" not in report["queries"]
    assert "most_frequent_queries" not in report["queries"]
    assert "hourly_patterns" not in report["timing"]
    assert "daily_patterns" not in report["timing"]
    assert 1 == report["timing"]["total_samples"]


def test_main_sample_size(mocker, capsys, logfile):
    mocker.patch("pglogstats.__main__.logging.basicConfig", autospec=True)

    from pglogstats.__main__ import main

    assert 0 == main(argv=["--sample-size", "1", logfile], environ=dict())
    out, err = capsys.readouterr()
    report = json.loads(out)
    assert 1 == report["queries"]["total_queries"]
    assert 0 == report["timing"]["total_samples"]


def test_main_prefix(mocker, capsys, tmp_path):
    mocker.patch("pglogstats.__main__.logging.basicConfig", autospec=True)

    from pglogstats.__main__ import main

    path = tmp_path / "postgresql.log"
    path.write_text(
        "2024-08-15 10:30:20 UTC [42]: user=bob LOG:  duration: 3.5 ms\n"
    )
    argv = ["--log-line-prefix", "%t [%p]: user=%u ", str(path)]
    assert 0 == main(argv=argv, environ=dict())
    out, err = capsys.readouterr()
    assert 3.5 == json.loads(out)["timing"]["max_response_time"]


def test_main_usage(mocker, capsys, logfile):
    mocker.patch("pglogstats.__main__.logging.basicConfig", autospec=True)

    from pglogstats.__main__ import main

    with pytest.raises(SystemExit) as ei:
        main(argv=["--sample-size", "0", logfile], environ=dict())
    assert 2 == ei.value.code

    with pytest.raises(SystemExit) as ei:
        main(argv=["--log-line-prefix", "[%p] ", logfile], environ=dict())
    assert 2 == ei.value.code
    out, err = capsys.readouterr()
    assert "no timestamp" in err


def test_main_ko(mocker, logfile):
    pkg = "pglogstats.__main__"
    mocker.patch(pkg + ".logging.basicConfig", autospec=True)
    analyzer = mocker.patch(pkg + ".QueryAnalyzer", autospec=True)
    analyzer.return_value.analyze.side_effect = Exception("boom")

    from pglogstats.__main__ import main

    assert 1 == main(argv=[logfile], environ=dict())

    assert 1 == main(argv=["/nonexistent/postgresql.log"], environ=dict())


def test_strtobool():
    from pglogstats.__main__ import strtobool

    assert strtobool("1")
    assert strtobool(" Yes")
    assert not strtobool("n")
    assert not strtobool("")
