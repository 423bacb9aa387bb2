"""\
PostgreSQL log statistics: query volume, latency and errors from stderr logs.

The pipeline reads as:

.. code-block:: python

    from pglogstats.analytics import analyze_queries, analyze_timing
    from pglogstats.log import parse_lines

    with open("postgresql.log") as fo:
        entries = parse_lines(fo)
    queries = analyze_queries(entries)
    timing = analyze_timing(entries)
"""
