"""\
.. currentmodule:: pglogstats.log

:mod:`pglogstats.log` turns raw PostgreSQL stderr log lines into
:class:`~pglogstats.model.LogEntry` objects.

Parsing logs is tricky because a record may span several lines: PostgreSQL
writes the prefix only on the first line of a record, a multi-line SQL
statement follows on unprefixed lines. The parser is thus a small state
machine, keeping at most one open entry while reading lines in order.


Configuration
-------------

Postgres log records have a prefix, configured with ``log_line_prefix`` cluster
setting. When analyzing a log file, you must know the ``log_line_prefix``
value used to generate the records. Default is ``'%m [%p] %q%u@%d %a: '``.


Message types
-------------

PostgreSQL writes statement text and statement duration on distinct lines.
The parser keeps them as distinct entries:

- ``LOG:  statement: …`` gives a ``STATEMENT`` entry with :attr:`query` set.
- ``LOG:  duration: … ms`` gives a ``DURATION`` entry with
  :attr:`duration_ms` set.

It's up to the application to pair statements with their durations, e.g. by
process id and adjacency.


Limitations
-----------

:mod:`pglogstats.log` does not manage opening and uncompressing logs. It only
accepts a line reader iterator that loops log lines. Only stderr format is
supported: no csvlog, jsonlog nor syslog.

A line that does not match ``log_line_prefix`` is taken as a malformed record
only if a date or an epoch precedes its level keyword. Otherwise it is a
continuation line, even if it contains text such as ``-- LOG:  x``.


API Reference
-------------

.. autofunction:: parse
.. autofunction:: parse_lines
.. autoclass:: StderrParser
.. autoclass:: PrefixParser
.. autoclass:: UnknownData


Example
-------

.. code-block:: python

    with open('postgresql.log') as fo:
        for r in parse(fo, prefix_fmt='%m [%p] %q%u@%d %a: '):
            if isinstance(r, UnknownData):
                "Process unknown data"
            else:
                "Process entry"

"""  # noqa

from .parser import (
    DEFAULT_LOG_LINE_PREFIX,
    PrefixParser,
    StderrParser,
    UnknownData,
    parse,
    parse_lines,
)


__all__ = [
    "DEFAULT_LOG_LINE_PREFIX",
] + [
    o.__name__  # type: ignore[attr-defined]
    for o in [
        PrefixParser,
        StderrParser,
        UnknownData,
        parse,
        parse_lines,
    ]
]
