import logging
import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    MutableMapping,
    Optional,
    Pattern,
    Sequence,
    Union,
)

from typing_extensions import Final

from ..errors import ConfigurationError, ParseError, ParserStateError
from ..model import LogEntry, Severity

logger = logging.getLogger(__name__)

DEFAULT_LOG_LINE_PREFIX: Final = "%m [%p] %q%u@%d %a: "


_offset_re = re.compile(r"(?P<sign>[+-])(?P<hours>\d{2}):?(?P<minutes>\d{2})?$")


def parse_zone(zone: str) -> Optional[tzinfo]:
    # None for abbreviations other than UTC, their offset is unknown.
    if zone in ("UTC", "GMT"):
        return timezone.utc
    match = _offset_re.match(zone)
    if not match:
        return None
    offset = timedelta(
        hours=int(match.group("hours")), minutes=int(match.group("minutes") or 0)
    )
    return timezone(-offset if match.group("sign") == "-" else offset)


def parse_isodatetime(raw: str) -> datetime:
    """Parse a ``%m`` or ``%t`` timestamp such as ``2024-08-14 10:30:15.123 UTC``.

    UTC timestamps and numeric offsets such as ``+02`` or ``-03:30`` are
    returned timezone-aware. Other zone abbreviations cannot be resolved
    without tzdata, the wall-clock time is returned naive.

    :raises ValueError: if the date or time is invalid.
    """
    try:
        stamp, zone = raw.rsplit(" ", 1)
        date, time = stamp.split(" ")
        year, month, day = date.split("-")
        clock, _, fraction = time.partition(".")
        hour, minute, second = clock.split(":")
        infos = (
            int(year),
            int(month),
            int(day),
            int(hour),
            int(minute),
            int(second),
            # Fractional second, as microseconds.
            int(fraction[:6].ljust(6, "0")) if fraction else 0,
        )
        return datetime(*infos, tzinfo=parse_zone(zone))
    except ValueError:
        raise ValueError("%s is not a known date" % raw)


def parse_epoch(raw: str) -> datetime:
    epoch, _, fraction = raw.partition(".")
    try:
        return datetime.fromtimestamp(int(epoch), tz=timezone.utc) + timedelta(
            microseconds=int(fraction[:6].ljust(6, "0") or 0)
        )
    except (OverflowError, OSError):
        raise ValueError("%s is not a known date" % raw)


def none_if_empty(raw: str) -> Optional[str]:
    return raw or None


_duration_re = re.compile(r"duration: (?P<ms>\d+(?:\.\d+)?) ms")


def extract_duration(message: str) -> Optional[float]:
    """Extract milliseconds from a ``duration: 45.123 ms`` message.

    Returns ``None`` if message does not start with a valid duration.
    """
    match = _duration_re.match(message)
    if not match:
        return None
    return float(match.group("ms"))


class UnknownData(Exception):
    """Represents unparseable data.

    :class:`UnknownData` is throwable, you can raise it.

    .. attribute:: lines

        The list of unparseable strings.

    .. attribute:: lineno

        Line number of the first unparseable line, starting at 1.

    .. attribute:: reason

        Why the line was dropped.
    """

    def __init__(
        self, lines: Sequence[str], lineno: Optional[int] = None, reason: str = ""
    ) -> None:
        self.lines = lines
        self.lineno = lineno
        self.reason = reason

    def __repr__(self) -> str:
        summary = str(self)[:32].replace("\n", "")
        return "<%s %s...>" % (self.__class__.__name__, summary)

    def __str__(self) -> str:
        return "".join(self.lines)


class PrefixParser:
    """Extract record metadata from PostgreSQL log line prefix.

    .. automethod:: from_configuration
    .. automethod:: parse
    """

    # cf.
    # https://www.postgresql.org/docs/current/static/runtime-config-logging.html#GUC-LOG-LINE-PREFIX

    # Loose on purpose: invalid calendar values are rejected by the cast, not
    # by the pattern.
    _datetime_pat = r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}"
    _zone_pat = r"(?:[A-Z]{2,5}|[+-]\d{2}(?::?\d{2})?)"
    # Pattern map of Status informations.
    _status_pat = dict(
        # Application name
        a=r"(?P<application_name>[^:]*?)",
        # Session ID
        c=r"(?P<session>\[unknown\]|[0-9a-f.]+)",
        # Database name
        d=r"(?P<database>[^\s@]*)",
        # SQLSTATE error code
        e=r"(?P<error>[0-9A-Z]{5})",
        # Remote host name or IP address
        h=r"(?P<client_host>\[local\]|\[unknown\]|[a-z0-9_.-]+|[0-9a-f.:]+)?",
        # Command tag: type of session's current command
        i=r"(?P<command_tag>\w+(?: \w+)*)?",
        # Number of the log line for each session or process, starting at 1.
        l=r"(?P<line_num>\d+)",  # noqa
        # Time stamp with milliseconds
        m=r"(?P<timestamp_ms>" + _datetime_pat + r"(?:\.\d+)? " + _zone_pat + ")",
        # Time stamp with milliseconds (as a Unix epoch)
        n=r"(?P<epoch>\d+\.\d+)",
        # Process ID
        p=r"(?P<process_id>\d+)",
        # Remote host name or IP address, and remote port
        r=r"(?P<client_host_r>\[local\]|\[unknown\]|[a-z0-9_.-]+|[0-9a-f.:]+)?(?:\((?P<remote_port>\d+)\))?",  # noqa
        # Process start time stamp
        s=r"(?P<start>" + _datetime_pat + " " + _zone_pat + ")",
        # Time stamp without milliseconds
        t=r"(?P<timestamp>" + _datetime_pat + " " + _zone_pat + ")",
        # User name
        u=r"(?P<user>[^\s@]*)",
        # Virtual transaction ID (backendID/localXID)
        v=r"(?P<virtual_xid>\d+/\d+)?",
        # Transaction ID (0 if none is assigned)
        x=r"(?P<xid>\d+)",
    )
    # re to search for %… in log_line_prefix.
    _format_re = re.compile(r"%([" + "".join(_status_pat.keys()) + "])")
    # re to find %q separator in log_line_prefix.
    _q_re = re.compile(r"(?<!%)%q")

    _casts: Dict[str, Callable[[str], Any]] = {
        "application_name": none_if_empty,
        "client_host": none_if_empty,
        "database": none_if_empty,
        "epoch": parse_epoch,
        "line_num": int,
        "process_id": int,
        "remote_port": int,
        "start": parse_isodatetime,
        "timestamp": parse_isodatetime,
        "timestamp_ms": parse_isodatetime,
        "user": none_if_empty,
        "xid": int,
    }

    @classmethod
    def mkpattern(cls, prefix: str) -> str:
        # Builds a pattern from each known fields.
        segments = cls._format_re.split(prefix)
        for i, segment in enumerate(segments):
            if i % 2:
                segments[i] = cls._status_pat[segment]
            else:
                segments[i] = re.escape(segment)
        return "".join(segments)

    @classmethod
    def from_configuration(cls, log_line_prefix: str) -> "PrefixParser":
        """Factory from log_line_prefix

        Parses log_line_prefix and build a prefix parser from this.

        :param log_line_prefix: ``log_line_prefix`` PostgreSQL setting.
        :return: A :class:`PrefixParser` instance.
        :raises ConfigurationError: if ``log_line_prefix`` has no timestamp
            escape.

        """
        if not re.search(r"(?<!%)%[mtn]", log_line_prefix):
            raise ConfigurationError(
                "log_line_prefix '%s' has no timestamp (%%m, %%t or %%n)"
                % log_line_prefix
            )

        optionnal: Optional[str]
        try:
            fixed, optionnal = cls._q_re.split(log_line_prefix)
        except ValueError:
            fixed, optionnal = log_line_prefix, None

        pattern = cls.mkpattern(fixed)
        if optionnal:
            pattern += r"(?:" + cls.mkpattern(optionnal) + ")?"
        return cls(re.compile(pattern), log_line_prefix)

    def __init__(self, re_: Pattern[str], prefix_fmt: Optional[str] = None) -> None:
        self.re_ = re_
        self.prefix_fmt = prefix_fmt

    def __repr__(self) -> str:
        return "<%s '%s'>" % (self.__class__.__name__, self.prefix_fmt)

    @property
    def pattern(self) -> str:
        return self.re_.pattern

    def parse(self, prefix: str) -> MutableMapping[str, Any]:
        """Parse prefix fields.

        :raises UnknownData: if prefix does not match.
        :raises ValueError: if a field can't be decoded.
        """

        match = self.re_.search(prefix)
        if not match:
            raise UnknownData([prefix])
        return self.decode(match.groupdict())

    @classmethod
    def decode(cls, fields: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
        cls.cast_fields(fields)

        # Ensure client_host is fed either by %h or %r.
        client_host = fields.pop("client_host_r", None)
        if client_host:
            fields.setdefault("client_host", client_host)
        if fields.get("client_host") is None:
            fields.pop("client_host", None)

        # Ensure timestamp field is fed either by %m, %t or %n.
        timestamp_ms = fields.pop("timestamp_ms", None)
        if timestamp_ms:
            fields["timestamp"] = timestamp_ms
        epoch = fields.pop("epoch", None)
        if epoch:
            fields.setdefault("timestamp", epoch)

        return fields

    @classmethod
    def cast_fields(cls, fields: MutableMapping[str, Any]) -> None:
        # In-place cast of values in fields dictionnary.

        for k in fields:
            v = fields[k]
            if v is None:
                continue
            cast = cls._casts.get(k)
            if cast:
                fields[k] = cast(v)


class Idle:
    """No entry is open."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "<Idle>"


IDLE: Final = Idle()


class Accumulating:
    """An entry is open and collects continuation lines.

    ``lines`` always holds at least the message of the header line.
    """

    __slots__ = ("fields", "keyword", "lineno", "lines")

    def __init__(
        self,
        fields: MutableMapping[str, Any],
        keyword: str,
        message: str,
        lineno: int,
    ) -> None:
        self.fields = fields
        self.keyword = keyword
        self.lineno = lineno
        self.lines = [message]

    def __repr__(self) -> str:
        return "<Accumulating %s at line %d, %d lines>" % (
            self.keyword,
            self.lineno,
            len(self.lines),
        )


ParserState = Union[Idle, Accumulating]


class StderrParser:
    """Stateful parser for PostgreSQL stderr logs

    The parser reconstructs :class:`~pglogstats.model.LogEntry` objects from
    raw lines, in one pass, keeping at most one open entry. A line matching
    ``log_line_prefix`` followed by a level keyword closes the open entry and
    opens a new one. Any other line is a continuation of the open entry,
    typically the tail of a multi-line SQL statement.

    Unparseable lines never stop parsing. They are dropped, logged at DEBUG
    level and kept in :attr:`anomalies` as :class:`UnknownData`.

    :param log_line_prefix: exactly the value of ``log_line_prefix``
        PostgreSQL setting.

    .. automethod:: parse_line
    .. automethod:: finish
    .. automethod:: parse_lines
    .. automethod:: parse
    """

    # Level keywords as written by PostgreSQL.
    _keywords = [
        "CONTEXT",
        "DETAIL",
        "ERROR",
        "FATAL",
        "HINT",
        "INFO",
        "LOCATION",
        "LOG",
        "NOTICE",
        "PANIC",
        "QUERY",
        "STATEMENT",
        "WARNING",
    ]
    _keyword_pat = "(?P<keyword>DEBUG[1-5]?|" + "|".join(_keywords) + "):  ?"
    # A line looking like a record, though its prefix does not match.
    _header_re = re.compile(r"(?:^|\s)" + _keyword_pat)
    # Date or epoch, expected before the keyword of such a line.
    _stamp_re = re.compile(r"\d{4}-\d{2}-\d{2}|\d{9,}\.\d+")

    _statement_prefix = "statement: "

    def __init__(self, log_line_prefix: str = DEFAULT_LOG_LINE_PREFIX) -> None:
        self.prefix_parser = PrefixParser.from_configuration(log_line_prefix)
        self._line_re = re.compile(
            self.prefix_parser.pattern + self._keyword_pat + "(?P<message>.*)",
            re.DOTALL,
        )
        self.reset()

    def __repr__(self) -> str:
        return "<%s '%s'>" % (self.__class__.__name__, self.prefix_parser.prefix_fmt)

    def reset(self) -> None:
        """Drop parsing state, including open entry and anomalies."""
        self.state: ParserState = IDLE
        self.lineno = 0
        self.anomalies: List[UnknownData] = []

    def parse_line(self, line: str) -> Optional[LogEntry]:
        """Advance the parser by one raw line.

        :returns: the entry finalized by this line, if any.
        """
        self.lineno += 1
        line = line.rstrip("\r\n")
        if not line.strip():
            return None

        match = self._line_re.match(line)
        if match:
            fields = match.groupdict()
            keyword = fields.pop("keyword")
            message = fields.pop("message")
            try:
                fields = self.prefix_parser.decode(fields)
            except ValueError as e:
                return self._drop(line, str(e))
            if fields.get("timestamp") is None:
                return self._drop(line, "missing timestamp")
            entry = self._close()
            self.state = Accumulating(fields, keyword, message, self.lineno)
            return entry

        header = None if line[:1].isspace() else self._header_re.search(line)
        if header and self._stamp_re.search(line, 0, header.start()):
            return self._drop(line, "prefix does not match log_line_prefix")

        if isinstance(self.state, Accumulating):
            self.state.lines.append(line)
        else:
            self._anomaly(line, "continuation line without open entry")
        return None

    def finish(self) -> Optional[LogEntry]:
        """Finalize the open entry at end of input, if any."""
        return self._close()

    def parse_lines(self, lines: Optional[Iterable[str]]) -> List[LogEntry]:
        """Parse all lines and return entries in input order.

        Parsing state is reset first, anomalies of this call are available
        afterward in :attr:`anomalies`.

        :param lines: A line iterator such as a file object.
        :raises ParseError: if ``lines`` is ``None``.
        """
        if lines is None:
            raise ParseError(None, "", "no input lines provided")

        self.reset()
        entries: List[LogEntry] = []
        for line in lines:
            entry = self.parse_line(line)
            if entry is not None:
                entries.append(entry)
        entry = self.finish()
        if entry is not None:
            entries.append(entry)

        logger.debug(
            "Parsed %d entries from %d lines, %d skipped.",
            len(entries),
            self.lineno,
            len(self.anomalies),
        )
        return entries

    def parse(self, fo: Iterable[str]) -> Iterator[Union[LogEntry, UnknownData]]:
        """Yield entries and unparsed data from file-like object ``fo``

        :param fo: A line iterator such as a file object.
        :returns: Yields either :class:`~pglogstats.model.LogEntry` or
            :class:`UnknownData` objects, in input order.
        """
        self.reset()
        # Fast access variables to avoid attribute access overhead on each
        # line.
        parse_line = self.parse_line
        anomalies = self.anomalies
        for line in fo:
            entry = parse_line(line)
            if entry is not None:
                yield entry
            if anomalies:
                yield from anomalies
                anomalies.clear()
        entry = self.finish()
        if entry is not None:
            yield entry

    def _anomaly(self, line: str, reason: str) -> None:
        logger.debug("Skipping line %d: %s.", self.lineno, reason)
        self.anomalies.append(UnknownData([line], lineno=self.lineno, reason=reason))

    def _drop(self, line: str, reason: str) -> Optional[LogEntry]:
        # A malformed record closes the open entry. Its continuation lines
        # are dropped along with it.
        self._anomaly(line, reason)
        return self._close()

    def _close(self) -> Optional[LogEntry]:
        state = self.state
        self.state = IDLE
        if isinstance(state, Idle):
            return None
        if not isinstance(state, Accumulating) or not state.lines:
            raise ParserStateError(self.lineno, "", "invalid state %r" % (state,))
        return self.build_entry(state)

    def build_entry(self, state: Accumulating) -> LogEntry:
        # Decode message of a complete record.
        fields = state.fields
        message = "\n".join(state.lines)
        severity = Severity.from_keyword(state.keyword)
        query = None
        duration_ms = None

        if severity is Severity.STATEMENT:
            query = message.strip()
        elif severity is Severity.LOG:
            if message.startswith(self._statement_prefix):
                severity = Severity.STATEMENT
                query = message[len(self._statement_prefix) :].strip()
            else:
                duration_ms = extract_duration(message)
                if duration_ms is not None:
                    severity = Severity.DURATION

        return LogEntry(
            timestamp=fields["timestamp"],
            process_id=fields.get("process_id"),
            severity=severity,
            message=message,
            user=fields.get("user"),
            database=fields.get("database"),
            client_host=fields.get("client_host"),
            application_name=fields.get("application_name"),
            query=query,
            duration_ms=duration_ms,
        )


def parse(
    fo: Iterable[str], prefix_fmt: str = DEFAULT_LOG_LINE_PREFIX
) -> Iterator[Union[LogEntry, UnknownData]]:
    """Parses log lines and yield :class:`~pglogstats.model.LogEntry` or
    :class:`UnknownData` objects.

    :param fo: A line iterator such as a file-like object.
    :param prefix_fmt: is exactly the value of ``log_line_prefix`` Postgresql
        settings.

    """
    parser = StderrParser(prefix_fmt)
    yield from parser.parse(fo)


def parse_lines(
    lines: Optional[Iterable[str]], prefix_fmt: str = DEFAULT_LOG_LINE_PREFIX
) -> List[LogEntry]:
    """Parse lines into a list of :class:`~pglogstats.model.LogEntry`.

    This is a helper around :class:`StderrParser`. Unparseable lines are
    skipped.

    :raises ParseError: if ``lines`` is ``None``.
    """
    return StderrParser(prefix_fmt).parse_lines(lines)
