import bdb
import json
import logging
import os
import pdb
import sys
from argparse import ArgumentParser
from itertools import islice
from typing import Any, Dict, List, MutableMapping

from ._helpers import JSONDateEncoder, Timer, open_or_stdin
from .analytics import QueryAnalyzer, TimingAnalyzer
from .errors import ConfigurationError
from .log import DEFAULT_LOG_LINE_PREFIX, StderrParser, UnknownData
from .model import LogEntry

logger = logging.getLogger(__name__)

# Lists dropped from report in --quick mode.
DETAILS = {
    "queries": ["most_frequent_queries", "slowest_queries"],
    "timing": ["hourly_patterns", "daily_patterns"],
}


def strtobool(value: str) -> bool:
    return value.strip().lower() in ("y", "yes", "t", "true", "on", "1")


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="pglogstats",
        description="Compute query and latency statistics from PostgreSQL logs.",
    )
    parser.add_argument(
        "--log-line-prefix",
        default=DEFAULT_LOG_LINE_PREFIX,
        metavar="LOG_LINE_PREFIX",
        help="log_line_prefix as configured in PostgreSQL. default: '%(default)s'",
    )
    parser.add_argument(
        "--sample-size",
        type=int,
        default=None,
        metavar="N",
        help="Analyze only the first N lines of each file.",
    )
    parser.add_argument(
        "--quick",
        action="store_true",
        help="Report summary only, without query lists and patterns.",
    )
    parser.add_argument(
        "filenames",
        nargs="*",
        default=["-"],
        metavar="FILENAME",
        help="Log filename or - for stdin. default: -",
    )
    return parser


def report(
    queries: Dict[str, Any], timing: Dict[str, Any], quick: bool = False
) -> Dict[str, Dict[str, Any]]:
    sections = dict(queries=queries, timing=timing)
    if quick:
        for name, keys in DETAILS.items():
            for key in keys:
                sections[name].pop(key, None)
    return sections


def main(
    argv: List[str] = sys.argv[1:],
    environ: MutableMapping[str, str] = os.environ,
) -> int:
    debug = strtobool(environ.get("DEBUG", "n"))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname).1s: %(message)s",
    )
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.sample_size is not None and args.sample_size <= 0:
        parser.error("--sample-size must be a positive integer")
    try:
        log_parser = StderrParser(args.log_line_prefix)
    except ConfigurationError as e:
        parser.error(str(e))

    entries: List[LogEntry] = []
    try:
        with Timer() as timer:
            for filename in args.filenames:
                with open_or_stdin(filename) as fo:
                    lines = fo if args.sample_size is None else islice(
                        fo, args.sample_size
                    )
                    for item in log_parser.parse(lines):
                        if isinstance(item, UnknownData):
                            logger.warning(
                                "%s:%s: %s: %s",
                                filename,
                                item.lineno,
                                item.reason,
                                item,
                            )
                        else:
                            entries.append(item)
                logger.info("Parsed %s, %d entries so far.", filename, len(entries))
            queries = QueryAnalyzer().analyze(entries)
            timing = TimingAnalyzer().analyze(entries)
        print(
            json.dumps(
                report(queries.as_dict(), timing.as_dict(), quick=args.quick),
                cls=JSONDateEncoder,
                indent=2,
            )
        )
        logger.info("Analyzed %d entries in %s.", len(entries), timer.delta)
    except (KeyboardInterrupt, bdb.BdbQuit):  # pragma: nocover
        logger.info("Interrupted.")
        return 1
    except Exception:
        logger.exception("Unhandled error:")
        if debug:  # pragma: nocover
            pdb.post_mortem(sys.exc_info()[2])
        return 1
    return 0


if "__main__" == __name__:  # pragma: nocover
    sys.exit(main(argv=sys.argv[1:], environ=os.environ))
