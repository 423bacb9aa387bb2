import json
import math
import sys
from datetime import datetime, timedelta, timezone
from typing import IO, Any, Sequence, Union


def format_timedelta(delta: timedelta) -> str:
    values = [
        (delta.days, "d"),
        (delta.seconds, "s"),
        (delta.microseconds, "us"),
    ]
    values = ["%d%s" % v for v in values if v[0]]
    if values:
        return " ".join(values)
    else:
        return "0s"


class JSONDateEncoder(json.JSONEncoder):
    def default(self, obj: Union[timedelta, datetime, object]) -> Any:
        if isinstance(obj, datetime):
            return obj.isoformat()
        elif isinstance(obj, timedelta):
            return format_timedelta(obj)
        return super().default(obj)


def open_or_stdin(filename: str, stdin: IO[str] = sys.stdin) -> IO[str]:
    if filename == "-":
        fo = stdin
    else:
        fo = open(filename)
    return fo


def nearest_rank(ordered: Sequence[float], percentile: float) -> float:
    # Nearest-rank percentile of an ascending sample. Index is
    # ceil(p/100 * n) - 1, clamped to the sample bounds. An empty sample
    # yields 0.

    if not ordered:
        return 0.0
    size = len(ordered)
    index = math.ceil(percentile * size / 100.0) - 1
    index = min(max(index, 0), size - 1)
    return ordered[index]


class Timer:
    def __enter__(self) -> "Timer":
        self.start = datetime.now(timezone.utc)
        return self

    def __exit__(self, *a: Any) -> None:
        self.delta = datetime.now(timezone.utc) - self.start
