from __future__ import annotations

from typing import Optional


class ParseError(Exception):
    def __init__(self, lineno: Optional[int], line: str, message: str) -> None:
        self.message = message
        super().__init__(self.message)
        self.lineno = lineno
        self.line = line

    def __repr__(self) -> str:
        return "<%s at line %s: %.32s>" % (
            self.__class__.__name__,
            self.lineno,
            self.message,
        )

    def __str__(self) -> str:
        if self.lineno is None:
            return self.message
        return "Bad line #{} '{:.32}': {}".format(
            self.lineno,
            self.line.strip(),
            self.message,
        )


class ParserStateError(ParseError):
    """The line parser state machine reached an inconsistent state."""


class ConfigurationError(ValueError):
    """Invalid or conflicting parser or analyzer settings."""
