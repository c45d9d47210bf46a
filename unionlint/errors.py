# unionlint/errors.py
"""
unionlint error types.

Error Hierarchy:
────────────────
┌──────────────────────────────────────────────────────────────────────┐
│  UnionLintError (base)                                               │
│  ├── FrontendError        - unreadable / unparsable analysis inputs  │
│  │   └── DumpParseError   - malformed pre-resolved dump              │
│  └── InternalError        - engine invariant violated (a bug)        │
│      └── DuplicateFactError - second export for one contract         │
└──────────────────────────────────────────────────────────────────────┘

Not-applicable sites (no sealed contract, no fact, unresolved arm) are
never raised; the engine skips them and logs at DEBUG level.  Only
``InternalError`` aborts a run: it means the scanning logic produced an
unreliable fact and continuing would hide that.

Error Codes:
────────────
  UL-1xxx  frontend / input errors
  UL-9xxx  internal engine errors
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from typing import Any, Optional


@unique
class ErrorCode(Enum):
    UNREADABLE_INPUT = "UL-1001"
    DUMP_MALFORMED = "UL-1101"
    DUPLICATE_FACT = "UL-9001"
    INTERNAL_ERROR = "UL-9999"


@dataclass(frozen=True)
class SourceSpan:
    """Where an input error was found."""

    file: str = ""
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        if not self.file and self.line == 0:
            return "<unknown location>"
        parts = []
        if self.file:
            parts.append(self.file)
        if self.line > 0:
            parts.append(str(self.line))
            if self.column > 0:
                parts.append(str(self.column))
        return ":".join(parts)


class UnionLintError(Exception):
    """Base exception for all unionlint errors."""

    default_code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        span: Optional[SourceSpan] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.span = span or SourceSpan()
        self.cause = cause

    def to_gcc_format(self) -> str:
        return f"{self.span}: error: {self.message} [{self.code.value}]"

    def __str__(self) -> str:
        if self.span.file or self.span.line:
            return self.to_gcc_format()
        return f"{self.message} [{self.code.value}]"


class FrontendError(UnionLintError):
    """An analysis input could not be read or parsed."""

    default_code = ErrorCode.UNREADABLE_INPUT


class DumpParseError(FrontendError):
    """A pre-resolved dump does not have the expected shape."""

    default_code = ErrorCode.DUMP_MALFORMED


class InternalError(UnionLintError):
    """An engine invariant was violated.  Always a bug, never user input."""


class DuplicateFactError(InternalError):
    """A variant-set fact was exported twice for the same contract."""

    default_code = ErrorCode.DUPLICATE_FACT

    def __init__(self, contract: Any) -> None:
        super().__init__(f"variant-set fact for {contract} exported twice")
        self.contract = contract


__all__ = [
    "ErrorCode",
    "SourceSpan",
    "UnionLintError",
    "FrontendError",
    "DumpParseError",
    "InternalError",
    "DuplicateFactError",
]
