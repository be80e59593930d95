# qcforms/errors.py
"""
Error types and diagnostics for the qcforms translator.

Error Hierarchy
───────────────
┌─────────────────────────────────────────────────────────────────────┐
│  QcFormsError (base)                                                │
│  ├── ReadError     - text is not well-formed surface syntax         │
│  ├── UsageError    - a recognised form has the wrong shape          │
│  └── ScopeError    - strict scope check found unresolved names      │
└─────────────────────────────────────────────────────────────────────┘

Every error is raised at translation time, before any Python source for
the offending instance is returned.  ``UsageError`` carries the form and
its canonical usage string (``"forall PAT <- GEN, do: PROP"``); its text
is ``"<file>:<line>:<col>: Usage: <usage>"``.

Error Codes
───────────
  QCF-1xxx  reading
  QCF-2xxx  form usage
  QCF-3xxx  scoping
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, unique
from typing import Optional, Sequence, Tuple

from qcforms.ast import SourceLoc, SyntaxForm


@unique
class ErrorCode(Enum):
    UNREADABLE = "QCF-1001"
    INVALID_NAME = "QCF-1002"
    BAD_USAGE = "QCF-2001"
    UNRESOLVED_NAME = "QCF-3001"


class ErrorSeverity(Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """One finding from the scope checker (or any later pass)."""

    code: ErrorCode
    message: str
    loc: Optional[SourceLoc] = None
    severity: ErrorSeverity = ErrorSeverity.ERROR
    name: Optional[str] = None

    def __str__(self) -> str:
        return self.to_gcc_format()

    def to_gcc_format(self) -> str:
        where = f"{self.loc}: " if self.loc is not None else ""
        return f"{where}{self.severity.value}: {self.message} [{self.code.value}]"

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "severity": self.severity.value,
            "message": self.message,
            "name": self.name,
            "file": self.loc.file if self.loc else None,
            "line": self.loc.line if self.loc else None,
            "column": self.loc.col if self.loc else None,
        }


class QcFormsError(Exception):
    """Base class for every translation-time error."""

    code: ErrorCode = ErrorCode.UNREADABLE

    def __init__(self, message: str, loc: Optional[SourceLoc] = None) -> None:
        super().__init__(message)
        self.message = message
        self.loc = loc

    def __str__(self) -> str:
        if self.loc is not None:
            return f"{self.loc}: {self.message}"
        return self.message


class ReadError(QcFormsError):
    """The source text is not well-formed surface syntax."""

    def __init__(
        self,
        message: str,
        loc: Optional[SourceLoc] = None,
        code: ErrorCode = ErrorCode.UNREADABLE,
    ) -> None:
        super().__init__(message, loc)
        self.code = code


class UsageError(QcFormsError):
    """A form was recognised by its head but its arguments have the wrong
    shape.  ``usage`` is the fixed usage string of the intended form."""

    code = ErrorCode.BAD_USAGE

    def __init__(
        self,
        form: SyntaxForm,
        usage: str,
        loc: Optional[SourceLoc] = None,
        detail: Optional[str] = None,
    ) -> None:
        super().__init__(f"Usage: {usage}", loc)
        self.form = form
        self.usage = usage
        self.detail = detail


class ScopeError(QcFormsError):
    """Raised by strict translation when names cannot be resolved."""

    code = ErrorCode.UNRESOLVED_NAME

    def __init__(self, diagnostics: Sequence[Diagnostic]) -> None:
        self.diagnostics: Tuple[Diagnostic, ...] = tuple(diagnostics)
        first = self.diagnostics[0] if self.diagnostics else None
        names = ", ".join(d.name or "?" for d in self.diagnostics)
        super().__init__(
            f"unresolved name(s): {names}",
            first.loc if first is not None else None,
        )
