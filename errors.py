from __future__ import annotations
from typing import Optional

from lexer import MavaError
from parser import SourceLocation


class MavaRuntimeError(MavaError):
    """Raised for runtime faults.

    ``category`` groups the subclasses for tracebacks, e.g. every
    linear-algebra failure reports ``error[linalg]``.
    """

    category = "runtime"

    def __init__(
        self,
        message: str,
        *,
        location: Optional[SourceLocation] = None,
        rule: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.location = location
        self.rule = rule
        self.step_index: Optional[int] = None

    def __str__(self) -> str:
        if self.location is None:
            return self.message
        loc = self.location
        return f"{self.message} at {loc.file}:{loc.line}:{loc.column}"


class TypeMismatchError(MavaRuntimeError):
    """Operand types do not satisfy an operator's contract."""

    category = "type"


class DimensionMismatchError(MavaRuntimeError):
    """Vector or matrix shapes are incompatible."""

    category = "linalg"


class IndexOutOfRangeError(MavaRuntimeError):
    category = "index"


class UnboundIdentifierError(MavaRuntimeError):
    category = "name"


class UnboundFunctionError(MavaRuntimeError):
    category = "name"


class FunctionRedefinitionError(MavaRuntimeError):
    category = "definition"


class NotComparableError(MavaRuntimeError):
    category = "type"


class NotTransposableError(MavaRuntimeError):
    category = "linalg"


class NotDimensionableError(MavaRuntimeError):
    category = "linalg"


class NotSquareError(MavaRuntimeError):
    category = "linalg"


class NotSummableError(MavaRuntimeError):
    category = "linalg"


class InvalidOperationError(MavaRuntimeError):
    """Illegal use of the VOID sentinel."""

    category = "void"


class IOFailureError(MavaRuntimeError):
    category = "io"


class CallDepthError(MavaRuntimeError):
    """Function calls nested deeper than the interpreter's stack allows."""

    category = "recursion"


class AssertionFailedError(MavaError):
    """A script-level assert() failed.

    Not a MavaRuntimeError: callers that recover from ordinary evaluation
    errors must not swallow a failed assertion.
    """

    def __init__(self, source_text: str, line: int, *, location: Optional[SourceLocation] = None) -> None:
        message = f"Failed Assertion {source_text} line:{line}"
        super().__init__(message)
        self.message = message
        self.source_text = source_text
        self.line = line
        self.location = location
