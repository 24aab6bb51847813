"""Runtime values.

Every datum the interpreter handles is a ``Value``: a type tag plus a Python
payload. The variants are closed: NULL and VOID (singleton sentinels),
BOOLEAN (``bool``), NUMBER (``float``), STRING (``str``) and LIST (a plain
``list`` of ``Value``). Lists are shared by reference; copying a Value into
another binding never copies its list.
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Set

from errors import InvalidOperationError, NotComparableError, TypeMismatchError


TYPE_NULL = "NULL"
TYPE_VOID = "VOID"
TYPE_BOOL = "BOOLEAN"
TYPE_NUM = "NUMBER"
TYPE_STR = "STRING"
TYPE_LIST = "LIST"

# Absolute tolerance used when comparing two numbers for equality.
NUMBER_TOLERANCE = 1e-11

_SENTINELS: Dict[str, "Value"] = {}


@dataclass(eq=False)
class Value:
    type: str
    value: Any = None

    def __post_init__(self) -> None:
        vtype = self.type
        payload = self.value
        if vtype in (TYPE_NULL, TYPE_VOID):
            if vtype in _SENTINELS:
                raise TypeError(f"{vtype} is a singleton; use values.{vtype}")
            if payload is not None:
                raise TypeError(f"{vtype} carries no payload, got {payload!r}")
            return
        if vtype == TYPE_BOOL:
            if not isinstance(payload, bool):
                raise TypeError(f"invalid data type: {payload!r} ({type(payload).__name__}) for {vtype}")
            return
        if vtype == TYPE_NUM:
            if isinstance(payload, bool) or not isinstance(payload, (int, float)):
                raise TypeError(f"invalid data type: {payload!r} ({type(payload).__name__}) for {vtype}")
            self.value = float(payload)
            return
        if vtype == TYPE_STR:
            if not isinstance(payload, str):
                raise TypeError(f"invalid data type: {payload!r} ({type(payload).__name__}) for {vtype}")
            return
        if vtype == TYPE_LIST:
            if not isinstance(payload, list):
                raise TypeError(f"invalid data type: {payload!r} ({type(payload).__name__}) for {vtype}")
            for item in payload:
                if not isinstance(item, Value):
                    raise TypeError(f"list elements must be values, got {item!r}")
            return
        raise TypeError(f"unknown value type '{vtype}'")

    def is_null(self) -> bool:
        return self is NULL

    def is_void(self) -> bool:
        return self is VOID

    def is_boolean(self) -> bool:
        return self.type == TYPE_BOOL

    def is_number(self) -> bool:
        return self.type == TYPE_NUM

    def is_string(self) -> bool:
        return self.type == TYPE_STR

    def is_list(self) -> bool:
        return self.type == TYPE_LIST

    def is_vector(self) -> bool:
        # Only the first element decides: [1, [2]] still counts as a vector
        # and is rejected later by the linear-algebra conversion.
        return self.type == TYPE_LIST and len(self.value) > 0 and not self.value[0].is_list()

    def is_matrix(self) -> bool:
        return self.type == TYPE_LIST and len(self.value) > 0 and self.value[0].is_list()

    def as_int(self) -> int:
        x: float = self.value
        if math.isnan(x) or math.isinf(x):
            raise TypeMismatchError(f"{render_number(x)} has no integer value", rule="NUMBER")
        return int(x)

    def equals(self, other: "Value") -> bool:
        if self.is_void() or other.is_void():
            raise InvalidOperationError(f"can't use VOID: {self} ==/!= {other}", rule="EQ")
        if self is other:
            return True
        if self.type != other.type:
            return False
        if self.type == TYPE_NUM:
            return abs(self.value - other.value) < NUMBER_TOLERANCE
        if self.type == TYPE_LIST:
            left: List[Value] = self.value
            right: List[Value] = other.value
            if len(left) != len(right):
                return False
            return all(a.equals(b) for a, b in zip(left, right))
        # NULL is only ever equal to itself (handled by the identity check).
        if self.type == TYPE_NULL:
            return False
        return self.value == other.value

    def compare_to(self, other: "Value") -> int:
        if self.is_number() and other.is_number():
            if self.equals(other):
                return 0
            return -1 if self.value < other.value else 1
        if self.is_string() and other.is_string():
            if self.value == other.value:
                return 0
            return -1 if self.value < other.value else 1
        raise NotComparableError(f"illegal expression: can't compare `{self}` to `{other}`", rule="COMPARE")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        return self.equals(other)

    def __ne__(self, other: object) -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        return not self.equals(other)

    __hash__ = None  # type: ignore[assignment]

    def render(self, _seen: Optional[Set[int]] = None) -> str:
        if self.is_null():
            return "NULL"
        if self.is_void():
            return "VOID"
        if self.type == TYPE_BOOL:
            return "true" if self.value else "false"
        if self.type == TYPE_NUM:
            return render_number(self.value)
        if self.type == TYPE_STR:
            return self.value
        seen = set() if _seen is None else _seen
        if id(self.value) in seen:
            return "[...]"
        seen.add(id(self.value))
        try:
            return "[" + ", ".join(item.render(seen) for item in self.value) + "]"
        finally:
            seen.discard(id(self.value))

    def __str__(self) -> str:
        return self.render()

    def __repr__(self) -> str:
        if self.type in (TYPE_NULL, TYPE_VOID):
            return self.type
        return f"Value({self.type}, {self.render()!r})"


def render_number(x: float) -> str:
    if math.isnan(x):
        return "NaN"
    if math.isinf(x):
        return "Infinity" if x > 0 else "-Infinity"
    if x.is_integer() and abs(x) < 1e16:
        return str(int(x))
    return repr(x)


NULL = Value(TYPE_NULL)
_SENTINELS[TYPE_NULL] = NULL
VOID = Value(TYPE_VOID)
_SENTINELS[TYPE_VOID] = VOID

TRUE = Value(TYPE_BOOL, True)
FALSE = Value(TYPE_BOOL, False)


def boolean(flag: bool) -> Value:
    return TRUE if flag else FALSE


def number(x: float) -> Value:
    return Value(TYPE_NUM, float(x))


def string(text: str) -> Value:
    return Value(TYPE_STR, text)


def make_list(items: List[Value]) -> Value:
    return Value(TYPE_LIST, items)
