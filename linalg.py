"""Vector and matrix interpretation of list values.

A vector is a flat list of numbers, a matrix a list of equal-length rows.
Values are converted to numpy float64 arrays for the heavy lifting and
converted back to fresh lists of numbers, row-major. Where a vector has to
act as a 2-D operand it is a column (n x 1), except as the left operand of a
product where it is a row (1 x n).
"""

from __future__ import annotations
from typing import Callable, List

import numpy as np
from numpy.typing import NDArray

from errors import (
    DimensionMismatchError,
    NotDimensionableError,
    NotSquareError,
    NotSummableError,
    NotTransposableError,
    TypeMismatchError,
)
from values import TYPE_LIST, Value, number


DIMENSION_MISMATCH = "Dimension mismatch! "
TRANSPOSE_ARGUMENT_MISMATCH = "Only vectors and matrices can be transposed!"
DIMENSIONS_ARGUMENTS_MISMATCH = "rows() and columns() is working only with vectors and matrices"
NOT_SQUARED_MATRIX = "Determinant can be calculated only of squared matrix"
ELEMENTS_SUM_NOT_MATRIX = "matrixSum() works only with vector and matrix"

Grid = NDArray[np.float64]


def _as_float(item: Value, rule: str) -> float:
    if item.is_list():
        raise DimensionMismatchError(f"{DIMENSION_MISMATCH}nested list inside a vector", rule=rule)
    if not item.is_number():
        raise TypeMismatchError(f"{rule} expects numeric entries, got {item.type}", rule=rule)
    return item.value


def to_vector(value: Value, rule: str = "VECTOR") -> Grid:
    items: List[Value] = value.value
    return np.fromiter((_as_float(item, rule) for item in items), dtype=np.float64, count=len(items))


def to_matrix(value: Value, rule: str = "MATRIX") -> Grid:
    rows: List[Value] = value.value
    width = None
    out: List[Grid] = []
    for index, row in enumerate(rows):
        if not row.is_list():
            raise DimensionMismatchError(f"{DIMENSION_MISMATCH}row {index} is not a list", rule=rule)
        cells = to_vector(row, rule)
        if width is None:
            width = cells.shape[0]
        elif cells.shape[0] != width:
            raise DimensionMismatchError(f"{DIMENSION_MISMATCH}{cells.shape[0]} != {width}", rule=rule)
        out.append(cells)
    return np.vstack(out) if out else np.zeros((0, 0), dtype=np.float64)


def to_grid(value: Value, rule: str) -> Grid:
    """2-D view of a vector (as a column) or a matrix."""
    if value.is_matrix():
        return to_matrix(value, rule)
    return to_vector(value, rule).reshape(-1, 1)


def from_vector(data: Grid) -> Value:
    return Value(TYPE_LIST, [number(float(x)) for x in data])


def from_grid(data: Grid) -> Value:
    return Value(TYPE_LIST, [from_vector(row) for row in data])


def _shape(data: Grid) -> str:
    return "x".join(str(d) for d in data.shape)


def _check_same_shape(left: Grid, right: Grid, rule: str) -> None:
    if left.shape != right.shape:
        raise DimensionMismatchError(f"{DIMENSION_MISMATCH}{_shape(left)} != {_shape(right)}", rule=rule)


def _elementwise(left: Value, right: Value, rule: str, op: Callable[[Grid, Grid], Grid]) -> Value:
    if left.is_vector() and right.is_vector():
        a, b = to_vector(left, rule), to_vector(right, rule)
        _check_same_shape(a, b, rule)
        with np.errstate(all="ignore"):
            return from_vector(op(a, b))
    a, b = to_matrix(left, rule), to_matrix(right, rule)
    _check_same_shape(a, b, rule)
    with np.errstate(all="ignore"):
        return from_grid(op(a, b))


def elementwise_add(left: Value, right: Value) -> Value:
    return _elementwise(left, right, "ADD", np.add)


def elementwise_subtract(left: Value, right: Value) -> Value:
    return _elementwise(left, right, "SUB", np.subtract)


def elementwise_multiply(left: Value, right: Value) -> Value:
    return _elementwise(left, right, "MUL", np.multiply)


def elementwise_power(base: Value, exponent: float) -> Value:
    with np.errstate(all="ignore"):
        if base.is_matrix():
            return from_grid(np.power(to_matrix(base, "POW"), exponent))
        return from_vector(np.power(to_vector(base, "POW"), exponent))


def matrix_multiply(left: Value, right: Value) -> Value:
    if left.is_vector():
        a = to_vector(left, "MUL").reshape(1, -1)
    else:
        a = to_matrix(left, "MUL")
    b = to_grid(right, "MUL")
    if a.shape[1] != b.shape[0]:
        raise DimensionMismatchError(f"{DIMENSION_MISMATCH}{a.shape[1]} != {b.shape[0]}", rule="MUL")
    with np.errstate(all="ignore"):
        return from_grid(a @ b)


def transpose(value: Value) -> Value:
    if not (value.is_vector() or value.is_matrix()):
        raise NotTransposableError(TRANSPOSE_ARGUMENT_MISMATCH, rule="transpose")
    return from_grid(to_grid(value, "transpose").T)


def rows(value: Value) -> int:
    if not (value.is_vector() or value.is_matrix()):
        raise NotDimensionableError(DIMENSIONS_ARGUMENTS_MISMATCH, rule="rows")
    return to_grid(value, "rows").shape[0]


def columns(value: Value) -> int:
    if not (value.is_vector() or value.is_matrix()):
        raise NotDimensionableError(DIMENSIONS_ARGUMENTS_MISMATCH, rule="columns")
    return to_grid(value, "columns").shape[1]


def determinant(value: Value) -> float:
    if not value.is_matrix():
        raise NotSquareError(NOT_SQUARED_MATRIX, rule="determinant")
    grid = to_matrix(value, "determinant")
    if grid.shape[0] != grid.shape[1]:
        raise NotSquareError(f"{NOT_SQUARED_MATRIX} (got {_shape(grid)})", rule="determinant")
    # numpy computes the determinant from an LU factorisation (LAPACK getrf).
    return float(np.linalg.det(grid))


def matrix_sum(value: Value) -> float:
    if not (value.is_vector() or value.is_matrix()):
        raise NotSummableError(ELEMENTS_SUM_NOT_MATRIX, rule="matrixSum")
    return float(to_grid(value, "matrixSum").sum())
