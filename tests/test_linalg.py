import numpy as np
import pytest

import linalg
from errors import (
    DimensionMismatchError,
    NotDimensionableError,
    NotSquareError,
    NotSummableError,
    NotTransposableError,
    TypeMismatchError,
)
from values import make_list, number, string


def lst(data):
    if isinstance(data, list):
        return make_list([lst(item) for item in data])
    return number(data)


def plain(value):
    if value.is_list():
        return [plain(item) for item in value.value]
    return value.value


def test_conversions():
    assert linalg.to_vector(lst([1, 2])).tolist() == [1.0, 2.0]
    assert linalg.to_matrix(lst([[1, 2], [3, 4]])).shape == (2, 2)
    assert linalg.to_grid(lst([1, 2, 3]), "T").shape == (3, 1)


def test_ragged_matrix():
    with pytest.raises(DimensionMismatchError, match="Dimension mismatch!"):
        linalg.to_matrix(lst([[1, 2], [3]]))


def test_list_inside_vector():
    with pytest.raises(DimensionMismatchError):
        linalg.to_vector(lst([1, [2]]))


def test_non_numeric_entry():
    with pytest.raises(TypeMismatchError):
        linalg.to_vector(make_list([number(1), string("a")]))


def test_elementwise_add_and_subtract():
    assert plain(linalg.elementwise_add(lst([1, 2]), lst([3, 4]))) == [4.0, 6.0]
    assert plain(linalg.elementwise_subtract(lst([[5, 5]]), lst([[1, 2]]))) == [[4.0, 3.0]]


def test_elementwise_requires_same_shape():
    with pytest.raises(DimensionMismatchError):
        linalg.elementwise_add(lst([1, 2]), lst([1, 2, 3]))
    with pytest.raises(DimensionMismatchError):
        linalg.elementwise_multiply(lst([[1, 2]]), lst([[1], [2]]))


def test_elementwise_power_keeps_shape():
    assert plain(linalg.elementwise_power(lst([1, 2, 3]), 2.0)) == [1.0, 4.0, 9.0]
    assert plain(linalg.elementwise_power(lst([[2]]), 3.0)) == [[8.0]]


def test_matrix_multiply():
    result = linalg.matrix_multiply(lst([[1, 2], [3, 4]]), lst([[5, 6], [7, 8]]))
    assert plain(result) == [[19.0, 22.0], [43.0, 50.0]]


def test_vector_operands_in_products():
    # row vector times matrix
    assert plain(linalg.matrix_multiply(lst([1, 1]), lst([[1, 2], [3, 4]]))) == [[4.0, 6.0]]
    # matrix times column vector
    assert plain(linalg.matrix_multiply(lst([[1, 2], [3, 4]]), lst([1, 1]))) == [[3.0], [7.0]]


def test_matrix_multiply_inner_dimension():
    with pytest.raises(DimensionMismatchError):
        linalg.matrix_multiply(lst([[1, 2, 3]]), lst([[1, 2]]))


def test_transpose():
    assert plain(linalg.transpose(lst([1, 2, 3]))) == [[1.0, 2.0, 3.0]]
    assert plain(linalg.transpose(lst([[1, 2], [3, 4]]))) == [[1.0, 3.0], [2.0, 4.0]]
    with pytest.raises(NotTransposableError):
        linalg.transpose(number(1))


def test_rows_and_columns():
    assert linalg.rows(lst([1, 2, 3])) == 3
    assert linalg.columns(lst([1, 2, 3])) == 1
    assert linalg.rows(lst([[1, 2, 3]])) == 1
    assert linalg.columns(lst([[1, 2, 3]])) == 3
    with pytest.raises(NotDimensionableError):
        linalg.rows(string("abc"))


def test_determinant():
    assert linalg.determinant(lst([[1, 2], [3, 4]])) == pytest.approx(-2.0)
    m = lst([[2, 0, 1], [1, 3, 2], [1, 1, 1]])
    assert linalg.determinant(m) == pytest.approx(linalg.determinant(linalg.transpose(m)))
    assert linalg.determinant(m) == pytest.approx(np.linalg.det(np.array([[2, 0, 1], [1, 3, 2], [1, 1, 1]])))


def test_determinant_needs_square_matrix():
    with pytest.raises(NotSquareError):
        linalg.determinant(lst([[1, 2, 3], [4, 5, 6]]))
    with pytest.raises(NotSquareError):
        linalg.determinant(lst([1, 2]))


def test_matrix_sum():
    assert linalg.matrix_sum(lst([[1, 2], [3, 4]])) == 10.0
    assert linalg.matrix_sum(lst([1.5, 2.5])) == 4.0
    with pytest.raises(NotSummableError):
        linalg.matrix_sum(make_list([]))
