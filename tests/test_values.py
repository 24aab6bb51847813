import pytest

from errors import InvalidOperationError, NotComparableError, TypeMismatchError
from values import FALSE, NULL, TRUE, VOID, Value, boolean, make_list, number, render_number, string


class TestConstruction:
    def test_helpers_pick_variant(self):
        assert boolean(True) is TRUE
        assert number(3).is_number()
        assert string("x").is_string()
        assert make_list([]).is_list()

    def test_numbers_are_floats(self):
        assert isinstance(number(3).value, float)

    def test_wrong_payload_is_rejected(self):
        with pytest.raises(TypeError):
            Value("NUMBER", "3")
        with pytest.raises(TypeError):
            Value("BOOLEAN", 1)
        with pytest.raises(TypeError):
            Value("LIST", [1, 2])

    def test_null_and_void_are_singletons(self):
        with pytest.raises(TypeError):
            Value("NULL")
        with pytest.raises(TypeError):
            Value("VOID")

    def test_vector_and_matrix_shape_checks(self):
        vec = make_list([number(1), number(2)])
        mat = make_list([vec, vec])
        assert vec.is_vector() and not vec.is_matrix()
        assert mat.is_matrix() and not mat.is_vector()
        assert not make_list([]).is_vector()
        assert not make_list([]).is_matrix()


class TestEquality:
    def test_number_tolerance(self):
        assert number(0.1 + 0.2).equals(number(0.3))
        assert not number(1.0).equals(number(1.001))

    def test_different_types_are_unequal(self):
        assert not number(1).equals(string("1"))
        assert not NULL.equals(FALSE)

    def test_null_equals_itself(self):
        assert NULL.equals(NULL)

    def test_lists_compare_structurally(self):
        a = make_list([number(1), make_list([string("x")])])
        b = make_list([number(1), make_list([string("x")])])
        assert a.equals(b)
        assert not a.equals(make_list([number(1)]))

    def test_void_cannot_be_compared(self):
        with pytest.raises(InvalidOperationError):
            VOID.equals(VOID)
        with pytest.raises(InvalidOperationError):
            number(1).equals(VOID)

    def test_python_operators_delegate(self):
        assert number(2) == number(2)
        assert string("a") != string("b")


class TestOrdering:
    def test_numbers(self):
        assert number(1).compare_to(number(2)) < 0
        assert number(2).compare_to(number(1)) > 0
        assert number(1).compare_to(number(1 + 1e-13)) == 0

    def test_strings(self):
        assert string("abc").compare_to(string("abd")) < 0

    def test_mixed_types_are_not_comparable(self):
        with pytest.raises(NotComparableError):
            number(1).compare_to(string("1"))
        with pytest.raises(NotComparableError):
            TRUE.compare_to(FALSE)


class TestRendering:
    @pytest.mark.parametrize(
        "x, text",
        [(3.0, "3"), (-2.0, "-2"), (2.5, "2.5"), (float("inf"), "Infinity"), (float("-inf"), "-Infinity"), (float("nan"), "NaN")],
    )
    def test_numbers(self, x, text):
        assert render_number(x) == text

    def test_scalars(self):
        assert TRUE.render() == "true"
        assert NULL.render() == "NULL"
        assert string("hi").render() == "hi"

    def test_nested_list(self):
        value = make_list([number(1), make_list([string("a"), boolean(False)])])
        assert str(value) == "[1, [a, false]]"

    def test_self_reference(self):
        value = make_list([number(1)])
        value.value.append(value)
        assert value.render() == "[1, [...]]"


def test_as_int_truncates():
    assert number(3.9).as_int() == 3
    assert number(-3.9).as_int() == -3
    with pytest.raises(TypeMismatchError):
        number(float("nan")).as_int()
