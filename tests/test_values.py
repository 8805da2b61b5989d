import math

import pytest

from   macroflow.values import (
	DataType, coerce, compare_values, compute_math, data_type_of, json_to_value,
	to_bool, to_float, to_integer, to_string, value_to_json,
)


@pytest.mark.parametrize("value", [0, 1, -3, 2.5, 0.0, True, False])
def test_bool_of_string_agrees_with_direct_bool(value):
	assert to_bool(to_string(value)) == to_bool(value)


def test_to_bool_strings():
	assert to_bool("true")
	assert to_bool("TRUE")
	assert to_bool(" True ")
	assert not to_bool("false")
	assert not to_bool("yes")
	assert not to_bool("")
	assert to_bool("2")
	assert not to_bool("0.0")


def test_numeric_coercions_never_raise():
	assert to_integer("42") == 42
	assert to_integer("3.9") == 3
	assert to_integer("abc") == 0
	assert to_integer(None) == 0
	assert to_integer(float("inf")) == 0
	assert to_float("2.5") == 2.5
	assert to_float([1, 2]) == 0.0
	assert to_float(True) == 1.0


def test_to_string_formats():
	assert to_string(None) == ""
	assert to_string(True) == "true"
	assert to_string(7) == "7"
	assert to_string(1.5) == "1.5"
	assert to_string([1, "a", False]) == "[1, a, false]"


def test_coerce_to_declared_kind():
	assert coerce("5", DataType.INTEGER) == 5
	assert coerce(5, DataType.STRING) == "5"
	assert coerce("x", DataType.ARRAY) == []
	assert coerce((1, 2), DataType.ARRAY) == [1, 2]
	assert coerce("keep", None) == "keep"


def test_data_type_of():
	assert data_type_of(None) is None
	assert data_type_of(True) == DataType.BOOL
	assert data_type_of(3) == DataType.INTEGER
	assert data_type_of(3.0) == DataType.FLOAT
	assert data_type_of([]) == DataType.ARRAY
	assert data_type_of("s") == DataType.STRING


@pytest.mark.parametrize("x", [0, 7, -7, 2.5, -0.25])
def test_divide_by_zero_divides_by_one(x):
	assert compute_math(x, 0, "divide") == x
	assert compute_math(x, 0.0, "divide") == x


def test_integer_arithmetic_stays_integral():
	assert compute_math(7, 2, "divide") == 3
	assert compute_math(-7, 2, "divide") == -3
	assert compute_math(-7, 2, "modulo") == -1
	assert isinstance(compute_math(2, 3, "add"), int)


def test_float_operand_widens():
	result = compute_math(7, 2.0, "divide")
	assert isinstance(result, float)
	assert result == 3.5
	assert compute_math("1.5", 1, "add") == 2.5


def test_power_is_floating_point():
	assert compute_math(2, 3, "power") == 8.0
	assert isinstance(compute_math(2, 3, "power"), float)
	assert math.isinf(compute_math(0, -1, "power"))


def test_compare_numeric_and_string():
	assert compare_values(2, "10") < 0
	assert compare_values("2", "10") < 0
	assert compare_values("b", "a") > 0
	assert compare_values(1, 1.0) == 0
	assert compare_values("abc", 5) > 0


def test_compare_arrays():
	assert compare_values([1, 2], [1, 2]) == 0
	assert compare_values([1, 2], [1, 3]) < 0
	assert compare_values([1, 2, 0], [1, 2]) > 0


def test_json_conversions():
	assert json_to_value({"a": 1}) == '{"a": 1}'
	assert json_to_value([1, [2, "x"]]) == [1, [2, "x"]]
	assert value_to_json(float("nan")) is None
	assert value_to_json((1, 2.0)) == [1, 2.0]
