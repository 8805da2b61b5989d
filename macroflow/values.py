# values

import json
import math


from   enum   import Enum
from   typing import Any, Callable, Dict, List, Optional, Union


Number = Union[int, float]


class DataType(str, Enum):
	"""Declared kind of a port or graph variable"""
	INTEGER        = "integer"
	FLOAT          = "float"
	STRING         = "string"
	BOOL           = "bool"
	ARRAY          = "array"
	EXECUTION_FLOW = "execution_flow"


SCALAR_TYPES = frozenset({DataType.INTEGER, DataType.FLOAT, DataType.STRING, DataType.BOOL})


DEFAULT_VALUES : Dict[DataType, Any] = {
	DataType.INTEGER : 0,
	DataType.FLOAT   : 0.0,
	DataType.STRING  : "",
	DataType.BOOL    : False,
	DataType.ARRAY   : [],
}


def default_for(data_type: DataType) -> Any:
	value = DEFAULT_VALUES.get(data_type)
	return list(value) if isinstance(value, list) else value


def data_type_of(value: Any) -> Optional[DataType]:
	"""Kind tag of a runtime value; None for the absent value"""
	if value is None:
		return None
	if isinstance(value, bool):
		return DataType.BOOL
	if isinstance(value, int):
		return DataType.INTEGER
	if isinstance(value, float):
		return DataType.FLOAT
	if isinstance(value, (list, tuple)):
		return DataType.ARRAY
	return DataType.STRING


def is_compatible(source: DataType, target: DataType) -> bool:
	if source == target:
		return True
	return source in SCALAR_TYPES and target in SCALAR_TYPES


def _parse_number(text: str) -> Optional[Number]:
	text = text.strip()
	if not text:
		return None
	try:
		return int(text)
	except ValueError:
		pass
	try:
		return float(text)
	except ValueError:
		return None


def is_numeric(value: Any) -> bool:
	if isinstance(value, (bool, int, float)):
		return True
	if isinstance(value, str):
		return _parse_number(value) is not None
	return False


# =============================================================================
# COERCIONS
# Total over the value union: they never raise, they fall back to a default
# =============================================================================

def to_bool(value: Any) -> bool:
	if isinstance(value, bool):
		return value
	if isinstance(value, (int, float)):
		return value != 0
	if isinstance(value, str):
		if value.strip().lower() == "true":
			return True
		number = _parse_number(value)
		return number is not None and number != 0
	return False


def to_integer(value: Any) -> int:
	if isinstance(value, bool):
		return 1 if value else 0
	if isinstance(value, int):
		return value
	if isinstance(value, float):
		return int(value) if math.isfinite(value) else 0
	if isinstance(value, str):
		number = _parse_number(value)
		if number is None:
			return 0
		return to_integer(number)
	return 0


def to_float(value: Any) -> float:
	if isinstance(value, bool):
		return 1.0 if value else 0.0
	if isinstance(value, (int, float)):
		return float(value)
	if isinstance(value, str):
		number = _parse_number(value)
		return float(number) if number is not None else 0.0
	return 0.0


def to_string(value: Any) -> str:
	if value is None:
		return ""
	if isinstance(value, bool):
		return "true" if value else "false"
	if isinstance(value, str):
		return value
	if isinstance(value, (list, tuple)):
		return "[" + ", ".join(to_string(item) for item in value) + "]"
	return str(value)


def to_array(value: Any) -> List[Any]:
	if isinstance(value, (list, tuple)):
		return list(value)
	return []


_COERCIONS : Dict[DataType, Callable[[Any], Any]] = {
	DataType.INTEGER : to_integer,
	DataType.FLOAT   : to_float,
	DataType.STRING  : to_string,
	DataType.BOOL    : to_bool,
	DataType.ARRAY   : to_array,
}


def coerce(value: Any, data_type: Optional[DataType]) -> Any:
	"""Coerce a value to a declared kind; unknown kinds pass the value through"""
	fn = _COERCIONS.get(data_type)
	if fn is None:
		return value
	return fn(value)


def to_number(value: Any) -> Number:
	"""Numeric view of a value, keeping integers integral"""
	if isinstance(value, bool):
		return 1 if value else 0
	if isinstance(value, (int, float)):
		return value
	if isinstance(value, str):
		number = _parse_number(value)
		return number if number is not None else 0
	return 0


# =============================================================================
# COMPARISON AND ARITHMETIC
# =============================================================================

def compare_values(a: Any, b: Any) -> int:
	"""
	Three-way comparison returning -1, 0 or 1.

	Arrays compare element by element, numeric-coercible pairs compare as
	numbers, anything else compares as strings. Unordered pairs (NaN) are equal.
	"""
	if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
		for left, right in zip(a, b):
			order = compare_values(left, right)
			if order:
				return order
		return (len(a) > len(b)) - (len(a) < len(b))

	if is_numeric(a) and is_numeric(b):
		left, right = to_number(a), to_number(b)
	else:
		left, right = to_string(a), to_string(b)

	if left < right:
		return -1
	if left > right:
		return 1
	return 0


def _int_div(a: int, b: int) -> int:
	q = abs(a) // abs(b)
	return q if (a >= 0) == (b >= 0) else -q


def _safe_pow(base: float, exponent: float) -> float:
	if base == 0.0 and exponent < 0:
		return math.inf
	try:
		return math.pow(base, exponent)
	except OverflowError:
		return math.inf
	except ValueError:
		return math.nan


def _float_op(op: str, a: float, b: float) -> float:
	if op == "add":
		return a + b
	if op == "subtract":
		return a - b
	if op == "multiply":
		return a * b
	if op == "divide":
		return a / b
	if op == "modulo":
		return math.fmod(a, b)
	if op == "power":
		return _safe_pow(a, b)
	raise ValueError(f"unknown math operation '{op}'")


def _int_op(op: str, a: int, b: int) -> int:
	if op == "add":
		return a + b
	if op == "subtract":
		return a - b
	if op == "multiply":
		return a * b
	if op == "divide":
		return _int_div(a, b)
	if op == "modulo":
		return a - b * _int_div(a, b)
	raise ValueError(f"unknown math operation '{op}'")


def compute_math(a: Any, b: Any, op: str) -> Number:
	"""
	Binary arithmetic with Integer/Float widening.

	Both integers stay integral (division truncates toward zero); any float
	operand promotes the result to float. For divide and modulo a zero divisor
	is replaced by one. Power is always computed in floating point.
	"""
	left  = to_number(a)
	right = to_number(b)

	if op in ("divide", "modulo") and right == 0:
		right = 1 if isinstance(right, int) else 1.0

	if op != "power" and isinstance(left, int) and isinstance(right, int):
		return _int_op(op, left, right)
	return _float_op(op, float(left), float(right))


# =============================================================================
# JSON CONVERSION
# =============================================================================

def json_to_value(data: Any) -> Any:
	"""Map decoded JSON onto the value union; objects become JSON strings"""
	if data is None or isinstance(data, (bool, int, float, str)):
		return data
	if isinstance(data, list):
		return [json_to_value(item) for item in data]
	if isinstance(data, dict):
		return json.dumps(data)
	return to_string(data)


def value_to_json(value: Any) -> Any:
	if value is None or isinstance(value, (bool, int, str)):
		return value
	if isinstance(value, float):
		return value if math.isfinite(value) else None
	if isinstance(value, (list, tuple)):
		return [value_to_json(item) for item in value]
	return to_string(value)
