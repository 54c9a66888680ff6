"""
NEXUS runtime values.

A Value is a tagged union over the eight NEXUS types. Numbers are Python
floats, arrays are lists of Values and objects are insertion-ordered
dicts from string keys to Values.

Copy semantics:
- NIL, BOOLEAN, NUMBER and STRING are immutable, sharing them is safe
- ARRAY and OBJECT behave as values; copy() makes a deep, independent copy
- FUNCTION and TENSOR are references shared by every holder

Operators are implemented as Python dunder methods so the evaluator can
drive them through the `operator` module.

Author: xwest
"""

import math
from abc import ABC, abstractmethod
from enum import Enum, auto
from typing import Any, Dict, List, Optional

import numpy as np

from .errors import (
    NexusRuntimeError, TypeMismatchError, DivisionByZeroError, IndexOutOfRangeError,
    create_type_mismatch_error
)
from .tensor import Tensor, format_number


class ValueType(Enum):
    """Runtime type tags."""
    NIL = auto()
    BOOLEAN = auto()
    NUMBER = auto()
    STRING = auto()
    ARRAY = auto()
    OBJECT = auto()
    FUNCTION = auto()
    TENSOR = auto()


TYPE_NAMES = {
    ValueType.NIL: "nil",
    ValueType.BOOLEAN: "boolean",
    ValueType.NUMBER: "number",
    ValueType.STRING: "string",
    ValueType.ARRAY: "array",
    ValueType.OBJECT: "object",
    ValueType.FUNCTION: "function",
    ValueType.TENSOR: "tensor",
}


class Callable(ABC):
    """Anything a NEXUS program can call."""

    name: str

    @property
    @abstractmethod
    def arity(self) -> Optional[int]:
        """Number of expected arguments, None for variadic."""
        pass

    @abstractmethod
    def call(self, interpreter, args: List['Value']) -> 'Value':
        pass


class NativeFunction(Callable):
    """A builtin implemented in Python as `function(interpreter, args)`."""

    def __init__(self, name: str, arity: Optional[int], function):
        self.name = name
        self._arity = arity
        self.function = function

    @property
    def arity(self) -> Optional[int]:
        return self._arity

    def call(self, interpreter, args: List['Value']) -> 'Value':
        return self.function(interpreter, args)

    def __str__(self) -> str:
        return f"<native function {self.name}>"


class UserFunction(Callable):
    """
    A function written in NEXUS.

    The body is not parsed ahead of time: the function remembers the token
    list it was declared in and the index of the '{' opening its body, and
    the evaluator runs those tokens on every call. `closure` is the scope
    the function was declared in and `filename` the file it came from, used
    to resolve imports made inside the body.
    """

    def __init__(self, name: str, params: List[str], tokens: list, body_start: int, closure,
                 filename: Optional[str] = None):
        self.name = name
        self.params = params
        self.tokens = tokens
        self.body_start = body_start
        self.closure = closure
        self.filename = filename

    @property
    def arity(self) -> Optional[int]:
        return len(self.params)

    def call(self, interpreter, args: List['Value']) -> 'Value':
        return interpreter.call_user_function(self, args)

    def __str__(self) -> str:
        return f"<function {self.name}>"


class Value:
    """A NEXUS runtime value."""

    __slots__ = ('type', 'data')

    def __init__(self, value_type: ValueType, data: Any = None):
        self.type = value_type
        self.data = data

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------

    @classmethod
    def nil(cls) -> 'Value':
        return cls(ValueType.NIL)

    @classmethod
    def boolean(cls, flag: bool) -> 'Value':
        return cls(ValueType.BOOLEAN, bool(flag))

    @classmethod
    def number(cls, number: float) -> 'Value':
        return cls(ValueType.NUMBER, float(number))

    @classmethod
    def string(cls, text: str) -> 'Value':
        return cls(ValueType.STRING, text)

    @classmethod
    def array(cls, items: Optional[List['Value']] = None) -> 'Value':
        return cls(ValueType.ARRAY, list(items) if items is not None else [])

    @classmethod
    def object(cls, fields: Optional[Dict[str, 'Value']] = None) -> 'Value':
        return cls(ValueType.OBJECT, dict(fields) if fields is not None else {})

    @classmethod
    def function(cls, callable_: Callable) -> 'Value':
        return cls(ValueType.FUNCTION, callable_)

    @classmethod
    def tensor(cls, tensor: Tensor) -> 'Value':
        return cls(ValueType.TENSOR, tensor)

    @classmethod
    def from_python(cls, obj: Any) -> 'Value':
        """Convert a host object into a Value."""
        if isinstance(obj, Value):
            return obj
        if obj is None:
            return cls.nil()
        if isinstance(obj, (bool, np.bool_)):
            return cls.boolean(bool(obj))
        if isinstance(obj, (int, float, np.integer, np.floating)):
            return cls.number(float(obj))
        if isinstance(obj, str):
            return cls.string(obj)
        if isinstance(obj, Tensor):
            return cls.tensor(obj)
        if isinstance(obj, np.ndarray):
            return cls.tensor(Tensor.from_array(obj))
        if isinstance(obj, Callable):
            return cls.function(obj)
        if isinstance(obj, (list, tuple)):
            return cls.array([cls.from_python(item) for item in obj])
        if isinstance(obj, dict):
            return cls.object({str(key): cls.from_python(item) for key, item in obj.items()})
        raise TypeMismatchError(f"Cannot convert {type(obj).__name__} to a NEXUS value")

    def to_python(self) -> Any:
        """Convert into plain host objects (lists, dicts, floats, ...)."""
        if self.type == ValueType.ARRAY:
            return [item.to_python() for item in self.data]
        if self.type == ValueType.OBJECT:
            return {key: item.to_python() for key, item in self.data.items()}
        return self.data

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def type_name(self) -> str:
        return TYPE_NAMES[self.type]

    def is_nil(self) -> bool:
        return self.type == ValueType.NIL

    def is_truthy(self) -> bool:
        """nil, false, 0, "", [] and {} are falsy."""
        if self.type == ValueType.NIL:
            return False
        if self.type in (ValueType.BOOLEAN, ValueType.NUMBER):
            return bool(self.data)
        if self.type in (ValueType.STRING, ValueType.ARRAY, ValueType.OBJECT):
            return len(self.data) > 0
        return True

    def copy(self) -> 'Value':
        """Independent copy for value types, the same reference otherwise."""
        if self.type == ValueType.ARRAY:
            return Value(ValueType.ARRAY, [item.copy() for item in self.data])
        if self.type == ValueType.OBJECT:
            return Value(ValueType.OBJECT, {key: item.copy() for key, item in self.data.items()})
        return self

    def length(self) -> int:
        if self.type in (ValueType.STRING, ValueType.ARRAY, ValueType.OBJECT):
            return len(self.data)
        if self.type == ValueType.TENSOR:
            return self.data.shape[0]
        raise create_type_mismatch_error("len", self.type_name)

    # ------------------------------------------------------------------
    # Printing
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        if self.type == ValueType.NIL:
            return "nil"
        if self.type == ValueType.BOOLEAN:
            return "true" if self.data else "false"
        if self.type == ValueType.NUMBER:
            return format_number(self.data)
        if self.type == ValueType.STRING:
            return self.data
        if self.type == ValueType.ARRAY:
            return "[" + ", ".join(item.repr_string() for item in self.data) + "]"
        if self.type == ValueType.OBJECT:
            fields = (f"{key}: {item.repr_string()}" for key, item in self.data.items())
            return "{" + ", ".join(fields) + "}"
        return str(self.data)

    def repr_string(self) -> str:
        """Like str(), but strings are quoted (used inside containers)."""
        if self.type == ValueType.STRING:
            escaped = self.data.replace('\\', '\\\\').replace('"', '\\"').replace('\n', '\\n')
            return f'"{escaped}"'
        return str(self)

    def __repr__(self) -> str:
        return f"Value({self.type.name}, {self.repr_string()})"

    # ------------------------------------------------------------------
    # Equality and ordering
    # ------------------------------------------------------------------

    def __eq__(self, other) -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        if self.type != other.type:
            return False
        if self.type == ValueType.NIL:
            return True
        if self.type == ValueType.FUNCTION:
            return self.data is other.data
        return self.data == other.data

    def __ne__(self, other) -> bool:
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    __hash__ = None

    def compare(self, other: 'Value', symbol: str) -> bool:
        """Ordering for number/number and string/string pairs."""
        if self.type != other.type or self.type not in (ValueType.NUMBER, ValueType.STRING):
            raise create_type_mismatch_error(symbol, self.type_name, other.type_name)
        a, b = self.data, other.data
        if symbol == "<":
            return a < b
        if symbol == "<=":
            return a <= b
        if symbol == ">":
            return a > b
        return a >= b

    def __lt__(self, other: 'Value') -> bool:
        return self.compare(other, "<")

    def __le__(self, other: 'Value') -> bool:
        return self.compare(other, "<=")

    def __gt__(self, other: 'Value') -> bool:
        return self.compare(other, ">")

    def __ge__(self, other: 'Value') -> bool:
        return self.compare(other, ">=")

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def _mismatch(self, symbol: str, other: Optional['Value'] = None) -> TypeMismatchError:
        return create_type_mismatch_error(symbol, self.type_name, other.type_name if other else None)

    def _tensor_operation(self, other: 'Value', symbol: str, method: str, reflected=None) -> 'Value':
        """Shared dispatch for tensor (+) tensor/number."""
        if self.type == ValueType.TENSOR and other.type in (ValueType.TENSOR, ValueType.NUMBER):
            return Value.tensor(getattr(self.data, method)(other.data))
        if self.type == ValueType.NUMBER and other.type == ValueType.TENSOR and reflected is not None:
            return Value.tensor(reflected(other.data, self.data))
        raise self._mismatch(symbol, other)

    def __add__(self, other: 'Value') -> 'Value':
        if self.type == ValueType.NUMBER and other.type == ValueType.NUMBER:
            return Value.number(self.data + other.data)
        if self.type == ValueType.STRING or other.type == ValueType.STRING:
            return Value.string(str(self) + str(other))
        return self._tensor_operation(other, "+", "add", lambda t, n: t.add(n))

    def __sub__(self, other: 'Value') -> 'Value':
        if self.type == ValueType.NUMBER and other.type == ValueType.NUMBER:
            return Value.number(self.data - other.data)
        return self._tensor_operation(other, "-", "subtract", lambda t, n: t.negate().add(n))

    def __mul__(self, other: 'Value') -> 'Value':
        if self.type == ValueType.NUMBER and other.type == ValueType.NUMBER:
            return Value.number(self.data * other.data)
        return self._tensor_operation(other, "*", "multiply", lambda t, n: t.multiply(n))

    def __truediv__(self, other: 'Value') -> 'Value':
        if self.type == ValueType.NUMBER and other.type == ValueType.NUMBER:
            if other.data == 0:
                raise DivisionByZeroError("Division by zero")
            return Value.number(self.data / other.data)
        return self._tensor_operation(other, "/", "divide", lambda t, n: t.rdivide(n))

    def __mod__(self, other: 'Value') -> 'Value':
        if self.type == ValueType.NUMBER and other.type == ValueType.NUMBER:
            if other.data == 0:
                raise DivisionByZeroError("Modulo by zero")
            return Value.number(math.fmod(self.data, other.data))
        raise self._mismatch("%", other)

    def __pow__(self, other: 'Value') -> 'Value':
        if self.type != ValueType.NUMBER or other.type != ValueType.NUMBER:
            raise self._mismatch("**", other)
        base, exponent = self.data, other.data
        if base == 0 and exponent < 0:
            raise DivisionByZeroError("Zero raised to a negative power")
        try:
            return Value.number(math.pow(base, exponent))
        except ValueError:
            return Value.number(math.nan)
        except OverflowError:
            negative = base < 0 and exponent.is_integer() and int(exponent) % 2 == 1
            return Value.number(-math.inf if negative else math.inf)

    def __matmul__(self, other: 'Value') -> 'Value':
        if self.type != ValueType.TENSOR or other.type != ValueType.TENSOR:
            raise self._mismatch("@", other)
        return Value.from_python(self.data.matmul(other.data))

    def __neg__(self) -> 'Value':
        if self.type == ValueType.NUMBER:
            return Value.number(-self.data)
        if self.type == ValueType.TENSOR:
            return Value.tensor(self.data.negate())
        raise self._mismatch("unary -")

    def __pos__(self) -> 'Value':
        if self.type == ValueType.NUMBER:
            return self
        raise self._mismatch("unary +")

    # ------------------------------------------------------------------
    # Bitwise operators work on the integer part of numbers
    # ------------------------------------------------------------------

    def _integer_part(self, symbol: str, other: Optional['Value'] = None) -> int:
        if self.type != ValueType.NUMBER or (other is not None and other.type != ValueType.NUMBER):
            raise self._mismatch(symbol, other)
        try:
            return int(self.data)
        except (ValueError, OverflowError) as e:
            raise NexusRuntimeError(f"Cannot apply '{symbol}' to {format_number(self.data)}") from e

    def _bitwise(self, other: 'Value', symbol: str, operation) -> 'Value':
        left = self._integer_part(symbol, other)
        right = other._integer_part(symbol)
        try:
            return Value.number(float(operation(left, right)))
        except ValueError as e:
            raise NexusRuntimeError(f"Invalid operand for '{symbol}': {e}") from e
        except OverflowError as e:
            raise NexusRuntimeError(f"Result of '{symbol}' is too large") from e

    def __and__(self, other: 'Value') -> 'Value':
        return self._bitwise(other, "&", lambda a, b: a & b)

    def __or__(self, other: 'Value') -> 'Value':
        return self._bitwise(other, "|", lambda a, b: a | b)

    def __xor__(self, other: 'Value') -> 'Value':
        return self._bitwise(other, "^", lambda a, b: a ^ b)

    def __lshift__(self, other: 'Value') -> 'Value':
        return self._bitwise(other, "<<", lambda a, b: a << b)

    def __rshift__(self, other: 'Value') -> 'Value':
        return self._bitwise(other, ">>", lambda a, b: a >> b)

    def __invert__(self) -> 'Value':
        return Value.number(float(~self._integer_part("~")))

    # ------------------------------------------------------------------
    # Indexing and members
    # ------------------------------------------------------------------

    def _position(self, index: 'Value', length: int, allow_end: bool = False) -> int:
        if index.type != ValueType.NUMBER or not float(index.data).is_integer():
            raise TypeMismatchError(f"Index must be an integer, got {index.repr_string()}")
        position = int(index.data)
        if position < 0:
            position += length
        upper = length + 1 if allow_end else length
        if not 0 <= position < upper:
            raise IndexOutOfRangeError(
                f"Index {format_number(index.data)} out of range for {self.type_name} of length {length}"
            )
        return position

    def get_item(self, index: 'Value') -> 'Value':
        if self.type == ValueType.ARRAY:
            return self.data[self._position(index, len(self.data))]
        if self.type == ValueType.STRING:
            return Value.string(self.data[self._position(index, len(self.data))])
        if self.type == ValueType.OBJECT:
            if index.type != ValueType.STRING:
                raise TypeMismatchError(f"Object keys must be strings, got {index.type_name}")
            return self.data.get(index.data, Value.nil())
        if self.type == ValueType.TENSOR:
            if index.type != ValueType.NUMBER:
                raise TypeMismatchError(f"Tensor index must be a number, got {index.type_name}")
            return Value.from_python(self.data.row(index.data))
        raise TypeMismatchError(f"Cannot index a value of type {self.type_name}")

    def set_item(self, index: 'Value', value: 'Value'):
        if self.type == ValueType.ARRAY:
            position = self._position(index, len(self.data), allow_end=True)
            if position == len(self.data):
                self.data.append(value.copy())
            else:
                self.data[position] = value.copy()
        elif self.type == ValueType.OBJECT:
            if index.type != ValueType.STRING:
                raise TypeMismatchError(f"Object keys must be strings, got {index.type_name}")
            self.data[index.data] = value.copy()
        elif self.type == ValueType.TENSOR:
            if index.type != ValueType.NUMBER or value.type not in (ValueType.NUMBER, ValueType.TENSOR):
                raise TypeMismatchError("Tensor elements take a numeric index and a number or tensor")
            self.data.set_row(index.data, value.data)
        elif self.type == ValueType.STRING:
            raise TypeMismatchError("Strings are immutable")
        else:
            raise TypeMismatchError(f"Cannot index a value of type {self.type_name}")

    def get_member(self, name: str) -> 'Value':
        if self.type == ValueType.OBJECT:
            if name in self.data:
                return self.data[name]
            if name == "length":
                return Value.number(len(self.data))
            return Value.nil()
        if self.type in (ValueType.ARRAY, ValueType.STRING) and name == "length":
            return Value.number(len(self.data))
        if self.type == ValueType.TENSOR:
            if name == "shape":
                return Value.from_python(list(self.data.shape))
            if name == "size":
                return Value.number(self.data.size)
            if name == "rank":
                return Value.number(self.data.ndim)
        raise TypeMismatchError(f"Value of type {self.type_name} has no member '{name}'")

    def set_member(self, name: str, value: 'Value'):
        if self.type != ValueType.OBJECT:
            raise TypeMismatchError(f"Cannot set member '{name}' on a value of type {self.type_name}")
        self.data[name] = value.copy()


NIL = Value.nil()
TRUE = Value.boolean(True)
FALSE = Value.boolean(False)
