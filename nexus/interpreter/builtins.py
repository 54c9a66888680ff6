"""
Builtin functions available to every NEXUS program.

Each builtin is a NativeFunction taking `(interpreter, args)`. Builtins
never mutate their arguments: array helpers such as push() return a new
array, which keeps arrays behaving as values.

Author: xwest
"""

import math
import time
from typing import Dict, List, Optional

import numpy as np

from ..runtime.errors import ArityError, TypeMismatchError, NexusRuntimeError
from ..runtime.tensor import Tensor, format_number
from ..runtime.value import Value, ValueType, NativeFunction, NIL


def _check_count(name: str, args: List[Value], minimum: int, maximum: Optional[int] = None):
    """Arity check for builtins accepting a range of argument counts."""
    if len(args) < minimum or (maximum is not None and len(args) > maximum):
        if maximum is None:
            expected = f"at least {minimum}"
        elif maximum == minimum:
            expected = str(minimum)
        else:
            expected = f"{minimum} to {maximum}"
        raise ArityError(f"Function '{name}' expects {expected} arguments, got {len(args)}")


def _expect(name: str, value: Value, *types: ValueType) -> Value:
    if value.type not in types:
        expected = " or ".join(t.name.lower() for t in types)
        raise TypeMismatchError(f"{name}() expects {expected}, got {value.type_name}")
    return value


def _number(name: str, value: Value) -> float:
    return _expect(name, value, ValueType.NUMBER).data


def _integer(name: str, value: Value) -> int:
    number = _number(name, value)
    if not float(number).is_integer():
        raise TypeMismatchError(f"{name}() expects an integer, got {format_number(number)}")
    return int(number)


def _as_tensor(name: str, value: Value) -> Tensor:
    """Tensors pass through, arrays of numbers are converted."""
    if value.type == ValueType.TENSOR:
        return value.data
    if value.type == ValueType.ARRAY:
        return Tensor.from_nested(value.to_python())
    raise TypeMismatchError(f"{name}() expects a tensor or array, got {value.type_name}")


def _shape(name: str, args: List[Value]) -> List[int]:
    """zeros(2, 3) and zeros([2, 3]) both describe shape [2, 3]."""
    if len(args) == 1 and args[0].type == ValueType.ARRAY:
        return [_integer(name, dim) for dim in args[0].data]
    return [_integer(name, dim) for dim in args]


def _axis(name: str, args: List[Value]) -> Optional[int]:
    if len(args) > 1 and not args[1].is_nil():
        return _integer(name, args[1])
    return None


# ----------------------------------------------------------------------
# General purpose
# ----------------------------------------------------------------------

def builtin_print(interpreter, args: List[Value]) -> Value:
    interpreter.write(" ".join(str(arg) for arg in args) + "\n")
    return NIL


def builtin_len(interpreter, args: List[Value]) -> Value:
    return Value.number(args[0].length())


def builtin_type(interpreter, args: List[Value]) -> Value:
    return Value.string(args[0].type_name)


def builtin_str(interpreter, args: List[Value]) -> Value:
    return Value.string(str(args[0]))


def builtin_num(interpreter, args: List[Value]) -> Value:
    value = args[0]
    if value.type == ValueType.NUMBER:
        return value
    if value.type == ValueType.BOOLEAN:
        return Value.number(1.0 if value.data else 0.0)
    if value.type == ValueType.STRING:
        try:
            return Value.number(float(value.data.strip()))
        except ValueError as e:
            raise TypeMismatchError(f"Cannot convert {value.repr_string()} to a number") from e
    raise TypeMismatchError(f"Cannot convert a {value.type_name} to a number")


def builtin_push(interpreter, args: List[Value]) -> Value:
    array = _expect("push", args[0], ValueType.ARRAY).copy()
    array.data.append(args[1].copy())
    return array


def builtin_slice(interpreter, args: List[Value]) -> Value:
    _check_count("slice", args, 2, 3)
    sequence = _expect("slice", args[0], ValueType.ARRAY, ValueType.STRING)
    start = _integer("slice", args[1])
    end = _integer("slice", args[2]) if len(args) == 3 else None
    if sequence.type == ValueType.STRING:
        return Value.string(sequence.data[start:end])
    return Value.array([item.copy() for item in sequence.data[start:end]])


def builtin_keys(interpreter, args: List[Value]) -> Value:
    obj = _expect("keys", args[0], ValueType.OBJECT)
    return Value.array([Value.string(key) for key in obj.data])


def builtin_has(interpreter, args: List[Value]) -> Value:
    container = _expect("has", args[0], ValueType.OBJECT, ValueType.ARRAY, ValueType.STRING)
    if container.type == ValueType.OBJECT:
        key = _expect("has", args[1], ValueType.STRING)
        return Value.boolean(key.data in container.data)
    if container.type == ValueType.STRING:
        needle = _expect("has", args[1], ValueType.STRING)
        return Value.boolean(needle.data in container.data)
    return Value.boolean(any(item == args[1] for item in container.data))


def builtin_range(interpreter, args: List[Value]) -> Value:
    _check_count("range", args, 1, 3)
    bounds = [_integer("range", arg) for arg in args]
    if len(bounds) == 1:
        bounds.insert(0, 0)
    if len(bounds) == 3 and bounds[2] == 0:
        raise NexusRuntimeError("range() step must not be zero")
    return Value.array([Value.number(i) for i in range(*bounds)])


# ----------------------------------------------------------------------
# Math
# ----------------------------------------------------------------------

def _math_function(name: str, function):
    """Wrap a float -> float function; domain errors give nan."""
    def wrapper(interpreter, args: List[Value]) -> Value:
        x = _number(name, args[0])
        try:
            return Value.number(function(x))
        except ValueError:
            return Value.number(math.nan)
        except OverflowError:
            return Value.number(math.inf)
    return wrapper


def _round_half_away(x: float) -> float:
    if math.isnan(x) or math.isinf(x):
        return x
    return math.copysign(math.floor(abs(x) + 0.5), x)


def _log(x: float) -> float:
    if x == 0:
        return -math.inf
    return math.log(x)


def _extremum(name: str, pick):
    def wrapper(interpreter, args: List[Value]) -> Value:
        _check_count(name, args, 1)
        values = args
        if len(args) == 1 and args[0].type == ValueType.ARRAY:
            values = args[0].data
            if not values:
                raise NexusRuntimeError(f"{name}() of an empty array")
        if len(args) == 1 and args[0].type == ValueType.TENSOR:
            array = args[0].data.array
            return Value.number(float(np.max(array) if pick is max else np.min(array)))
        return pick(values, key=lambda v: _number(name, v))
    return wrapper


def builtin_random(interpreter, args: List[Value]) -> Value:
    return Value.number(float(np.random.random()))


def builtin_clock(interpreter, args: List[Value]) -> Value:
    return Value.number(time.perf_counter())


# ----------------------------------------------------------------------
# Tensors
# ----------------------------------------------------------------------

def builtin_zeros(interpreter, args: List[Value]) -> Value:
    _check_count("zeros", args, 1)
    return Value.tensor(Tensor(_shape("zeros", args)))


def builtin_ones(interpreter, args: List[Value]) -> Value:
    _check_count("ones", args, 1)
    return Value.tensor(Tensor(_shape("ones", args)).ones())


def builtin_rand(interpreter, args: List[Value]) -> Value:
    _check_count("rand", args, 1)
    return Value.tensor(Tensor(_shape("rand", args)).randomize(0.0, 1.0))


def builtin_reshape(interpreter, args: List[Value]) -> Value:
    tensor = _as_tensor("reshape", args[0]).copy()
    return Value.tensor(tensor.reshape(_shape("reshape", args[1:])))


def builtin_matmul(interpreter, args: List[Value]) -> Value:
    left = _as_tensor("matmul", args[0])
    right = _as_tensor("matmul", args[1])
    return Value.from_python(left.matmul(right))


def builtin_transpose(interpreter, args: List[Value]) -> Value:
    return Value.tensor(_as_tensor("transpose", args[0]).transpose())


def builtin_shape(interpreter, args: List[Value]) -> Value:
    return Value.from_python(list(_as_tensor("shape", args[0]).shape))


def builtin_sum(interpreter, args: List[Value]) -> Value:
    _check_count("sum", args, 1, 2)
    return Value.from_python(_as_tensor("sum", args[0]).sum(_axis("sum", args)))


def builtin_mean(interpreter, args: List[Value]) -> Value:
    _check_count("mean", args, 1, 2)
    return Value.from_python(_as_tensor("mean", args[0]).mean(_axis("mean", args)))


def builtin_norm(interpreter, args: List[Value]) -> Value:
    return Value.number(_as_tensor("norm", args[0]).norm())


def builtin_dot(interpreter, args: List[Value]) -> Value:
    left = _as_tensor("dot", args[0])
    right = _as_tensor("dot", args[1])
    if left.ndim != 1 or right.ndim != 1:
        raise TypeMismatchError("dot() expects two vectors")
    return Value.from_python(left.matmul(right))


# ----------------------------------------------------------------------
# Models and profiling
# ----------------------------------------------------------------------

def _name(function: str, value: Value) -> str:
    return _expect(function, value, ValueType.STRING).data


def builtin_save_model(interpreter, args: List[Value]) -> Value:
    interpreter.save_model(_name("save_model", args[0]), _name("save_model", args[1]))
    return NIL


def builtin_load_model(interpreter, args: List[Value]) -> Value:
    interpreter.load_model(_name("load_model", args[0]), _name("load_model", args[1]))
    return NIL


def builtin_model_summary(interpreter, args: List[Value]) -> Value:
    network = interpreter.get_model(_name("model_summary", args[0]))
    return Value.string(network.summary())


def builtin_start_timer(interpreter, args: List[Value]) -> Value:
    interpreter.start_timer(_name("start_timer", args[0]))
    return NIL


def builtin_end_timer(interpreter, args: List[Value]) -> Value:
    return Value.number(interpreter.end_timer(_name("end_timer", args[0])))


# name -> (arity, implementation); arity None means the builtin checks itself
BUILTINS = {
    "print": (None, builtin_print),
    "len": (1, builtin_len),
    "type": (1, builtin_type),
    "str": (1, builtin_str),
    "num": (1, builtin_num),
    "push": (2, builtin_push),
    "slice": (None, builtin_slice),
    "keys": (1, builtin_keys),
    "has": (2, builtin_has),
    "range": (None, builtin_range),
    "abs": (1, _math_function("abs", abs)),
    "sqrt": (1, _math_function("sqrt", math.sqrt)),
    "floor": (1, _math_function("floor", math.floor)),
    "ceil": (1, _math_function("ceil", math.ceil)),
    "round": (1, _math_function("round", _round_half_away)),
    "min": (None, _extremum("min", min)),
    "max": (None, _extremum("max", max)),
    "random": (0, builtin_random),
    "clock": (0, builtin_clock),
    "zeros": (None, builtin_zeros),
    "ones": (None, builtin_ones),
    "rand": (None, builtin_rand),
    "reshape": (None, builtin_reshape),
    "matmul": (2, builtin_matmul),
    "transpose": (1, builtin_transpose),
    "shape": (1, builtin_shape),
    "sum": (None, builtin_sum),
    "mean": (None, builtin_mean),
    "norm": (1, builtin_norm),
    "dot": (2, builtin_dot),
    "save_model": (2, builtin_save_model),
    "load_model": (2, builtin_load_model),
    "model_summary": (1, builtin_model_summary),
    "start_timer": (1, builtin_start_timer),
    "end_timer": (1, builtin_end_timer),
}


def create_builtins() -> Dict[str, NativeFunction]:
    return {name: NativeFunction(name, arity, function) for name, (arity, function) in BUILTINS.items()}


def create_math_module() -> Value:
    """The object bound by `import math`."""
    functions = {
        "sin": math.sin,
        "cos": math.cos,
        "tan": math.tan,
        "exp": math.exp,
        "log": _log,
        "sqrt": math.sqrt,
        "floor": math.floor,
        "ceil": math.ceil,
        "abs": abs,
    }
    fields = {
        "pi": Value.number(math.pi),
        "e": Value.number(math.e),
    }
    for name, function in functions.items():
        fields[name] = Value.function(NativeFunction(f"math.{name}", 1, _math_function(name, function)))
    return Value.object(fields)
