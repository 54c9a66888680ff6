"""
NEXUS Runtime Package

The dynamic value model (values, tensors, callables), lexical
environments, and the runtime error taxonomy shared by the evaluator
and the builtins.

Author: xwest
"""

from .errors import (
    NexusRuntimeError, ScopeError, UndefinedVariableError, ConstantReassignmentError,
    TypeMismatchError, DivisionByZeroError, ArityError, IndexOutOfRangeError,
    StackOverflowError, TensorShapeError, ModelError, ImportFailure
)
from .tensor import Tensor
from .value import Value, ValueType, Callable, NativeFunction, UserFunction
from .environment import Environment

__all__ = [
    "Value",
    "ValueType",
    "Callable",
    "NativeFunction",
    "UserFunction",
    "Tensor",
    "Environment",
    "NexusRuntimeError",
    "ScopeError",
    "UndefinedVariableError",
    "ConstantReassignmentError",
    "TypeMismatchError",
    "DivisionByZeroError",
    "ArityError",
    "IndexOutOfRangeError",
    "StackOverflowError",
    "TensorShapeError",
    "ModelError",
    "ImportFailure",
]
