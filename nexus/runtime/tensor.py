"""
NEXUS tensor type.

A fixed-shape block of float64 numbers backed by a numpy array. Tensors
are reference values: every NEXUS variable holding a tensor shares the
same underlying storage, so `set_at`, `fill` and `reshape` are visible
through all of them.

Author: xwest
"""

import math
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import (
    TensorShapeError, IndexOutOfRangeError, DivisionByZeroError, create_shape_mismatch_error
)


def format_number(number: float) -> str:
    """Render a number the way NEXUS prints it: integral values without '.0'."""
    if math.isnan(number):
        return "nan"
    if math.isinf(number):
        return "inf" if number > 0 else "-inf"
    if float(number).is_integer() and abs(number) < 1e16:
        return str(int(number))
    return repr(float(number))


class Tensor:
    """
    NEXUS tensor implementation.

    The invariant `size == prod(shape)` holds for the lifetime of the
    object; reshaping to a different total size is rejected.
    """

    def __init__(self, shape: Sequence[int], data: Optional[Sequence[float]] = None):
        shape = self._validate_shape(shape)
        size = int(np.prod(shape)) if shape else 1

        if data is None:
            self._array = np.zeros(shape, dtype=np.float64)
        else:
            flat = np.asarray(data, dtype=np.float64).ravel()
            if flat.size != size:
                raise TensorShapeError(
                    f"Tensor of shape {list(shape)} needs {size} values, got {flat.size}"
                )
            self._array = flat.reshape(shape).copy()

    @classmethod
    def from_array(cls, array: np.ndarray) -> 'Tensor':
        """Wrap a numpy array without copying when it is already float64."""
        tensor = cls.__new__(cls)
        tensor._array = np.atleast_1d(np.asarray(array, dtype=np.float64))
        return tensor

    @classmethod
    def from_nested(cls, nested) -> 'Tensor':
        """Build a tensor from (possibly nested) lists of numbers."""
        try:
            array = np.array(nested, dtype=np.float64)
        except (ValueError, TypeError) as e:
            raise TensorShapeError(
                "Tensor data must be a rectangular nested list of numbers",
                help_text=str(e)
            ) from e
        if array.ndim == 0:
            array = array.reshape(1)
        if array.size == 0:
            raise TensorShapeError("Cannot create a tensor from an empty list")
        return cls.from_array(array)

    @staticmethod
    def _validate_shape(shape: Sequence[int]) -> Tuple[int, ...]:
        if isinstance(shape, (int, float)):
            shape = (shape,)
        dims = []
        for dim in shape:
            if float(dim) != int(dim) or int(dim) <= 0:
                raise TensorShapeError(f"Invalid tensor dimension: {dim}")
            dims.append(int(dim))
        if not dims:
            raise TensorShapeError("A tensor needs at least one dimension")
        return tuple(dims)

    # ------------------------------------------------------------------
    # Shape information
    # ------------------------------------------------------------------

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(self._array.shape)

    @property
    def size(self) -> int:
        return int(self._array.size)

    @property
    def ndim(self) -> int:
        return self._array.ndim

    @property
    def array(self) -> np.ndarray:
        return self._array

    @property
    def data(self) -> np.ndarray:
        """Flat view over the storage."""
        return self._array.reshape(-1)

    def reshape(self, shape: Sequence[int]) -> 'Tensor':
        """Change the shape in place; the total size must not change."""
        new_shape = self._validate_shape(shape)
        if int(np.prod(new_shape)) != self.size:
            raise create_shape_mismatch_error(self.shape, new_shape, "reshape")
        self._array = self._array.reshape(new_shape)
        return self

    # ------------------------------------------------------------------
    # Element access
    # ------------------------------------------------------------------

    def _normalize_indices(self, indices: Sequence[int]) -> Tuple[int, ...]:
        if len(indices) != self.ndim:
            raise IndexOutOfRangeError(
                f"Tensor of rank {self.ndim} needs {self.ndim} indices, got {len(indices)}"
            )
        normalized = []
        for index, dim in zip(indices, self.shape):
            index = int(index)
            if index < 0:
                index += dim
            if not 0 <= index < dim:
                raise IndexOutOfRangeError(f"Tensor index {index} out of range for dimension {dim}")
            normalized.append(index)
        return tuple(normalized)

    def at(self, *indices: int) -> float:
        return float(self._array[self._normalize_indices(indices)])

    def set_at(self, indices: Sequence[int], value: float):
        self._array[self._normalize_indices(indices)] = value

    def row(self, index: int) -> Union[float, 'Tensor']:
        """Index the first axis: a number for rank 1, a view for higher ranks."""
        index = int(index)
        length = self.shape[0]
        if index < 0:
            index += length
        if not 0 <= index < length:
            raise IndexOutOfRangeError(f"Tensor index {index} out of range for length {length}")
        if self.ndim == 1:
            return float(self._array[index])
        return Tensor.from_array(self._array[index])

    def set_row(self, index: int, value: Union[float, 'Tensor']):
        index = int(index)
        length = self.shape[0]
        if index < 0:
            index += length
        if not 0 <= index < length:
            raise IndexOutOfRangeError(f"Tensor index {index} out of range for length {length}")
        if isinstance(value, Tensor):
            if value.shape != self.shape[1:]:
                raise create_shape_mismatch_error(self.shape[1:], value.shape, "row assignment")
            self._array[index] = value.array
        else:
            self._array[index] = value

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def _operand(self, other: Union['Tensor', float], operation: str):
        if isinstance(other, Tensor):
            if other.shape != self.shape:
                raise create_shape_mismatch_error(self.shape, other.shape, operation)
            return other.array
        return float(other)

    def add(self, other: Union['Tensor', float]) -> 'Tensor':
        return Tensor.from_array(self._array + self._operand(other, "+"))

    def subtract(self, other: Union['Tensor', float]) -> 'Tensor':
        return Tensor.from_array(self._array - self._operand(other, "-"))

    def multiply(self, other: Union['Tensor', float]) -> 'Tensor':
        return Tensor.from_array(self._array * self._operand(other, "*"))

    def divide(self, other: Union['Tensor', float]) -> 'Tensor':
        operand = self._operand(other, "/")
        if np.any(np.asarray(operand) == 0):
            raise DivisionByZeroError("Tensor division by zero")
        return Tensor.from_array(self._array / operand)

    def rdivide(self, number: float) -> 'Tensor':
        """number / tensor, element-wise."""
        if np.any(self._array == 0):
            raise DivisionByZeroError("Tensor division by zero")
        return Tensor.from_array(float(number) / self._array)

    def negate(self) -> 'Tensor':
        return Tensor.from_array(-self._array)

    def matmul(self, other: 'Tensor') -> Union[float, 'Tensor']:
        """Matrix product; vector . vector collapses to a number."""
        if self.ndim > 2 or other.ndim > 2:
            raise TensorShapeError("Matrix multiplication supports tensors of rank 1 or 2")
        inner_left = self.shape[-1]
        inner_right = other.shape[0]
        if inner_left != inner_right:
            raise create_shape_mismatch_error(self.shape, other.shape, "@")
        result = np.matmul(self._array, other.array)
        if np.ndim(result) == 0:
            return float(result)
        return Tensor.from_array(result)

    def transpose(self) -> 'Tensor':
        if self.ndim > 2:
            raise TensorShapeError("transpose supports tensors of rank 1 or 2")
        return Tensor.from_array(np.ascontiguousarray(self._array.T))

    # ------------------------------------------------------------------
    # Reductions
    # ------------------------------------------------------------------

    def _check_axis(self, axis: Optional[int]) -> Optional[int]:
        if axis is None:
            return None
        axis = int(axis)
        if not -self.ndim <= axis < self.ndim:
            raise IndexOutOfRangeError(f"Axis {axis} out of range for tensor of rank {self.ndim}")
        return axis

    def sum(self, axis: Optional[int] = None) -> Union[float, 'Tensor']:
        axis = self._check_axis(axis)
        if axis is None or self.ndim == 1:
            return float(np.sum(self._array))
        return Tensor.from_array(np.sum(self._array, axis=axis))

    def mean(self, axis: Optional[int] = None) -> Union[float, 'Tensor']:
        axis = self._check_axis(axis)
        if axis is None or self.ndim == 1:
            return float(np.mean(self._array))
        return Tensor.from_array(np.mean(self._array, axis=axis))

    def norm(self) -> float:
        return float(np.linalg.norm(self._array))

    # ------------------------------------------------------------------
    # In-place fills
    # ------------------------------------------------------------------

    def fill(self, value: float) -> 'Tensor':
        self._array.fill(value)
        return self

    def zero(self) -> 'Tensor':
        return self.fill(0.0)

    def ones(self) -> 'Tensor':
        return self.fill(1.0)

    def randomize(self, low: float = -1.0, high: float = 1.0) -> 'Tensor':
        self._array[...] = np.random.uniform(low, high, size=self.shape)
        return self

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def copy(self) -> 'Tensor':
        return Tensor.from_array(self._array.copy())

    def to_nested(self) -> List:
        return self._array.tolist()

    def __eq__(self, other) -> bool:
        if not isinstance(other, Tensor):
            return NotImplemented
        return self.shape == other.shape and bool(np.array_equal(self._array, other.array))

    __hash__ = None

    def __str__(self) -> str:
        return f"tensor({self._format(self._array)})"

    def __repr__(self) -> str:
        return f"Tensor(shape={list(self.shape)})"

    def _format(self, array: np.ndarray) -> str:
        if array.ndim == 1:
            return "[" + ", ".join(format_number(float(x)) for x in array) + "]"
        return "[" + ", ".join(self._format(sub) for sub in array) + "]"


def zeros(shape: Sequence[int]) -> Tensor:
    return Tensor(shape)


def ones(shape: Sequence[int]) -> Tensor:
    return Tensor(shape).ones()


def rand(shape: Sequence[int], low: float = 0.0, high: float = 1.0) -> Tensor:
    return Tensor(shape).randomize(low, high)
