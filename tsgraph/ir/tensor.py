from __future__ import annotations
import math
import sys
from dataclasses import dataclass, field
from functools import reduce
import operator
from typing import Any, List, Optional

import numpy as np

# All multi-byte reads are little-endian.
NUMPY_DTYPES = {
    "uint8": np.dtype("<u1"),
    "int8": np.dtype("<i1"),
    "int16": np.dtype("<i2"),
    "int32": np.dtype("<i4"),
    "int64": np.dtype("<i8"),
    "float16": np.dtype("<f2"),
    "float32": np.dtype("<f4"),
    "float64": np.dtype("<f8"),
}

DISPLAY_LIMIT = 10000


@dataclass
class TensorShape:
    dimensions: List[int] = field(default_factory=list)

    def __str__(self) -> str:
        if self.dimensions:
            return '[' + ','.join(str(d) for d in self.dimensions) + ']'
        return ''


@dataclass
class TensorType:
    data_type: Optional[str]
    shape: Optional[TensorShape]

    def __str__(self) -> str:
        return f"{self.data_type or '?'}{self.shape or ''}"


@dataclass
class _DecodeContext:
    values: List[Any]
    dimensions: List[int]
    limit: int
    index: int = 0
    count: int = 0


class Tensor:
    """Read-only view of a tensor initializer, decoded lazily on access."""

    def __init__(self, name: str, data_type: Optional[str], dimensions: Optional[List[int]],
                 data: Optional[bytes], offset: int = 0, display_limit: int = DISPLAY_LIMIT):
        self.name = name or ''
        shape = TensorShape(list(dimensions)) if dimensions is not None else None
        self.type = TensorType(data_type, shape)
        self.data = data
        self.offset = offset
        self.display_limit = display_limit

    @classmethod
    def from_tensor_object(cls, tensor, display_limit: int = DISPLAY_LIMIT) -> Tensor:
        storage = tensor.storage
        return cls(name=tensor.name,
                   data_type=storage.dtype if storage is not None else None,
                   dimensions=tensor.size,
                   data=storage.data if storage is not None else None,
                   offset=tensor.storage_offset or 0,
                   display_limit=display_limit)

    @property
    def kind(self) -> str:
        return 'Tensor'

    @property
    def state(self) -> Optional[str]:
        """A diagnostic when the tensor cannot be decoded, otherwise None."""
        data_type = self.type.data_type
        if not data_type:
            return 'Tensor has no data type.'
        if data_type not in NUMPY_DTYPES:
            return f"Tensor data type '{data_type}' is not supported."
        if self.type.shape is None:
            return 'Tensor has no dimensions.'
        if not self.data:
            return 'Tensor data is empty.'
        itemsize = NUMPY_DTYPES[data_type].itemsize
        if len(self.data) < (self.offset + self.element_count) * itemsize:
            return 'Tensor data is too short.'
        return None

    @property
    def element_count(self) -> int:
        dimensions = self.type.shape.dimensions if self.type.shape else []
        return reduce(operator.mul, dimensions, 1)

    @property
    def value(self) -> Any:
        if self.state:
            return None
        return self.decode(sys.maxsize)

    def __str__(self) -> str:
        if self.state:
            return ''
        return _stringify(self.decode(self.display_limit), '', '    ')

    def decode(self, limit: int) -> Any:
        """Nested row-major lists, truncated with '...' once more than `limit` elements were read."""
        dtype = NUMPY_DTYPES[self.type.data_type]
        dimensions = self.type.shape.dimensions
        count = min(self.element_count, limit + 1)
        flat = np.frombuffer(self.data, dtype=dtype, count=count, offset=self.offset * dtype.itemsize)
        context = _DecodeContext(values=flat.tolist(), dimensions=dimensions or [1], limit=limit)
        result = _decode(context, 0)
        if not dimensions:
            return result[0]
        return result


def _decode(context: _DecodeContext, dimension: int) -> List[Any]:
    results: List[Any] = []
    size = context.dimensions[dimension]
    last = dimension == len(context.dimensions) - 1
    for _ in range(size):
        if context.count > context.limit:
            results.append('...')
            return results
        if last:
            results.append(context.values[context.index])
            context.index += 1
            context.count += 1
        else:
            results.append(_decode(context, dimension + 1))
    return results


def _stringify(value: Any, indentation: str, indent: str) -> str:
    if isinstance(value, list):
        result = [indentation + '[']
        items = [_stringify(item, indentation + indent, indent) for item in value]
        if items:
            result.append(',\n'.join(items))
        result.append(indentation + ']')
        return '\n'.join(result)
    if isinstance(value, str):
        return indentation + value
    if isinstance(value, float):
        if math.isnan(value):
            return indentation + 'NaN'
        if math.isinf(value):
            return indentation + ('Infinity' if value > 0 else '-Infinity')
    return indentation + str(value)
