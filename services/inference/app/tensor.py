"""Tensor type and the Tensor Builder.

A `Tensor` is the unit of data exchanged with the inference backend: a
contiguous little-endian buffer plus its shape and element type. The builder
lays a decoded `TimeSeriesWindow` out as the model's input tensor.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .decoder import TimeSeriesWindow

ELEMENT_SIZES = {
    "float16": 2,
    "float32": 4,
    "float64": 8,
    "int32": 4,
    "int64": 8,
    "uint8": 1,
}


def element_size(dtype: str) -> int:
    try:
        return ELEMENT_SIZES[dtype]
    except KeyError:
        raise ValueError(f"unsupported tensor dtype: {dtype}") from None


@dataclass(frozen=True)
class Tensor:
    """Binary buffer plus shape and element-type tag.

    Invariant: `len(buffer) == prod(shape) * element_size(dtype)`.
    """

    buffer: bytes
    shape: Tuple[int, ...]
    dtype: str = "float32"

    def __post_init__(self) -> None:
        object.__setattr__(self, "shape", tuple(int(d) for d in self.shape))
        if any(d < 0 for d in self.shape):
            raise ValueError(f"negative dimension in shape {self.shape}")
        expected = self.element_count * element_size(self.dtype)
        if len(self.buffer) != expected:
            raise ValueError(
                f"buffer holds {len(self.buffer)} bytes but shape {list(self.shape)} "
                f"of {self.dtype} needs {expected}"
            )

    @property
    def element_count(self) -> int:
        return math.prod(self.shape)

    @property
    def nbytes(self) -> int:
        return len(self.buffer)

    def to_numpy(self) -> np.ndarray:
        """Return a writable array view of the buffer with this tensor's shape."""
        return np.frombuffer(self.buffer, dtype=np.dtype(self.dtype).newbyteorder("<")).reshape(self.shape).copy()

    @classmethod
    def from_numpy(cls, array: np.ndarray) -> "Tensor":
        array = np.asarray(array)
        dtype = array.dtype.name
        element_size(dtype)
        data = np.ascontiguousarray(array, dtype=array.dtype.newbyteorder("<"))
        return cls(buffer=data.tobytes(), shape=tuple(array.shape), dtype=dtype)


@dataclass(frozen=True)
class TensorContract:
    """Expected slot names, shapes and dtype of the model's input and output."""

    input_name: str
    output_name: str
    input_shape: Tuple[int, ...]
    output_shape: Tuple[int, ...]
    dtype: str = "float32"

    @classmethod
    def from_settings(cls, settings) -> "TensorContract":
        batch = settings.model_batch_size
        tail = (1,) if settings.model_channel_dim else ()
        return cls(
            input_name=settings.input_tensor_name,
            output_name=settings.output_tensor_name,
            input_shape=(batch, settings.input_len) + tail,
            output_shape=(batch, settings.output_len) + tail,
        )

    @property
    def input_len(self) -> int:
        return self.input_shape[1]

    @property
    def output_len(self) -> int:
        return self.output_shape[1]


def build_input_tensor(window: TimeSeriesWindow, contract: TensorContract) -> Tensor:
    """Lay a window out as the model input tensor.

    Samples are written as little-endian float32 in order, without padding or
    scaling. Models exported with a fixed batch size receive the same window
    in every batch row.
    """
    row = np.asarray(window.values, dtype="<f4")
    batch = contract.input_shape[0]
    data = np.tile(row, batch).reshape(contract.input_shape)
    return Tensor(buffer=data.tobytes(), shape=contract.input_shape, dtype=contract.dtype)
