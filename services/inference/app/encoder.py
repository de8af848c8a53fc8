"""Response Encoder: output `Tensor` -> `Forecast` -> response body bytes."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .errors import ExecutionFailed, OutputShapeMismatch
from .tensor import Tensor

MEDIA_TYPE = "application/json"


@dataclass(frozen=True)
class Forecast:
    values: Tuple[float, ...]

    def __len__(self) -> int:
        return len(self.values)


def decode_forecast(tensor: Tensor, output_len: int) -> Forecast:
    """Decode the first batch row of the output tensor into a forecast.

    Raises:
        OutputShapeMismatch: Wrong dtype, or a batch row does not hold `output_len` elements.
        ExecutionFailed: The model produced NaN or infinite predictions.
    """
    if tensor.dtype != "float32":
        raise OutputShapeMismatch(f"expected float32 output, got {tensor.dtype}")
    if len(tensor.shape) < 2 or tensor.shape[0] < 1:
        raise OutputShapeMismatch(f"expected a batched output, got shape {list(tensor.shape)}")
    per_row = math.prod(tensor.shape[1:])
    if per_row != output_len:
        raise OutputShapeMismatch(
            f"expected {output_len} predictions per row, got {per_row} (shape {list(tensor.shape)})"
        )

    row = np.frombuffer(tensor.buffer, dtype="<f4", count=output_len)
    if not np.all(np.isfinite(row)):
        raise ExecutionFailed("model produced non-finite predictions")
    return Forecast(values=tuple(row.tolist()))


def encode_forecast(forecast: Forecast) -> bytes:
    """Serialize a forecast as `{"values": [...]}`."""
    return json.dumps({"values": list(forecast.values)}, allow_nan=False).encode("utf-8")
