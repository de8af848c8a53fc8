"""Tests for output tensor decoding and response serialization."""

import json

import numpy as np
import pytest

from app.encoder import Forecast, decode_forecast, encode_forecast
from app.errors import ExecutionFailed, OutputShapeMismatch, ServerError
from app.tensor import Tensor


def _output(values, shape=None, dtype=np.float32) -> Tensor:
    array = np.asarray(values, dtype=dtype)
    return Tensor.from_numpy(array.reshape(shape or (1, array.size)))


def test_decodes_in_sequence_order() -> None:
    """Predictions are decoded in tensor order."""
    values = [i * 0.25 for i in range(24)]
    forecast = decode_forecast(_output(values), 24)
    assert forecast.values == tuple(values)


def test_decodes_first_batch_row_only() -> None:
    """Fixed-batch outputs yield the first batch row."""
    rows = np.stack([np.full(24, i, dtype=np.float32) for i in range(16)]).reshape(16, 24, 1)
    forecast = decode_forecast(Tensor.from_numpy(rows), 24)
    assert forecast.values == (0.0,) * 24


@pytest.mark.parametrize("n", [23, 25])
def test_wrong_length_is_output_shape_mismatch(n) -> None:
    """A row length other than OUTPUT_LEN raises OutputShapeMismatch."""
    with pytest.raises(OutputShapeMismatch):
        decode_forecast(_output([0.0] * n), 24)


def test_unbatched_output_is_rejected() -> None:
    """A one-dimensional output raises OutputShapeMismatch."""
    with pytest.raises(OutputShapeMismatch):
        decode_forecast(_output([0.0] * 24, shape=(24,)), 24)


def test_wrong_dtype_is_rejected() -> None:
    """A non-float32 output raises OutputShapeMismatch."""
    with pytest.raises(OutputShapeMismatch):
        decode_forecast(_output([0.0] * 24, dtype=np.float64), 24)


def test_non_finite_predictions_fail_execution() -> None:
    """NaN predictions raise ExecutionFailed."""
    values = [0.0] * 24
    values[5] = float("nan")
    with pytest.raises(ExecutionFailed):
        decode_forecast(_output(values), 24)


def test_encode_produces_values_document() -> None:
    """A forecast serializes to a JSON values document."""
    body = encode_forecast(Forecast(values=(1.5, -2.0, 0.0)))
    assert json.loads(body) == {"values": [1.5, -2.0, 0.0]}


def test_output_errors_are_server_errors() -> None:
    """Output shape errors map to a 5xx status."""
    assert issubclass(OutputShapeMismatch, ServerError)
    assert OutputShapeMismatch.status_code >= 500
