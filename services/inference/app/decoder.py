"""Request Decoder: raw request body -> validated `TimeSeriesWindow`."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Tuple

from .errors import InvalidValue, MalformedInput, ShapeMismatch

VALUES_FIELD = "values"
# largest finite float32, the model input dtype
FLOAT32_MAX = 3.4028234663852886e38


@dataclass(frozen=True)
class TimeSeriesWindow:
    """Equidistant past observations, oldest first."""

    values: Tuple[float, ...]

    def __len__(self) -> int:
        return len(self.values)


def _as_sample(index: int, item) -> float:
    # bool is an int subclass; JSON true/false are not samples
    if isinstance(item, bool) or not isinstance(item, (int, float)):
        raise InvalidValue(f"element {index} is not a number: {item!r}")
    try:
        value = float(item)
    except OverflowError:
        raise InvalidValue(f"element {index} is out of range") from None
    if not math.isfinite(value):
        raise InvalidValue(f"element {index} is not finite: {item!r}")
    if abs(value) > FLOAT32_MAX:
        raise InvalidValue(f"element {index} exceeds the float32 range: {item!r}")
    return value


def decode_window(body: bytes, input_len: int) -> TimeSeriesWindow:
    """Parse `{"values": [...]}` into a window of exactly `input_len` samples.

    Args:
        body: Raw request body.
        input_len: Window length the model expects.

    Returns:
        TimeSeriesWindow: The decoded samples in request order.

    Raises:
        MalformedInput: Body is empty, not UTF-8 JSON, or lacks a `values` array.
        InvalidValue: An element is not a finite number.
        ShapeMismatch: `values` holds more or fewer than `input_len` elements.
    """
    if not body or not body.strip():
        raise MalformedInput("request body is empty")
    try:
        doc = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedInput(f"request body is not valid JSON ({exc})") from None
    except RecursionError:
        raise MalformedInput("request body is nested too deeply") from None

    if not isinstance(doc, dict):
        raise MalformedInput(f"expected a JSON object with a '{VALUES_FIELD}' array")
    if VALUES_FIELD not in doc:
        raise MalformedInput(f"missing '{VALUES_FIELD}' field")
    raw = doc[VALUES_FIELD]
    if not isinstance(raw, list):
        raise MalformedInput(f"'{VALUES_FIELD}' must be an array")

    samples = tuple(_as_sample(i, item) for i, item in enumerate(raw))
    if len(samples) != input_len:
        raise ShapeMismatch(f"expected {input_len} values, got {len(samples)}")
    return TimeSeriesWindow(values=samples)
