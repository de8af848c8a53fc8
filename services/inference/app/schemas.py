"""API schemas.

The forecast route reads the raw request body so that decoding errors map onto
the service's own error taxonomy. These models document the wire format in
the OpenAPI spec and type the auxiliary endpoints.
"""

from typing import List

from pydantic import BaseModel


class ForecastRequest(BaseModel):
    """History window, oldest sample first; exactly INPUT_LEN finite numbers."""

    values: List[float]


class ForecastResponse(BaseModel):
    """Forecast, next step first; exactly OUTPUT_LEN numbers."""

    values: List[float]


class ErrorResponse(BaseModel):
    """`detail` is `"<ErrorKind>: <message>"`, e.g. `"ShapeMismatch: expected 128 values, got 127"`."""

    detail: str


class SlotOut(BaseModel):
    name: str
    shape: List[int]
    dtype: str


class ModelOut(BaseModel):
    state: str
    backend: str
    target: str
    model_path: str
    input: SlotOut
    output: SlotOut


class HealthOut(BaseModel):
    status: str
    service: str
    session: str
