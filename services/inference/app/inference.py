"""Forecast pipeline: request body bytes in, response body bytes out.

    decode_window -> build_input_tensor -> InferenceSession.infer -> decode_forecast -> encode_forecast

Every stage raises a `PipelineError` subclass on failure; translating those
into HTTP responses is the route's job.
"""

import logging

from .decoder import decode_window
from .encoder import decode_forecast, encode_forecast
from .session import InferenceSession
from .tensor import build_input_tensor

logger = logging.getLogger(__name__)


class ForecastPipeline:
    """Runs one forecast per call against a shared `InferenceSession`."""

    def __init__(self, session: InferenceSession) -> None:
        self.session = session
        self.contract = session.contract

    def run(self, body: bytes) -> bytes:
        window = decode_window(body, self.contract.input_len)
        tensor = build_input_tensor(window, self.contract)
        output = self.session.infer(tensor)
        forecast = decode_forecast(output, self.contract.output_len)
        logger.debug("Forecast produced %d values from %d samples", len(forecast), len(window))
        return encode_forecast(forecast)
