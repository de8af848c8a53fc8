"""Inference backend implementations.

Import the concrete backend through `create_backend(name)` so the onnxruntime
dependency is only imported when that backend is selected.
"""

from .base import (
    BackendComputeError,
    BackendError,
    BackendUnavailableError,
    GraphSignature,
    InferenceBackend,
    SlotSignature,
)


def create_backend(name: str, contract) -> InferenceBackend:
    """Instantiate a backend by its configured name ("onnx" or "fake").

    The fake backend declares slots matching `contract` so it passes startup
    validation; the onnx backend reports whatever the model file declares.
    """
    if name == "onnx":
        from .onnx import OnnxBackend

        return OnnxBackend()
    if name == "fake":
        from .fake import FakeBackend

        return FakeBackend.for_contract(contract)
    raise ValueError(f"unknown inference backend: {name}")


__all__ = [
    "BackendComputeError",
    "BackendError",
    "BackendUnavailableError",
    "GraphSignature",
    "InferenceBackend",
    "SlotSignature",
    "create_backend",
]
