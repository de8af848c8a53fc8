"""Inference Session: owns the loaded graph and execution context.

Lifecycle::

    UNLOADED --load--> LOADED --bind--> BOUND --compute--> EXECUTED --read--> LOADED
        ^                                                                       |
        +---------------------------------close---------------------------------+

One session is created at startup and reused for every request. The backend
context is not safe for concurrent use, so `infer` holds a lock for the whole
bind -> compute -> read sequence; concurrent requests queue on it. Running
several worker processes gives each worker its own session.
"""

from __future__ import annotations

import logging
import math
import threading
from enum import Enum
from typing import Optional

from .backends.base import (
    BackendComputeError,
    BackendError,
    BackendUnavailableError,
    InferenceBackend,
    SlotSignature,
)
from .errors import (
    BackendUnavailable,
    ExecutionFailed,
    ModelLoadFailed,
    OutputShapeMismatch,
    PipelineError,
)
from .tensor import Tensor, TensorContract, element_size

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"
    BOUND = "bound"
    EXECUTED = "executed"


def _check_slot(role: str, declared: Optional[SlotSignature], name: str, shape, dtype: str) -> None:
    if declared is None:
        raise ModelLoadFailed(f"model has no {role} slot named {name!r}")
    if declared.dtype != dtype:
        raise ModelLoadFailed(f"model {role} {name!r} is {declared.dtype}, expected {dtype}")
    if len(declared.shape) != len(shape) or any(
        isinstance(d, int) and d != e for d, e in zip(declared.shape, shape)
    ):
        raise ModelLoadFailed(
            f"model {role} {name!r} has shape {list(declared.shape)}, expected {list(shape)}"
        )


class InferenceSession:
    """A loaded model plus one execution context on an inference backend."""

    def __init__(self, backend: InferenceBackend, contract: TensorContract, target: str = "cpu") -> None:
        self.backend = backend
        self.contract = contract
        self.target = target
        self._graph: Optional[int] = None
        self._ctx: Optional[int] = None
        self._state = SessionState.UNLOADED
        self._lock = threading.Lock()

    @property
    def state(self) -> SessionState:
        return self._state

    def load(self, model_bytes: bytes) -> None:
        """Instantiate the graph on the configured target and create a context.

        Raises:
            ModelLoadFailed: The backend rejected the model, the target, or the context.
        """
        with self._lock:
            if self._state is not SessionState.UNLOADED:
                raise RuntimeError(f"session already loaded (state={self._state.value})")
            try:
                self._graph = self.backend.load(model_bytes, self.target)
                self._ctx = self.backend.create_context(self._graph)
            except BackendError as exc:
                if self._graph is not None:
                    self.backend.release(self._graph)
                    self._graph = None
                raise ModelLoadFailed(f"backend {self.backend.name!r} could not load model: {exc}") from exc
            self._state = SessionState.LOADED
        logger.info("Model loaded on %s backend (target=%s)", self.backend.name, self.target)

    def validate(self, warmup: bool = True) -> None:
        """Check the loaded graph against the tensor contract.

        Compares the slots the backend declares with the expected names, shapes
        and dtype, then optionally runs one inference on an all-zero window.

        Raises:
            ModelLoadFailed: Any mismatch, or the warm-up inference failed.
        """
        if self._state is SessionState.UNLOADED:
            raise ModelLoadFailed("cannot validate an unloaded session")
        c = self.contract
        try:
            signature = self.backend.signature(self._graph)
        except BackendError as exc:
            raise ModelLoadFailed(f"could not read model signature: {exc}") from exc
        if signature is not None:
            _check_slot("input", signature.inputs.get(c.input_name), c.input_name, c.input_shape, c.dtype)
            _check_slot("output", signature.outputs.get(c.output_name), c.output_name, c.output_shape, c.dtype)
        else:
            logger.warning("Backend %s does not report a model signature", self.backend.name)

        if warmup:
            zeros = Tensor(buffer=bytes(self._input_nbytes()), shape=c.input_shape, dtype=c.dtype)
            try:
                self.infer(zeros)
            except PipelineError as exc:
                raise ModelLoadFailed(f"warm-up inference failed: {exc}") from exc
            logger.info("Warm-up inference succeeded")

    def _input_nbytes(self) -> int:
        return math.prod(self.contract.input_shape) * element_size(self.contract.dtype)

    def infer(self, tensor: Tensor) -> Tensor:
        """Bind `tensor`, run the graph, and read the output tensor.

        Raises:
            BackendUnavailable: The host interface rejected a call; the context is
                dropped and re-created on the next request.
            ExecutionFailed: The engine failed during compute.
            OutputShapeMismatch: The output does not match the contract.
        """
        c = self.contract
        with self._lock:
            if self._state is SessionState.UNLOADED:
                raise BackendUnavailable("inference session is not loaded")
            try:
                if self._ctx is None:
                    self._ctx = self.backend.create_context(self._graph)
                    logger.info("Re-created execution context %s", self._ctx)
                self.backend.set_input(self._ctx, c.input_name, tensor)
                self._state = SessionState.BOUND
                self.backend.compute(self._ctx)
                self._state = SessionState.EXECUTED
                output = self.backend.get_output(self._ctx, c.output_name)
            except BackendComputeError as exc:
                raise ExecutionFailed(str(exc)) from exc
            except BackendError as exc:
                logger.warning("Backend rejected request, dropping execution context %s: %s", self._ctx, exc)
                self._drop_context()
                raise BackendUnavailable(str(exc)) from exc
            finally:
                self._state = SessionState.LOADED

        if output.dtype != c.dtype or output.shape != c.output_shape:
            raise OutputShapeMismatch(
                f"model returned {output.dtype} {list(output.shape)}, expected {c.dtype} {list(c.output_shape)}"
            )
        return output

    def _drop_context(self) -> None:
        if self._ctx is not None:
            self.backend.release(self._ctx)
            self._ctx = None

    def close(self) -> None:
        """Release backend handles; the session returns to UNLOADED."""
        with self._lock:
            self._drop_context()
            if self._graph is not None:
                self.backend.release(self._graph)
                self._graph = None
            self._state = SessionState.UNLOADED

    def describe(self) -> dict:
        c = self.contract
        return {
            "state": self._state.value,
            "backend": self.backend.name,
            "target": self.target,
            "input": {"name": c.input_name, "shape": list(c.input_shape), "dtype": c.dtype},
            "output": {"name": c.output_name, "shape": list(c.output_shape), "dtype": c.dtype},
        }
