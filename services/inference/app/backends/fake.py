"""In-memory inference backend.

`FakeBackend` honours the same handle protocol as the onnxruntime backend but
runs a deterministic Python forecast function instead of a model graph. It is
used by the test suite and for running the service locally without a model
file (`INFERENCE_BACKEND=fake`).

The default forecast is a drift model: it continues the straight line from
the first to the last sample of each batch row. Failures can be injected per
operation to exercise error handling.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Set, Tuple

import numpy as np

from ..tensor import Tensor
from .base import (
    BackendComputeError,
    BackendUnavailableError,
    ContextHandle,
    GraphHandle,
    GraphSignature,
    InferenceBackend,
    SlotSignature,
)

ForecastFn = Callable[[np.ndarray, int], np.ndarray]


def drift_forecast(window: np.ndarray, horizon: int) -> np.ndarray:
    """Continue the first-to-last slope of each row for `horizon` steps."""
    rows = window.reshape(window.shape[0], -1).astype(np.float32)
    last = rows[:, -1:]
    span = max(rows.shape[1] - 1, 1)
    slope = (rows[:, -1:] - rows[:, :1]) / span
    steps = np.arange(1, horizon + 1, dtype=np.float32)
    return (last + slope * steps).astype(np.float32)


@dataclass
class _FakeContext:
    graph: GraphHandle
    inputs: Dict[str, np.ndarray] = field(default_factory=dict)
    results: Optional[Dict[str, np.ndarray]] = None


class FakeBackend(InferenceBackend):
    """Deterministic backend with configurable slots and failure injection.

    Args:
        input_name / output_name: Slot names the fake graph declares.
        input_shape / output_shape: Declared slot shapes.
        forecast_fn: `(input array, horizon) -> (batch, horizon)` predictions.
        targets: Execution targets accepted by `load`.

    Failure injection (mutable attributes, checked on every call):
        unavailable: operation names that raise `BackendUnavailableError`.
        compute_errors: number of upcoming `compute` calls that raise `BackendComputeError`.
        output_shape_override: shape reported by `get_output` instead of the real one.
    """

    name = "fake"

    def __init__(
        self,
        input_name: str = "l_past_values_",
        output_name: str = "add_8",
        input_shape: Tuple[int, ...] = (1, 128),
        output_shape: Tuple[int, ...] = (1, 24),
        forecast_fn: ForecastFn = drift_forecast,
        targets: Tuple[str, ...] = ("cpu", "gpu"),
    ) -> None:
        super().__init__()
        self.input_name = input_name
        self.output_name = output_name
        self.input_shape = tuple(input_shape)
        self.output_shape = tuple(output_shape)
        self.forecast_fn = forecast_fn
        self.targets = targets

        self.unavailable: Set[str] = set()
        self.compute_errors = 0
        self.output_shape_override: Optional[Tuple[int, ...]] = None
        self.calls: Dict[str, int] = {}

        self._graphs: Dict[GraphHandle, bytes] = {}
        self._contexts: Dict[ContextHandle, _FakeContext] = {}
        self._lock = threading.Lock()

    @classmethod
    def for_contract(cls, contract, **kwargs) -> "FakeBackend":
        """Build a fake whose declared slots match a `TensorContract`."""
        return cls(
            input_name=contract.input_name,
            output_name=contract.output_name,
            input_shape=contract.input_shape,
            output_shape=contract.output_shape,
            **kwargs,
        )

    def _enter(self, op: str) -> None:
        self.calls[op] = self.calls.get(op, 0) + 1
        if op in self.unavailable:
            raise BackendUnavailableError(f"{op} rejected by fake host interface")

    def _context(self, ctx: ContextHandle) -> _FakeContext:
        context = self._contexts.get(ctx)
        if context is None:
            raise BackendUnavailableError(f"unknown context handle: {ctx}")
        return context

    def load(self, model_bytes: bytes, target: str) -> GraphHandle:
        self._enter("load")
        if target not in self.targets:
            raise BackendUnavailableError(f"unsupported execution target: {target}")
        with self._lock:
            handle = self._next_handle()
            self._graphs[handle] = bytes(model_bytes)
        return handle

    def create_context(self, graph: GraphHandle) -> ContextHandle:
        self._enter("create_context")
        if graph not in self._graphs:
            raise BackendUnavailableError(f"unknown graph handle: {graph}")
        with self._lock:
            handle = self._next_handle()
            self._contexts[handle] = _FakeContext(graph=graph)
        return handle

    def set_input(self, ctx: ContextHandle, name: str, tensor: Tensor) -> None:
        self._enter("set_input")
        context = self._context(ctx)
        if name != self.input_name:
            raise BackendUnavailableError(f"graph has no input slot named {name!r}")
        context.inputs[name] = tensor.to_numpy()
        context.results = None

    def compute(self, ctx: ContextHandle) -> None:
        self._enter("compute")
        context = self._context(ctx)
        if self.compute_errors > 0:
            self.compute_errors -= 1
            raise BackendComputeError("fake engine failed during compute")
        if self.input_name not in context.inputs:
            raise BackendComputeError(f"input {self.input_name!r} is not bound")
        horizon = self.output_shape[1]
        predictions = self.forecast_fn(context.inputs[self.input_name], horizon)
        context.results = {self.output_name: np.asarray(predictions, dtype=np.float32).reshape(self.output_shape)}

    def get_output(self, ctx: ContextHandle, name: str) -> Tensor:
        self._enter("get_output")
        context = self._context(ctx)
        if context.results is None:
            raise BackendUnavailableError("no outputs available; compute has not run since the last bind")
        if name not in context.results:
            raise BackendUnavailableError(f"graph has no output slot named {name!r}")
        array = context.results[name]
        if self.output_shape_override is not None:
            size = int(np.prod(self.output_shape_override))
            array = np.resize(array.ravel(), size).reshape(self.output_shape_override)
        return Tensor.from_numpy(array)

    def signature(self, graph: GraphHandle) -> Optional[GraphSignature]:
        if graph not in self._graphs:
            raise BackendUnavailableError(f"unknown graph handle: {graph}")
        return GraphSignature(
            inputs={self.input_name: SlotSignature(self.input_name, self.input_shape, "float32")},
            outputs={self.output_name: SlotSignature(self.output_name, self.output_shape, "float32")},
        )

    def release(self, handle: int) -> None:
        with self._lock:
            self._contexts.pop(handle, None)
            if self._graphs.pop(handle, None) is not None:
                for ctx in [c for c, v in self._contexts.items() if v.graph == handle]:
                    del self._contexts[ctx]
