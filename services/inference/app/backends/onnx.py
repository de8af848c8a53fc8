"""onnxruntime implementation of the inference backend.

A graph handle maps to an `onnxruntime.InferenceSession`; a context handle maps
to an `IOBinding` on that session, which gives onnxruntime the same
bind -> run -> read protocol the service expects:

    bind_cpu_input(...)   -> set_input
    run_with_iobinding()  -> compute
    copy_outputs_to_cpu() -> get_output

Execution targets map to execution providers. A target whose provider is not
available in the installed onnxruntime build is rejected at load time.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import onnxruntime as ort

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

logger = logging.getLogger(__name__)

TARGET_PROVIDERS = {
    "cpu": ["CPUExecutionProvider"],
    "gpu": ["CUDAExecutionProvider", "CPUExecutionProvider"],
    "cuda": ["CUDAExecutionProvider", "CPUExecutionProvider"],
    "tensorrt": ["TensorrtExecutionProvider", "CUDAExecutionProvider", "CPUExecutionProvider"],
}

ORT_DTYPES = {
    "tensor(float)": "float32",
    "tensor(float16)": "float16",
    "tensor(double)": "float64",
    "tensor(int32)": "int32",
    "tensor(int64)": "int64",
    "tensor(uint8)": "uint8",
}


@dataclass
class _Context:
    session: ort.InferenceSession
    binding: ort.IOBinding
    output_names: List[str]
    # bound arrays must stay referenced while onnxruntime holds their pointers
    inputs: Dict[str, np.ndarray] = field(default_factory=dict)
    results: Optional[Dict[str, np.ndarray]] = None


class OnnxBackend(InferenceBackend):
    """Host interface backed by onnxruntime."""

    name = "onnx"

    def __init__(self) -> None:
        super().__init__()
        self._graphs: Dict[GraphHandle, ort.InferenceSession] = {}
        self._contexts: Dict[ContextHandle, _Context] = {}
        self._registry_lock = threading.Lock()

    def load(self, model_bytes: bytes, target: str) -> GraphHandle:
        providers = TARGET_PROVIDERS.get(target)
        if providers is None:
            raise BackendUnavailableError(f"unknown execution target: {target}")
        available = ort.get_available_providers()
        if providers[0] not in available:
            raise BackendUnavailableError(
                f"execution target {target!r} needs {providers[0]}, available: {available}"
            )

        options = ort.SessionOptions()
        options.log_severity_level = 3
        try:
            session = ort.InferenceSession(
                model_bytes,
                sess_options=options,
                providers=[p for p in providers if p in available],
            )
        except Exception as exc:
            raise BackendUnavailableError(f"onnxruntime rejected the model: {exc}") from exc

        with self._registry_lock:
            handle = self._next_handle()
            self._graphs[handle] = session
        logger.info("Loaded ONNX graph %s on %s", handle, session.get_providers())
        return handle

    def create_context(self, graph: GraphHandle) -> ContextHandle:
        session = self._graphs.get(graph)
        if session is None:
            raise BackendUnavailableError(f"unknown graph handle: {graph}")
        try:
            binding = session.io_binding()
            output_names = [o.name for o in session.get_outputs()]
            for name in output_names:
                binding.bind_output(name)
        except Exception as exc:
            raise BackendUnavailableError(f"could not create execution context: {exc}") from exc

        with self._registry_lock:
            handle = self._next_handle()
            self._contexts[handle] = _Context(session=session, binding=binding, output_names=output_names)
        return handle

    def _context(self, ctx: ContextHandle) -> _Context:
        context = self._contexts.get(ctx)
        if context is None:
            raise BackendUnavailableError(f"unknown context handle: {ctx}")
        return context

    def set_input(self, ctx: ContextHandle, name: str, tensor: Tensor) -> None:
        context = self._context(ctx)
        if name not in {i.name for i in context.session.get_inputs()}:
            raise BackendUnavailableError(f"graph has no input slot named {name!r}")
        array = tensor.to_numpy()
        try:
            context.binding.bind_cpu_input(name, array)
        except Exception as exc:
            raise BackendUnavailableError(f"could not bind input {name!r}: {exc}") from exc
        context.inputs[name] = array
        context.results = None

    def compute(self, ctx: ContextHandle) -> None:
        context = self._context(ctx)
        try:
            context.session.run_with_iobinding(context.binding)
            arrays = context.binding.copy_outputs_to_cpu()
        except Exception as exc:
            raise BackendComputeError(f"onnxruntime execution failed: {exc}") from exc
        context.results = dict(zip(context.output_names, arrays))

    def get_output(self, ctx: ContextHandle, name: str) -> Tensor:
        context = self._context(ctx)
        if context.results is None:
            raise BackendUnavailableError("no outputs available; compute has not run since the last bind")
        if name not in context.results:
            raise BackendUnavailableError(f"graph has no output slot named {name!r}")
        return Tensor.from_numpy(context.results[name])

    def signature(self, graph: GraphHandle) -> Optional[GraphSignature]:
        session = self._graphs.get(graph)
        if session is None:
            raise BackendUnavailableError(f"unknown graph handle: {graph}")

        def slot(arg) -> SlotSignature:
            shape = tuple(d if isinstance(d, int) else None for d in arg.shape)
            return SlotSignature(name=arg.name, shape=shape, dtype=ORT_DTYPES.get(arg.type, arg.type))

        return GraphSignature(
            inputs={a.name: slot(a) for a in session.get_inputs()},
            outputs={a.name: slot(a) for a in session.get_outputs()},
        )

    def release(self, handle: int) -> None:
        with self._registry_lock:
            self._contexts.pop(handle, None)
            session = self._graphs.pop(handle, None)
            if session is not None:
                for ctx, context in list(self._contexts.items()):
                    if context.session is session:
                        del self._contexts[ctx]
