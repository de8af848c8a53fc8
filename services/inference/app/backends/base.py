"""Inference backend interface.

The service talks to the neural-network engine only through this narrow,
opaque-handle protocol:

    load(model_bytes, target) -> graph handle
    create_context(graph)     -> context handle
    set_input(ctx, name, tensor)
    compute(ctx)
    get_output(ctx, name)     -> tensor

Handles are integers issued by the backend; callers never look inside them,
they only pass them back. A context is not safe for concurrent use: binding
an input and reading an output are separate calls, so callers must serialize
whole bind -> compute -> read sequences.

Backends signal failures with the two exceptions below; the session maps them
onto the request-level error taxonomy.
"""

from __future__ import annotations

import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Union

from ..tensor import Tensor

GraphHandle = int
ContextHandle = int

# None or a string marks a dimension the model leaves symbolic
Dim = Union[int, str, None]


class BackendError(Exception):
    """Base class for errors raised by a backend."""


class BackendUnavailableError(BackendError):
    """The host interface rejected the call (bad handle, target, slot or device)."""


class BackendComputeError(BackendError):
    """The engine failed internally while executing the graph."""


@dataclass(frozen=True)
class SlotSignature:
    name: str
    shape: Tuple[Dim, ...]
    dtype: str


@dataclass(frozen=True)
class GraphSignature:
    """Declared inputs and outputs of a loaded graph, keyed by slot name."""

    inputs: Dict[str, SlotSignature]
    outputs: Dict[str, SlotSignature]


class InferenceBackend(ABC):
    """Abstract load/bind/compute/read host interface."""

    name = "abstract"

    def __init__(self) -> None:
        self._ids = itertools.count(1)

    def _next_handle(self) -> int:
        return next(self._ids)

    @abstractmethod
    def load(self, model_bytes: bytes, target: str) -> GraphHandle:
        """Compile/instantiate a graph for an execution target."""

    @abstractmethod
    def create_context(self, graph: GraphHandle) -> ContextHandle:
        """Create an execution context bound to a loaded graph."""

    @abstractmethod
    def set_input(self, ctx: ContextHandle, name: str, tensor: Tensor) -> None:
        """Bind a tensor to a named input slot."""

    @abstractmethod
    def compute(self, ctx: ContextHandle) -> None:
        """Run the graph synchronously on the bound inputs."""

    @abstractmethod
    def get_output(self, ctx: ContextHandle, name: str) -> Tensor:
        """Read a named output slot produced by the last compute."""

    @abstractmethod
    def signature(self, graph: GraphHandle) -> Optional[GraphSignature]:
        """Declared input/output slots, or None if the backend cannot report them."""

    @abstractmethod
    def release(self, handle: int) -> None:
        """Free a graph or context handle; unknown handles are ignored."""
