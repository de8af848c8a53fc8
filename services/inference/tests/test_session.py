"""Tests for the inference session lifecycle, failure mapping and startup validation."""

import threading

import numpy as np
import pytest

from app.backends.fake import FakeBackend
from app.errors import BackendUnavailable, ExecutionFailed, ModelLoadFailed, OutputShapeMismatch
from app.model_loader import build_session, read_model_bytes
from app.session import InferenceSession, SessionState
from app.settings import Settings
from app.tensor import Tensor


def _zeros(contract) -> Tensor:
    return Tensor.from_numpy(np.zeros(contract.input_shape, dtype=np.float32))


def test_build_session_loads_and_warms_up(session, fake_backend) -> None:
    """Session bootstrap loads the model and runs one warm-up inference."""
    assert session.state is SessionState.LOADED
    # warm-up ran exactly one inference
    assert fake_backend.calls["compute"] == 1


def test_infer_returns_contract_shaped_output(session, contract) -> None:
    """Inference returns a contract-shaped float32 tensor."""
    out = session.infer(_zeros(contract))
    assert out.shape == (1, 24)
    assert out.dtype == "float32"
    assert session.state is SessionState.LOADED


def test_repeated_inference_is_bit_identical(session, contract) -> None:
    """Repeated inference on one input is bit-identical."""
    rng = np.random.default_rng(7)
    tensor = Tensor.from_numpy(rng.normal(size=contract.input_shape).astype(np.float32))
    first = session.infer(tensor)
    for _ in range(5):
        assert session.infer(tensor).buffer == first.buffer


def test_compute_failure_is_execution_failed_and_recoverable(session, fake_backend, contract) -> None:
    """A compute error is ExecutionFailed and the session stays usable."""
    fake_backend.compute_errors = 1
    with pytest.raises(ExecutionFailed):
        session.infer(_zeros(contract))
    assert session.state is SessionState.LOADED
    assert session.infer(_zeros(contract)).shape == (1, 24)


def test_host_rejection_drops_context_and_next_request_recreates_it(session, fake_backend, contract) -> None:
    """A host rejection drops the context and the next request recreates it."""
    created = fake_backend.calls["create_context"]
    fake_backend.unavailable.add("set_input")
    with pytest.raises(BackendUnavailable):
        session.infer(_zeros(contract))

    fake_backend.unavailable.clear()
    assert session.infer(_zeros(contract)).shape == (1, 24)
    assert fake_backend.calls["create_context"] == created + 1


def test_context_recreation_failure_is_backend_unavailable(session, fake_backend, contract) -> None:
    """Failing to recreate a context is BackendUnavailable."""
    fake_backend.unavailable.add("compute")
    with pytest.raises(BackendUnavailable):
        session.infer(_zeros(contract))
    fake_backend.unavailable = {"create_context"}
    with pytest.raises(BackendUnavailable):
        session.infer(_zeros(contract))
    fake_backend.unavailable = set()
    assert session.infer(_zeros(contract)).shape == (1, 24)


def test_runtime_output_shape_mismatch(session, fake_backend, contract) -> None:
    """A mis-shaped output at runtime raises OutputShapeMismatch."""
    fake_backend.output_shape_override = (1, 12)
    with pytest.raises(OutputShapeMismatch):
        session.infer(_zeros(contract))


def test_closed_session_refuses_inference(session, contract) -> None:
    """A closed session rejects inference."""
    session.close()
    assert session.state is SessionState.UNLOADED
    with pytest.raises(BackendUnavailable):
        session.infer(_zeros(contract))


def test_load_twice_is_an_error(session) -> None:
    """Loading an already loaded session raises."""
    with pytest.raises(RuntimeError):
        session.load(b"")


def test_unsupported_target_fails_load(contract) -> None:
    """An unsupported target raises ModelLoadFailed."""
    session = InferenceSession(FakeBackend.for_contract(contract), contract, target="npu")
    with pytest.raises(ModelLoadFailed):
        session.load(b"model")
    assert session.state is SessionState.UNLOADED


def test_context_creation_failure_at_startup_is_fatal(contract) -> None:
    """Context creation failure during load is fatal."""
    backend = FakeBackend.for_contract(contract)
    backend.unavailable.add("create_context")
    with pytest.raises(ModelLoadFailed):
        InferenceSession(backend, contract).load(b"model")


def test_declared_output_shape_mismatch_fails_startup(settings, contract) -> None:
    """A declared output shape mismatch fails startup validation."""
    backend = FakeBackend(output_shape=(1, 12))
    with pytest.raises(ModelLoadFailed, match="output"):
        build_session(settings, backend=backend)


def test_declared_slot_name_mismatch_fails_startup(settings) -> None:
    """A missing input slot name fails startup validation."""
    backend = FakeBackend(input_name="input")
    with pytest.raises(ModelLoadFailed, match="no input slot"):
        build_session(settings, backend=backend)


def test_warmup_failure_fails_startup(settings, contract) -> None:
    """A failing warm-up inference fails startup."""
    backend = FakeBackend.for_contract(contract)
    backend.compute_errors = 1
    with pytest.raises(ModelLoadFailed, match="warm-up"):
        build_session(settings, backend=backend)


def test_warmup_can_be_disabled(tmp_path, contract) -> None:
    """No inference runs at startup when warm-up is disabled."""
    settings = Settings(inference_backend="fake", model_path=str(tmp_path / "m"), warmup_on_startup=False)
    backend = FakeBackend.for_contract(contract)
    build_session(settings, backend=backend)
    assert "compute" not in backend.calls


def test_concurrent_requests_are_serialized(session, fake_backend, contract) -> None:
    """Concurrent inferences never overlap inside the backend."""
    inside = []
    overlaps = []
    original = fake_backend.forecast_fn

    def tracking(window, horizon):
        inside.append(1)
        if len(inside) > 1:
            overlaps.append(1)
        try:
            return original(window, horizon)
        finally:
            inside.pop()

    fake_backend.forecast_fn = tracking
    threads = [threading.Thread(target=session.infer, args=(_zeros(contract),)) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert overlaps == []


def test_read_model_bytes(tmp_path) -> None:
    """Model bytes are read from disk unchanged."""
    path = tmp_path / "model.onnx"
    path.write_bytes(b"\x08\x01")
    assert read_model_bytes(str(path)) == b"\x08\x01"


@pytest.mark.parametrize("content", [None, b""])
def test_missing_or_empty_model_file_fails(tmp_path, content) -> None:
    """Missing or empty model files raise ModelLoadFailed."""
    path = tmp_path / "model.onnx"
    if content is not None:
        path.write_bytes(content)
    with pytest.raises(ModelLoadFailed):
        read_model_bytes(str(path))
