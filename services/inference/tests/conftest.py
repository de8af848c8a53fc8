"""Shared fixtures for the inference service tests.

All fixtures run against the in-memory `FakeBackend`, configured with the
default tensor contract (128 samples in, 24 predictions out).
"""

from __future__ import annotations

import sys
from pathlib import Path

_SERVICE_ROOT = Path(__file__).resolve().parents[1]
_COMMON = _SERVICE_ROOT.parents[1] / "libs" / "common_python"
for _p in (_SERVICE_ROOT, _COMMON):
    if str(_p) not in sys.path:
        sys.path.insert(0, str(_p))

import pytest
from fastapi.testclient import TestClient

from app.backends.fake import FakeBackend
from app.main import create_app
from app.model_loader import build_session
from app.settings import Settings
from app.tensor import TensorContract


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        inference_backend="fake",
        model_path=str(tmp_path / "missing.onnx"),
        warmup_on_startup=True,
    )


@pytest.fixture
def contract(settings) -> TensorContract:
    return TensorContract.from_settings(settings)


@pytest.fixture
def fake_backend(contract) -> FakeBackend:
    return FakeBackend.for_contract(contract)


@pytest.fixture
def session(settings, fake_backend):
    s = build_session(settings, backend=fake_backend)
    yield s
    s.close()


@pytest.fixture
def client(settings, session):
    with TestClient(create_app(settings, session=session)) as c:
        yield c

