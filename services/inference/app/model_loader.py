"""Model artifact loading and session bootstrap.

Startup sequence (all failures raise `ModelLoadFailed` and stop the service):
    1) Read the model file from local storage, once.
    2) Load it on the configured backend and execution target.
    3) Validate the declared input/output slots against the tensor contract.
    4) Optionally run a warm-up inference on an all-zero window.
"""

import logging
import os
from typing import Optional

from .backends import InferenceBackend, create_backend
from .errors import ModelLoadFailed
from .session import InferenceSession
from .settings import Settings
from .tensor import TensorContract

logger = logging.getLogger(__name__)


def read_model_bytes(path: str) -> bytes:
    """Read a model artifact from disk.

    Args:
        path: Filesystem path of the model file.

    Returns:
        bytes: The raw model file contents.

    Raises:
        ModelLoadFailed: If the file is missing, unreadable, or empty.
    """
    try:
        with open(path, "rb") as fh:
            data = fh.read()
    except OSError as exc:
        raise ModelLoadFailed(f"Model artifact not readable at {path}: {exc}") from exc
    if not data:
        raise ModelLoadFailed(f"Model artifact at {path} is empty")
    logger.info("Read model artifact %s (%d bytes)", path, len(data))
    return data


def build_session(settings: Settings, backend: Optional[InferenceBackend] = None) -> InferenceSession:
    """Create, load and validate the process-wide inference session.

    Args:
        settings: Service configuration.
        backend: Backend instance to use; defaults to the configured backend.

    Returns:
        InferenceSession: A session in the LOADED state.

    Raises:
        ModelLoadFailed: On any load or validation failure.
    """
    contract = TensorContract.from_settings(settings)
    if backend is None:
        backend = create_backend(settings.inference_backend, contract)

    if backend.name == "fake" and not os.path.exists(settings.model_path):
        logger.info("No model file at %s; the fake backend runs without one", settings.model_path)
        model_bytes = b""
    else:
        model_bytes = read_model_bytes(settings.model_path)

    session = InferenceSession(backend, contract, target=settings.execution_target)
    session.load(model_bytes)
    try:
        session.validate(warmup=settings.warmup_on_startup)
    except ModelLoadFailed:
        session.close()
        raise
    return session
