"""Inference service configuration.

All configuration is read from environment variables (and an optional `.env`
file) into a single validated `Settings` object. Invalid values fail at
startup rather than on the first request.

The settings object is passed explicitly into `create_app(...)`; route
handlers never read the environment directly.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed configuration for the inference service.

    Model contract:
        The defaults describe the bundled forecasting model: a 128-sample
        history window in, a 24-step forecast out, float32, with the tensor
        slot names produced by the model export.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", protected_namespaces=())

    model_path: str = "models/model.onnx"
    inference_backend: Literal["onnx", "fake"] = "onnx"
    execution_target: str = "cpu"

    input_tensor_name: str = "l_past_values_"
    output_tensor_name: str = "add_8"
    input_len: int = Field(128, ge=1)
    output_len: int = Field(24, ge=1)
    model_batch_size: int = Field(1, ge=1)
    model_channel_dim: bool = False

    warmup_on_startup: bool = True

    log_level: str = "INFO"
    log_json: bool = False

    host: str = "0.0.0.0"
    port: int = Field(8000, ge=1, le=65535)

    @field_validator("execution_target")
    @classmethod
    def _normalize_target(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"unknown log level: {v}")
        return level


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, parsed once."""
    return Settings()
