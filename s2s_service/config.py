"""Configuration management for the seq2seq inference service."""

from __future__ import annotations

import logging
import os
from typing import Optional

import torch
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_device() -> str:
    if torch.cuda.is_available():
        return "cuda"
    if torch.backends.mps.is_available():  # type: ignore[attr-defined]
        return "mps"
    return "cpu"


class ServiceSettings(BaseSettings):
    """Pydantic-powered settings for the inference service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        protected_namespaces=(),
    )

    model_id: str = Field(
        "t5-small",
        description="Model identity; its last path segment names the tokenizer and graph files.",
    )
    models_path: str = Field(
        "models", description="Directory holding <name>-tokenizer.json and the graph files."
    )
    graph_suffix: str = Field(
        "-quantized", description="Suffix between the graph name and the .pt extension."
    )
    device: str = Field(
        default_factory=_default_device,
        description="Target device for inference (cuda|mps|cpu).",
    )
    max_input_tokens: int = Field(
        512, description="Maximum allowed input length in tokens, including EOS."
    )
    max_length_default: int = Field(100, description="Default number of tokens to generate.")
    max_length_limit: int = Field(512, description="Hard cap on generated tokens.")
    top_k_default: int = Field(0, description="Default top-k cutoff; 0 decodes greedily.")
    seed: Optional[int] = Field(
        None, description="Seed for the top-k sampler; unset draws from torch's global RNG."
    )
    log_level: str = Field("INFO", description="Logging level for the service.")
    port: int = Field(8000, description="Port for the HTTP server.")
    host: str = Field("0.0.0.0", description="Host for the HTTP server.")
    mock_model: bool = Field(
        False,
        description="Use a deterministic mock engine instead of loading graphs (for tests).",
    )
    log_file: Optional[str] = Field(None, description="Optional file path for service logs.")

    @field_validator("device")
    @classmethod
    def validate_device(cls, value: str) -> str:
        normalized = value.lower()
        if normalized == "cuda" and not torch.cuda.is_available():
            return "cpu"
        if normalized == "mps" and not torch.backends.mps.is_available():  # type: ignore[attr-defined]
            return "cpu"
        return normalized

    @field_validator("max_length_default", "max_length_limit", "max_input_tokens")
    @classmethod
    def positive_tokens(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Token limits must be positive integers.")
        return value

    @field_validator("top_k_default")
    @classmethod
    def non_negative_top_k(cls, value: int) -> int:
        if value < 0:
            raise ValueError("top_k_default must be >= 0.")
        return value

    @field_validator("log_level")
    @classmethod
    def uppercase_log_level(cls, value: str) -> str:
        return value.upper()

    def configure_logging(self) -> None:
        """Configure root logging according to settings."""
        handlers = [logging.StreamHandler()]
        if self.log_file:
            log_dir = os.path.dirname(self.log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            handlers.append(logging.FileHandler(self.log_file))
        logging.basicConfig(
            level=getattr(logging, self.log_level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
            handlers=handlers,
        )


settings = ServiceSettings()
