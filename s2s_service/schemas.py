"""Pydantic schemas for API requests and responses."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class GenerateRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    input_text: str = Field(..., description="Text to feed the encoder.")
    model_id: Optional[str] = Field(None, description="Model identity (defaults to settings).")
    models_path: Optional[str] = Field(
        None, description="Directory holding the model files (defaults to settings)."
    )
    max_length: Optional[int] = Field(
        None, description="Maximum number of tokens to generate after the start token."
    )
    top_k: Optional[int] = Field(None, description="Top-k sampling cutoff; 0 decodes greedily.")
    top_p: Optional[float] = Field(None, description="Accepted for compatibility; ignored.")
    num_beams: Optional[int] = Field(None, description="Accepted for compatibility; ignored.")

    @field_validator("input_text")
    @classmethod
    def validate_input_text(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("input_text cannot be empty.")
        return value

    @field_validator("max_length")
    @classmethod
    def validate_max_length(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value <= 0:
            raise ValueError("max_length must be > 0")
        return value

    @field_validator("top_k")
    @classmethod
    def validate_top_k(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            raise ValueError("top_k must be >= 0")
        return value


class GenerateResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    input_text: str
    output_text: str
    model: str
    tokens_in: int
    tokens_out: int
    latency_ms: float
    superseded: bool


class StreamEvent(BaseModel):
    input_text: str
    output_text: str
    is_final: bool
    superseded: bool = False


class HealthResponse(BaseModel):
    status: str
    model: str
    device: str
    loaded: bool
    loaded_models: List[str]
