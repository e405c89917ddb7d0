"""Exception types raised by the service."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """A tokenizer document or processor node cannot be used."""


class InferenceError(RuntimeError):
    """The inference engine failed or returned unusable outputs."""


__all__ = ["ConfigurationError", "InferenceError"]
