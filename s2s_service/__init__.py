"""Seq2seq inference service: unigram tokenization and encoder/decoder generation."""

from .config import ServiceSettings, settings
from .generation import GenerateOptions, GenerationController
from .models import Seq2SeqModelService
from .tokenizer import UnigramTokenizer

__all__ = [
    "ServiceSettings",
    "settings",
    "GenerateOptions",
    "GenerationController",
    "Seq2SeqModelService",
    "UnigramTokenizer",
]
