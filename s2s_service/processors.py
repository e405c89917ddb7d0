"""Normalizers, pre-tokenizers and decoders described by tokenizer documents."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from s2s_service.errors import ConfigurationError


class ProcessorType(str, Enum):
    IDENTITY = "Identity"
    METASPACE = "Metaspace"
    PRECOMPILED = "Precompiled"
    SEQUENCE = "Sequence"
    WHITESPACE_SPLIT = "WhitespaceSplit"


class TextProcessor:
    """Base processor; every capability defaults to the identity."""

    kind = ProcessorType.IDENTITY

    @staticmethod
    def from_config(config: Optional[Mapping[str, Any]]) -> "TextProcessor":
        """Build a processor from one ``normalizer``/``pre_tokenizer``/``decoder`` node.

        A missing node yields the identity processor. A node whose ``type`` is
        not one of :class:`ProcessorType` raises :class:`ConfigurationError`.
        """
        if config is None:
            return TextProcessor()
        if not isinstance(config, Mapping):
            raise ConfigurationError(f"Processor config must be an object, got {type(config).__name__}")
        tag = config.get("type")
        try:
            kind = ProcessorType(tag)
        except ValueError:
            raise ConfigurationError(f"Unknown token processor type: {tag}") from None
        return _BUILDERS[kind](config)

    def normalize(self, text: str) -> str:
        return text

    def pre_tokenize(self, texts: List[str]) -> List[str]:
        return texts

    def decode_chain(self, tokens: List[str]) -> List[str]:
        return tokens

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class MetaspaceProcessor(TextProcessor):
    """Swaps spaces for a visible marker character and back."""

    kind = ProcessorType.METASPACE

    def __init__(
        self,
        add_prefix_space: bool,
        replacement: str,
        str_rep: Optional[str] = None,
        first_only: bool = False,
    ):
        self.add_prefix_space = add_prefix_space
        self.replacement = replacement
        self.str_rep = str_rep or replacement
        # prefix only the first chunk (prepend_scheme "first")
        self.first_only = first_only

    def pre_tokenize(self, texts: List[str]) -> List[str]:
        result = []
        for i, text in enumerate(texts):
            normalized = text.replace(" ", self.str_rep, 1)
            prefix = self.add_prefix_space and (i == 0 or not self.first_only)
            if prefix and not normalized.startswith(self.replacement):
                normalized = self.str_rep + normalized
            result.append(normalized)
        return result

    def decode_chain(self, tokens: List[str]) -> List[str]:
        result = []
        for i, token in enumerate(tokens):
            normalized = token.replace(self.replacement, " ", 1)
            if self.add_prefix_space and i == 0 and normalized.startswith(" "):
                normalized = normalized[1:]
            result.append(normalized)
        return result

    def __repr__(self) -> str:
        return (
            f"MetaspaceProcessor(add_prefix_space={self.add_prefix_space}, "
            f"replacement={self.replacement!r}, str_rep={self.str_rep!r}, first_only={self.first_only})"
        )


class PrecompiledProcessor(TextProcessor):
    """Holds a sentencepiece charsmap.

    The charsmap is kept but not applied, so normalization is the identity.
    """

    kind = ProcessorType.PRECOMPILED

    def __init__(self, charsmap: Any = None):
        self.charsmap = charsmap


class SequenceProcessor(TextProcessor):
    """Runs its pre-tokenizers in order; normalize and decode stay the identity."""

    kind = ProcessorType.SEQUENCE

    def __init__(self, processors: Sequence[TextProcessor]):
        self.processors = list(processors)

    def pre_tokenize(self, texts: List[str]) -> List[str]:
        for processor in self.processors:
            texts = processor.pre_tokenize(texts)
        return texts

    def __repr__(self) -> str:
        return f"SequenceProcessor({self.processors!r})"


class WhitespaceSplitProcessor(TextProcessor):
    kind = ProcessorType.WHITESPACE_SPLIT

    def pre_tokenize(self, texts: List[str]) -> List[str]:
        result: List[str] = []
        for text in texts:
            result.extend(text.split())
        return result


def _build_metaspace(config: Mapping[str, Any]) -> TextProcessor:
    add_prefix_space = config.get("add_prefix_space")
    prepend_scheme = config.get("prepend_scheme")
    if add_prefix_space is None:
        add_prefix_space = prepend_scheme in ("always", "first")
    return MetaspaceProcessor(
        add_prefix_space=bool(add_prefix_space),
        replacement=config.get("replacement") or "",
        str_rep=config.get("str_rep"),
        first_only=prepend_scheme == "first",
    )


def _build_sequence(config: Mapping[str, Any]) -> TextProcessor:
    # normalizer and decoder sequences carry their children under other keys and
    # are left unbuilt, so they act as the identity
    children = config.get("pretokenizers") or []
    return SequenceProcessor([TextProcessor.from_config(child) for child in children])


_BUILDERS: Dict[ProcessorType, Any] = {
    ProcessorType.IDENTITY: lambda config: TextProcessor(),
    ProcessorType.METASPACE: _build_metaspace,
    ProcessorType.PRECOMPILED: lambda config: PrecompiledProcessor(config.get("precompiled_charsmap")),
    ProcessorType.SEQUENCE: _build_sequence,
    ProcessorType.WHITESPACE_SPLIT: lambda config: WhitespaceSplitProcessor(),
}


__all__ = [
    "ProcessorType",
    "TextProcessor",
    "MetaspaceProcessor",
    "PrecompiledProcessor",
    "SequenceProcessor",
    "WhitespaceSplitProcessor",
]
