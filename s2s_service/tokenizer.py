"""Unigram (sentencepiece-style) tokenizer driven by a tokenizer.json document."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Iterable, List, Mapping, NamedTuple, Optional, Sequence

from s2s_service.errors import ConfigurationError
from s2s_service.lattice import SegmentationLattice
from s2s_service.processors import TextProcessor
from s2s_service.trie import PrefixTrie

logger = logging.getLogger("s2s_service.tokenizer")

EOS_TOKEN = "</s>"


class VocabEntry(NamedTuple):
    piece: str
    score: float
    id: int


class UnigramTokenizer:
    """Maximum-likelihood segmentation over a fixed scored vocabulary."""

    def __init__(
        self,
        vocab: Sequence[Sequence[Any]],
        unk_token_id: int,
        special_tokens: Iterable[Mapping[str, Any]] = (),
        normalizer: Optional[TextProcessor] = None,
        pre_tokenizer: Optional[TextProcessor] = None,
        decoder: Optional[TextProcessor] = None,
    ):
        if not vocab:
            raise ConfigurationError("Tokenizer vocabulary is empty.")
        if not 0 <= unk_token_id < len(vocab):
            raise ConfigurationError(
                f"unk_id {unk_token_id} is outside the vocabulary (size {len(vocab)})."
            )
        self.normalizer = normalizer or TextProcessor()
        self.pre_tokenizer = pre_tokenizer or TextProcessor()
        self.decoder = decoder or TextProcessor()

        self.special_tokens = list(special_tokens)
        try:
            self.special_token_ids = {int(token["id"]) for token in self.special_tokens}
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Malformed added token entry: {exc!r}") from exc

        try:
            scores = [float(entry[1]) for entry in vocab]
        except (IndexError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Malformed vocabulary entry: {exc!r}") from exc
        self.unk_score = min(scores) - 10.0
        self.unk_token_id = unk_token_id
        self.vocab: List[VocabEntry] = [
            VocabEntry(
                str(entry[0]),
                self.unk_score if i == unk_token_id else score,
                i,
            )
            for i, (entry, score) in enumerate(zip(vocab, scores))
        ]
        # duplicate surface forms resolve to the last id
        self.token_to_id = {self.normalize(entry.piece): entry.id for entry in self.vocab}
        self.unk_token = self.vocab[unk_token_id].piece
        self.bos_token = self.normalize(" ")
        self.bos_token_id = self.get_token_id(self.bos_token)
        self.eos_token = EOS_TOKEN
        self.eos_token_id = self.get_token_id(self.eos_token)

        self.trie = PrefixTrie(entry.piece for entry in self.vocab)

    # ---------------------------
    # Construction helpers
    # ---------------------------
    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "UnigramTokenizer":
        """Build a tokenizer from a parsed ``tokenizer.json`` document."""
        try:
            model = config["model"]
            vocab = model["vocab"]
            unk_id = int(model["unk_id"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Malformed tokenizer model section: {exc}") from exc
        return cls(
            vocab=vocab,
            unk_token_id=unk_id,
            special_tokens=config.get("added_tokens") or [],
            normalizer=TextProcessor.from_config(config.get("normalizer")),
            pre_tokenizer=TextProcessor.from_config(config.get("pre_tokenizer")),
            decoder=TextProcessor.from_config(config.get("decoder")),
        )

    @classmethod
    def from_file(cls, path: str) -> "UnigramTokenizer":
        with open(path, "r", encoding="utf-8") as handle:
            config = json.load(handle)
        tokenizer = cls.from_config(config)
        logger.info("Tokenizer loaded: path=%s vocab_size=%s", path, tokenizer.vocab_size)
        return tokenizer

    @classmethod
    def from_pretrained(cls, model_id: str, models_path: str) -> "UnigramTokenizer":
        """Load ``<models_path>/<model_name>-tokenizer.json``."""
        model_name = model_id.split("/")[-1]
        return cls.from_file(os.path.join(models_path, f"{model_name}-tokenizer.json"))

    # ---------------------------
    # Public API
    # ---------------------------
    @property
    def vocab_size(self) -> int:
        return len(self.vocab)

    def get_token_id(self, normalized_token: str) -> int:
        return self.token_to_id.get(normalized_token, self.unk_token_id)

    def normalize(self, text: str) -> str:
        return self.normalizer.normalize(text)

    def pre_tokenize(self, texts: List[str]) -> List[str]:
        return self.pre_tokenizer.pre_tokenize(texts)

    def build_lattice(self, normalized: str) -> SegmentationLattice:
        """Return a lattice holding every candidate span of ``normalized``.

        Each offset gets one edge per vocabulary piece starting there, plus an
        unknown-token edge of length one when no single-character piece matches.
        """
        lattice = SegmentationLattice(normalized, self.bos_token_id, self.eos_token_id)
        for begin_pos in range(len(normalized)):
            has_single_node = False
            for token in self.trie.matching_prefixes(normalized, begin_pos):
                token_id = self.get_token_id(token)
                lattice.insert(begin_pos, len(token), self.vocab[token_id].score, token_id)
                if len(token) == 1:
                    has_single_node = True
            if not has_single_node:
                lattice.insert(begin_pos, 1, self.unk_score, self.unk_token_id)
        return lattice

    def tokenize(self, normalized: str) -> List[int]:
        token_ids = self.build_lattice(normalized).token_ids()
        if normalized and not token_ids:
            logger.debug("No segmentation found for chunk %r", normalized)
        return token_ids

    def encode(self, text: Optional[str]) -> List[int]:
        """Encode text into token ids, always terminated by the EOS id."""
        if not text:
            return [self.eos_token_id]
        chunks = self.pre_tokenize([self.normalize(text)])
        tokens: List[int] = []
        for chunk in chunks:
            tokens.extend(self.tokenize(chunk))
        tokens.append(self.eos_token_id)
        return tokens

    def decode(self, token_ids: Iterable[int], skip_special_tokens: bool = False) -> str:
        """Decode token ids back into text."""
        pieces = []
        for token_id in token_ids:
            token_id = int(token_id)
            if skip_special_tokens and token_id in self.special_token_ids:
                pieces.append("")
            elif token_id == self.unk_token_id:
                pieces.append(self.unk_token + " ")
            elif 0 <= token_id < len(self.vocab):
                pieces.append(self.vocab[token_id].piece)
            else:
                pieces.append(f"[{token_id}]")
        return "".join(self.decoder.decode_chain(pieces))

    def __len__(self) -> int:
        return len(self.vocab)


__all__ = ["UnigramTokenizer", "VocabEntry", "EOS_TOKEN"]
