"""Inference engines that execute the encoder and decoder graphs."""

from __future__ import annotations

import abc
import logging
import os
import threading
from enum import Enum
from typing import Dict, List, Optional

import torch

from s2s_service.errors import InferenceError

logger = logging.getLogger("s2s_service.engine")

Feeds = Dict[str, torch.Tensor]


class Graph(str, Enum):
    ENCODER = "encoder"
    INIT_DECODER = "init-decoder"
    DECODER = "decoder"


class InferenceEngine(abc.ABC):
    """Runs one named graph on named input tensors."""

    @abc.abstractmethod
    def run(self, graph: Graph, feeds: Feeds) -> Dict[str, torch.Tensor]:
        """Execute ``graph`` and return its outputs keyed by output name.

        Decoder graphs return ``logits`` first, followed by their cache tensors.
        """


class TorchScriptEngine(InferenceEngine):
    """Engine backed by three TorchScript modules exported from a seq2seq model."""

    def __init__(self, modules: Dict[Graph, torch.jit.ScriptModule], device: torch.device):
        self.modules = modules
        self.device = device

    @classmethod
    def from_pretrained(
        cls,
        model_id: str,
        models_path: str,
        *,
        suffix: str = "-quantized",
        device: str = "cpu",
    ) -> "TorchScriptEngine":
        """Load ``<models_path>/<model_name>-<graph><suffix>.pt`` for every graph."""
        model_name = model_id.split("/")[-1]
        target = torch.device(device)
        progress_max = len(Graph) + 1
        progress = 1
        logger.info("Loading model %s... %.0f%%", model_id, 100.0 * progress / progress_max)
        modules = {}
        for graph in Graph:
            path = os.path.join(models_path, f"{model_name}-{graph.value}{suffix}.pt")
            if not os.path.exists(path):
                raise FileNotFoundError(f"Missing {graph.value} graph for {model_id}: {path}")
            module = torch.jit.load(path, map_location=target)
            module.eval()
            modules[graph] = module
            progress += 1
            logger.info("Loading model %s... %.0f%%", model_id, 100.0 * progress / progress_max)
        return cls(modules, target)

    def run(self, graph: Graph, feeds: Feeds) -> Dict[str, torch.Tensor]:
        module = self.modules[graph]
        inputs = {name: tensor.to(self.device) for name, tensor in feeds.items()}
        with torch.no_grad():
            outputs = module(**inputs)
        if not isinstance(outputs, dict):
            raise InferenceError(
                f"{graph.value} graph returned {type(outputs).__name__}, expected named outputs"
            )
        return {name: tensor.cpu() for name, tensor in outputs.items()}


class MockSeq2SeqEngine(InferenceEngine):
    """Tiny deterministic engine for testing without real weights.

    The decoder predicts the encoder input back one token per step, so a
    greedy run reproduces the input ids and ends on the input's EOS.
    """

    def __init__(self, vocab_size: int, *, num_cache_tensors: int = 2, eos_token_id: int = 1):
        self.vocab_size = vocab_size
        self.num_cache_tensors = num_cache_tensors
        self.eos_token_id = eos_token_id
        self.calls: List[Graph] = []
        self._lock = threading.Lock()

    def run(self, graph: Graph, feeds: Feeds) -> Dict[str, torch.Tensor]:
        with self._lock:
            self.calls.append(graph)

        if graph is Graph.ENCODER:
            return {"hidden_states": feeds["input_ids"].to(torch.float32).unsqueeze(-1)}

        if graph is Graph.DECODER:
            missing = [
                f"pkv_{i}" for i in range(self.num_cache_tensors) if f"pkv_{i}" not in feeds
            ]
            if missing:
                raise KeyError(f"decoder graph missing cache inputs: {missing}")

        source = feeds["encoder_hidden_states"][0, :, 0].to(torch.long).tolist()
        decoder_ids = feeds["input_ids"][0].tolist()
        step = len(decoder_ids) - 1
        target = source[step] if step < len(source) else self.eos_token_id

        logits = torch.zeros(1, len(decoder_ids), self.vocab_size)
        logits[0, -1, target % self.vocab_size] = 10.0
        outputs: Dict[str, torch.Tensor] = {"logits": logits}
        for i in range(self.num_cache_tensors):
            outputs[f"present.{i}"] = torch.full((1, 1, len(decoder_ids), 4), float(step))
        return outputs

    def count(self, graph: Graph) -> int:
        return self.calls.count(graph)


def load_engine(
    model_id: str,
    models_path: str,
    *,
    mock: bool = False,
    vocab_size: Optional[int] = None,
    suffix: str = "-quantized",
    device: str = "cpu",
) -> InferenceEngine:
    if mock:
        if vocab_size is None:
            raise ValueError("vocab_size is required for the mock engine.")
        return MockSeq2SeqEngine(vocab_size)
    return TorchScriptEngine.from_pretrained(model_id, models_path, suffix=suffix, device=device)


__all__ = [
    "Graph",
    "InferenceEngine",
    "TorchScriptEngine",
    "MockSeq2SeqEngine",
    "load_engine",
]
