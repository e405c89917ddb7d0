"""Autoregressive decoding against an encoder/decoder inference engine."""

from __future__ import annotations

import asyncio
import inspect
import logging
import math
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Sequence, Union

import torch

from s2s_service.engine import Graph, InferenceEngine
from s2s_service.errors import InferenceError

logger = logging.getLogger("s2s_service.generation")

DECODER_START_TOKEN_ID = 0
END_OF_DECODER_TOKEN_ID = 1
FLOOR_WEIGHT = math.exp(-100.0)

StepCallback = Callable[[List[int], List[int]], Union[bool, Awaitable[bool]]]


@dataclass
class GenerateOptions:
    max_length: int = 100
    top_k: int = 0
    # accepted for compatibility; decoding is always a single greedy/top-k sequence
    top_p: float = 0.0
    num_beams: int = 0


class NamedTensor(NamedTuple):
    name: str
    data: torch.Tensor


class Phase(str, Enum):
    INIT = "init"
    ENCODING = "encoding"
    DECODING = "decoding"
    STOPPED = "stopped"


@dataclass
class GenerationState:
    output_token_ids: List[int] = field(default_factory=lambda: [DECODER_START_TOKEN_ID])
    encoder_output: Optional[torch.Tensor] = None
    past_key_values: Optional[List[NamedTensor]] = None
    phase: Phase = Phase.INIT
    step: int = 0


@dataclass
class Seq2SeqOutput:
    logits: torch.Tensor
    past_key_values: List[NamedTensor]
    encoder_output: torch.Tensor


class RequestTracker:
    """Remembers the most recently issued request for one model instance."""

    def __init__(self) -> None:
        self._current: Optional[str] = None

    def issue(self) -> "RequestTicket":
        ticket = RequestTicket(uuid.uuid4().hex, self)
        self._current = ticket.request_id
        return ticket

    def is_current(self, request_id: str) -> bool:
        return self._current == request_id

    @property
    def current(self) -> Optional[str]:
        return self._current


@dataclass(frozen=True)
class RequestTicket:
    request_id: str
    tracker: RequestTracker

    def is_current(self) -> bool:
        return self.tracker.is_current(self.request_id)


def _last_position(logits: torch.Tensor) -> torch.Tensor:
    return logits.reshape(-1, logits.shape[-1])[-1]


def sample_greedy(logits: torch.Tensor) -> int:
    """Argmax over the vocabulary at the last position; the first maximum wins."""
    return int(torch.argmax(_last_position(logits)).item())


def sample_top_k(logits: torch.Tensor, k: int, generator: Optional[torch.Generator] = None) -> int:
    """Draw from the ``k`` largest logits weighted by ``exp(logit)``.

    Every other entry keeps a floor weight of ``exp(-100)``. Logits are
    exponentiated as-is, without subtracting the maximum.
    """
    scores = _last_position(logits).to(torch.float64)
    vocab_size = scores.numel()
    k = min(k, vocab_size)
    values, indices = torch.sort(scores, descending=True, stable=True)
    weights = torch.full_like(values, FLOOR_WEIGHT)
    weights[:k] = torch.exp(values[:k])
    cumulative = torch.cumsum(weights, dim=0)
    r = torch.rand(1, generator=generator, dtype=torch.float64) * cumulative[-1]
    pos = int(torch.searchsorted(cumulative, r).item())
    if pos >= vocab_size:
        return int(indices[0].item())
    return int(indices[pos].item())


class GenerationController:
    """Drives the encode/decode loop for one model instance."""

    def __init__(
        self,
        engine: InferenceEngine,
        *,
        decoder_start_token_id: int = DECODER_START_TOKEN_ID,
        eos_token_id: int = END_OF_DECODER_TOKEN_ID,
        generator: Optional[torch.Generator] = None,
    ):
        self.engine = engine
        self.decoder_start_token_id = decoder_start_token_id
        self.eos_token_id = eos_token_id
        self.generator = generator

    # ---------------------------
    # Public API
    # ---------------------------
    async def generate(
        self,
        input_token_ids: Sequence[int],
        options: Optional[GenerateOptions] = None,
        on_step: Optional[StepCallback] = None,
        ticket: Optional[RequestTicket] = None,
    ) -> List[int]:
        """Generate output ids for ``input_token_ids``.

        The result starts with the decoder start id and holds at most
        ``1 + options.max_length`` ids. ``on_step`` is called after every
        sampled token with ``(output_so_far, input_token_ids)``; returning a
        false value stops the loop before the next engine call, as does
        ``ticket`` being superseded by a newer request.
        """
        options = options or GenerateOptions()
        input_ids = [int(x) for x in input_token_ids]
        if options.num_beams > 1:
            logger.warning("num_beams=%s ignored: beam search is not implemented", options.num_beams)
        if options.top_p:
            logger.warning("top_p=%s ignored: nucleus sampling is not implemented", options.top_p)

        state = GenerationState(output_token_ids=[self.decoder_start_token_id])
        max_output_tokens = 1 + options.max_length
        should_continue = True
        while should_continue and len(state.output_token_ids) < max_output_tokens:
            output = await self.forward(input_ids, state)
            new_token_id = self._sample(output.logits, options.top_k)
            state.output_token_ids.append(new_token_id)
            state.step += 1
            logger.debug("step=%s token=%s", state.step, new_token_id)

            if on_step is not None:
                result = on_step(list(state.output_token_ids), input_ids)
                if inspect.isawaitable(result):
                    result = await result
                should_continue = bool(result)
            if ticket is not None and not ticket.is_current():
                logger.info("request %s superseded after %s steps", ticket.request_id, state.step)
                should_continue = False
            if new_token_id == self.eos_token_id:
                break

        state.phase = Phase.STOPPED
        return state.output_token_ids

    async def forward(self, input_ids: Sequence[int], state: GenerationState) -> Seq2SeqOutput:
        """Run one decoder step, encoding first if nothing is cached yet.

        ``state.encoder_output`` and ``state.past_key_values`` are updated in place.
        """
        input_ids_tensor = torch.tensor([list(input_ids)], dtype=torch.long)
        attention_mask = torch.ones_like(input_ids_tensor)

        if state.encoder_output is None:
            state.phase = Phase.ENCODING
            encoder_results = await self._run(
                Graph.ENCODER, {"input_ids": input_ids_tensor, "attention_mask": attention_mask}
            )
            try:
                state.encoder_output = encoder_results["hidden_states"]
            except KeyError as exc:
                raise InferenceError("encoder graph produced no hidden_states output") from exc

        state.phase = Phase.DECODING
        feeds: Dict[str, torch.Tensor] = {
            "input_ids": torch.tensor([state.output_token_ids], dtype=torch.long),
            "encoder_attention_mask": attention_mask,
            "encoder_hidden_states": state.encoder_output,
        }
        if state.past_key_values is None:
            results = await self._run(Graph.INIT_DECODER, feeds)
        else:
            for past in state.past_key_values:
                feeds[past.name] = past.data
            results = await self._run(Graph.DECODER, feeds)

        names = list(results)
        if not names:
            raise InferenceError("decoder graph produced no outputs")
        if "logits" in results:
            logits = results["logits"]
            cache_names = [name for name in names if name != "logits"]
        else:
            logits = results[names[0]]
            cache_names = names[1:]
        state.past_key_values = [
            NamedTensor(f"pkv_{i}", results[name]) for i, name in enumerate(cache_names)
        ]
        return Seq2SeqOutput(logits, state.past_key_values, state.encoder_output)

    # ---------------------------
    # Internal helpers
    # ---------------------------
    async def _run(self, graph: Graph, feeds: Dict[str, torch.Tensor]) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(self.engine.run, graph, feeds)
        except InferenceError:
            raise
        except Exception as exc:
            raise InferenceError(f"{graph.value} graph failed: {exc}") from exc

    def _sample(self, logits: torch.Tensor, top_k: int) -> int:
        if top_k > 0:
            return sample_top_k(logits, top_k, self.generator)
        return sample_greedy(logits)


__all__ = [
    "GenerateOptions",
    "GenerationController",
    "GenerationState",
    "NamedTensor",
    "Phase",
    "RequestTicket",
    "RequestTracker",
    "Seq2SeqOutput",
    "sample_greedy",
    "sample_top_k",
]
