"""Model loading and text generation for the service."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import AsyncGenerator, Dict, List, Optional, Sequence, Tuple

import torch

from s2s_service.config import ServiceSettings, settings as default_settings
from s2s_service.engine import InferenceEngine, load_engine
from s2s_service.generation import GenerateOptions, GenerationController, RequestTracker
from s2s_service.tokenizer import UnigramTokenizer

logger = logging.getLogger("s2s_service.models")


@dataclass
class GenerationResult:
    input_text: str
    output_text: str
    model_name: str
    tokens_in: int
    tokens_out: int
    latency_ms: float
    superseded: bool = False


@dataclass
class GenerationEvent:
    input_text: str
    output_text: str
    is_final: bool
    superseded: bool = False


@dataclass
class ModelBundle:
    model_id: str
    models_path: str
    tokenizer: UnigramTokenizer
    engine: InferenceEngine
    controller: GenerationController
    tracker: RequestTracker = field(default_factory=RequestTracker)


class Seq2SeqModelService:
    """Tokenizes, generates and detokenizes against lazily loaded models."""

    def __init__(
        self,
        settings: ServiceSettings | None = None,
        *,
        engine: Optional[InferenceEngine] = None,
    ):
        self.settings = settings or default_settings
        self.device = torch.device(self.settings.device)
        self._engine_override = engine
        self._bundles: Dict[Tuple[str, str], ModelBundle] = {}
        self._load_locks: Dict[Tuple[str, str], asyncio.Lock] = {}
        logger.info(
            "Service initialized: default_model=%s models_path=%s device=%s mock=%s",
            self.settings.model_id,
            self.settings.models_path,
            self.device,
            self.settings.mock_model,
        )

    # ---------------------------
    # Public API
    # ---------------------------
    async def generate(
        self,
        input_text: str,
        *,
        model_id: Optional[str] = None,
        models_path: Optional[str] = None,
        max_length: Optional[int] = None,
        top_k: Optional[int] = None,
        top_p: Optional[float] = None,
        num_beams: Optional[int] = None,
    ) -> GenerationResult:
        """Generate output text for an input text."""
        bundle = await self.get_bundle(model_id, models_path)
        options = self._build_options(max_length, top_k, top_p, num_beams)
        input_ids = bundle.tokenizer.encode(input_text)
        self._validate_input(input_ids)
        ticket = bundle.tracker.issue()

        start = time.perf_counter()
        output_ids = await bundle.controller.generate(input_ids, options, ticket=ticket)
        output_text = bundle.tokenizer.decode(output_ids, skip_special_tokens=True).strip()
        latency_ms = (time.perf_counter() - start) * 1000.0
        superseded = not ticket.is_current()

        logger.info(
            "request completed model=%s tokens_in=%s tokens_out=%s latency_ms=%.2f superseded=%s",
            bundle.model_id,
            len(input_ids),
            len(output_ids) - 1,
            latency_ms,
            superseded,
        )
        return GenerationResult(
            input_text=input_text,
            output_text=output_text,
            model_name=bundle.model_id,
            tokens_in=len(input_ids),
            tokens_out=len(output_ids) - 1,
            latency_ms=latency_ms,
            superseded=superseded,
        )

    async def stream_generate(
        self,
        input_text: str,
        *,
        model_id: Optional[str] = None,
        models_path: Optional[str] = None,
        max_length: Optional[int] = None,
        top_k: Optional[int] = None,
        top_p: Optional[float] = None,
        num_beams: Optional[int] = None,
    ) -> AsyncGenerator[GenerationEvent, None]:
        """Yield one event per decoded token, then a final event.

        A request issued later against the same model supersedes this one; the
        stream then ends with a final event flagged ``superseded``.
        """
        bundle = await self.get_bundle(model_id, models_path)
        options = self._build_options(max_length, top_k, top_p, num_beams)
        input_ids = bundle.tokenizer.encode(input_text)
        self._validate_input(input_ids)
        ticket = bundle.tracker.issue()
        queue: asyncio.Queue[Optional[GenerationEvent]] = asyncio.Queue()

        async def _on_step(output_ids: List[int], for_input_ids: List[int]) -> bool:
            if not ticket.is_current():
                return False
            text = bundle.tokenizer.decode(output_ids, skip_special_tokens=True).strip()
            await queue.put(GenerationEvent(input_text=input_text, output_text=text, is_final=False))
            return True

        async def _worker() -> List[int]:
            try:
                return await bundle.controller.generate(input_ids, options, _on_step, ticket)
            finally:
                await queue.put(None)

        task = asyncio.create_task(_worker())
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
            output_ids = await task
        finally:
            if not task.done():
                task.cancel()

        yield GenerationEvent(
            input_text=input_text,
            output_text=bundle.tokenizer.decode(output_ids, skip_special_tokens=True).strip(),
            is_final=True,
            superseded=not ticket.is_current(),
        )

    async def get_bundle(
        self, model_id: Optional[str] = None, models_path: Optional[str] = None
    ) -> ModelBundle:
        """Return the cached bundle for a model, loading it on first use."""
        key = (model_id or self.settings.model_id, models_path or self.settings.models_path)
        bundle = self._bundles.get(key)
        if bundle is not None:
            return bundle
        # concurrent first requests share one load
        lock = self._load_locks.setdefault(key, asyncio.Lock())
        async with lock:
            bundle = self._bundles.get(key)
            if bundle is None:
                bundle = await asyncio.to_thread(self._load_bundle, *key)
                self._bundles[key] = bundle
        return bundle

    @property
    def loaded_models(self) -> List[str]:
        return [model_id for model_id, _ in self._bundles]

    # ---------------------------
    # Internal helpers
    # ---------------------------
    def _load_bundle(self, model_id: str, models_path: str) -> ModelBundle:
        tokenizer = UnigramTokenizer.from_pretrained(model_id, models_path)
        engine = self._engine_override or load_engine(
            model_id,
            models_path,
            mock=self.settings.mock_model,
            vocab_size=tokenizer.vocab_size,
            suffix=self.settings.graph_suffix,
            device=str(self.device),
        )
        generator = None
        if self.settings.seed is not None:
            generator = torch.Generator().manual_seed(self.settings.seed)
        controller = GenerationController(engine, generator=generator)
        logger.info(
            "Model loaded: model=%s engine=%s vocab_size=%s",
            model_id,
            engine.__class__.__name__,
            tokenizer.vocab_size,
        )
        return ModelBundle(
            model_id=model_id,
            models_path=models_path,
            tokenizer=tokenizer,
            engine=engine,
            controller=controller,
        )

    def _build_options(
        self,
        max_length: Optional[int],
        top_k: Optional[int],
        top_p: Optional[float],
        num_beams: Optional[int],
    ) -> GenerateOptions:
        value = max_length or self.settings.max_length_default
        return GenerateOptions(
            max_length=min(value, self.settings.max_length_limit),
            top_k=self.settings.top_k_default if top_k is None else top_k,
            top_p=top_p or 0.0,
            num_beams=num_beams or 0,
        )

    def _validate_input(self, input_ids: Sequence[int]) -> None:
        if len(input_ids) > self.settings.max_input_tokens:
            raise ValueError(
                f"Input too long: {len(input_ids)} tokens, limit is {self.settings.max_input_tokens}"
            )
