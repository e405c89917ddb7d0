"""FastAPI application exposing generation endpoints."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict
from typing import Annotated, AsyncGenerator, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from s2s_service.config import ServiceSettings, settings
from s2s_service.engine import InferenceEngine
from s2s_service.errors import ConfigurationError, InferenceError
from s2s_service.models import Seq2SeqModelService
from s2s_service.schemas import GenerateRequest, GenerateResponse, HealthResponse, StreamEvent

logger = logging.getLogger("s2s_service.server")


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=500, detail=str(exc))
    if isinstance(exc, FileNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InferenceError):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def create_app(
    runtime_settings: ServiceSettings = settings, engine: Optional[InferenceEngine] = None
) -> FastAPI:
    runtime_settings.configure_logging()

    model_service = Seq2SeqModelService(settings=runtime_settings, engine=engine)

    app = FastAPI(
        title="Seq2Seq Inference Service",
        version="0.1.0",
        description="Unigram tokenization and encoder/decoder generation on the local device.",
    )
    app.state.model_service = model_service

    @app.middleware("http")
    async def add_timing(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        response.headers["X-Process-Time-ms"] = f"{elapsed_ms:.2f}"
        return response

    @app.get("/health", response_model=HealthResponse)
    async def health():
        loaded_models = model_service.loaded_models
        return HealthResponse(
            status="ok",
            model=runtime_settings.model_id,
            device=str(model_service.device),
            loaded=bool(loaded_models),
            loaded_models=loaded_models,
        )

    @app.post("/generate", response_model=GenerateResponse)
    async def generate(body: GenerateRequest):
        try:
            result = await model_service.generate(
                body.input_text,
                model_id=body.model_id,
                models_path=body.models_path,
                max_length=body.max_length,
                top_k=body.top_k,
                top_p=body.top_p,
                num_beams=body.num_beams,
            )
        except (ValueError, FileNotFoundError, InferenceError) as exc:
            logger.warning("generation failed: %s", exc)
            raise _http_error(exc) from exc

        return GenerateResponse(
            input_text=result.input_text,
            output_text=result.output_text,
            model=result.model_name,
            tokens_in=result.tokens_in,
            tokens_out=result.tokens_out,
            latency_ms=result.latency_ms,
            superseded=result.superseded,
        )

    async def _sse_stream(body: GenerateRequest) -> AsyncGenerator[bytes, None]:
        try:
            async for event in model_service.stream_generate(
                body.input_text,
                model_id=body.model_id,
                models_path=body.models_path,
                max_length=body.max_length,
                top_k=body.top_k,
                top_p=body.top_p,
                num_beams=body.num_beams,
            ):
                payload = StreamEvent(**asdict(event)).model_dump_json()
                yield f"data: {payload}\n\n".encode("utf-8")
        except (ValueError, FileNotFoundError, InferenceError) as exc:
            logger.warning("streaming generation failed: %s", exc)
            yield f"event: error\ndata: {str(exc)}\n\n".encode("utf-8")
        yield b"data: [DONE]\n\n"

    @app.get("/generate/stream")
    async def generate_stream(params: Annotated[GenerateRequest, Query()]) -> StreamingResponse:
        generator = _sse_stream(params)
        return StreamingResponse(generator, media_type="text/event-stream")

    return app


app = create_app()
