"""Entrypoint script to launch the FastAPI server with Uvicorn."""

from __future__ import annotations

import argparse

import uvicorn

from s2s_service.config import ServiceSettings
from s2s_service.server import create_app


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the seq2seq inference API server.")
    parser.add_argument("--host", type=str, default=None, help="Host to bind (default from settings).")
    parser.add_argument("--port", type=int, default=None, help="Port to bind (default from settings).")
    parser.add_argument("--models-path", type=str, default=None, help="Directory holding model files.")
    parser.add_argument("--model-id", type=str, default=None, help="Default model identity.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    overrides = {}
    if args.models_path:
        overrides["models_path"] = args.models_path
    if args.model_id:
        overrides["model_id"] = args.model_id
    settings = ServiceSettings(**overrides)
    app = create_app(settings)

    host = args.host or settings.host
    port = args.port or settings.port

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
