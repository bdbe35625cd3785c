"""FastAPI app serving the annotated stream and landmark snapshots."""

from __future__ import annotations

import argparse
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from facetrack.api.routes import health, stats, stream
from facetrack.api.services.state import stop_engine


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    # The engine is started lazily by the routes; only shutdown needs handling.
    yield
    stop_engine()


app = FastAPI(title="facetrack API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for _router in (health.router, stats.router, stream.router):
    app.include_router(_router)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Serve facetrack over HTTP and WebSocket")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)
    # A single worker: the engine owns the camera.
    uvicorn.run(app, host=args.host, port=args.port, workers=1)


if __name__ == "__main__":
    main()
