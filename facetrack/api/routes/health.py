"""Liveness endpoint."""

from fastapi import APIRouter

from facetrack.api.services.state import current_engine

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str]:
    """Report liveness and the engine phase; never starts the engine."""

    engine = current_engine()
    return {"status": "ok", "engine": engine.phase().value if engine is not None else "not_started"}
