from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse

from facetrack.api.schemas.models import SnapshotSchema
from facetrack.api.services.engine import LandmarkEngine
from facetrack.api.services.state import get_engine

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/stream/video")
async def stream_video() -> StreamingResponse:
    """MJPEG stream of video frames with the landmark overlay composited on top."""

    engine: LandmarkEngine = await asyncio.to_thread(get_engine)
    return StreamingResponse(
        engine.mjpeg_generator(),
        media_type="multipart/x-mixed-replace; boundary=frame",
        headers={
            "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
            "Pragma": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@router.websocket("/stream/landmarks")
async def stream_landmarks(ws: WebSocket) -> None:
    """Push one JSON snapshot per completed loop cycle."""

    await ws.accept()
    engine: LandmarkEngine = await asyncio.to_thread(get_engine)
    try:
        async for payload in engine.snapshot_stream():
            await ws.send_json(SnapshotSchema.from_payload(payload).model_dump())
    except WebSocketDisconnect:
        return
    except Exception:
        logger.exception("Landmark websocket crashed")
        await ws.close(code=1011)
