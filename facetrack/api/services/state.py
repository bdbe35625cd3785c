"""Process-wide landmark engine shared by the HTTP/WS routes.

The engine is created lazily by the first route that needs landmarks.
`/health` only peeks at it, so a liveness check never opens the camera.
"""

from __future__ import annotations

from threading import Lock

from facetrack.api.services.engine import LandmarkEngine
from facetrack.core.config.settings import TrackerSettings, load_settings

_settings: TrackerSettings | None = None
_engine: LandmarkEngine | None = None
_lock = Lock()


def _settings_locked() -> TrackerSettings:
    # Caller holds `_lock`.
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def get_settings() -> TrackerSettings:
    """Return cached settings, loading them on first use."""

    with _lock:
        return _settings_locked()


def get_engine() -> LandmarkEngine:
    """Return the shared engine, creating and starting it on first use.

    A failed setup is not retried here; the error stays visible on `/stats`.
    """

    global _engine
    with _lock:
        if _engine is None:
            _engine = LandmarkEngine(_settings_locked())
            _engine.start()
        return _engine


def current_engine() -> LandmarkEngine | None:
    """Return the shared engine if one exists, without creating it."""

    with _lock:
        return _engine


def stop_engine() -> None:
    """Detach the shared engine and stop it outside the lock."""

    global _engine
    with _lock:
        engine, _engine = _engine, None
    if engine is not None:
        engine.stop()
