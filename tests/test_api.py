import pytest
from fastapi.testclient import TestClient

import facetrack.api.main as api_main
from facetrack.api.main import app
from facetrack.api.services import state as engine_state
from facetrack.core.config.settings import TrackerSettings
from facetrack.core.loop.controller import Phase
from facetrack.core.types import NamedLandmark, SnapshotPayload, SubjectRecord


def _payload(cycle=3):
    record = SubjectRecord(
        subject_id=5,
        landmarks=(
            NamedLandmark(name="nose", x=10.0, y=12.0, score=0.9, source_index=0),
            NamedLandmark(name="left_eye", x=8.0, y=9.0, score=0.8, source_index=1),
        ),
        bbox=(0.0, 0.0, 20.0, 20.0),
        confidence=0.85,
    )
    return SnapshotPayload(cycle=cycle, timestamp=1.5, subjects=[record], fps=9.8, frame_size=(640, 480))


class DummyEngine:
    def __init__(self, payload=None, error=None, phase=Phase.WAITING, diagnostic=None):
        self._payload = payload
        self.last_error = error
        self._phase = phase
        self._diagnostic = diagnostic

    def latest_payload(self):
        return self._payload

    def latest_diagnostic(self):
        return self._diagnostic

    def phase(self):
        return self._phase

    async def snapshot_stream(self):
        if self._payload is not None:
            yield self._payload

    async def mjpeg_generator(self):
        yield b"--frame\r\nContent-Type: image/jpeg\r\n\r\nxx\r\n"


@pytest.fixture
def use_engine():
    previous = engine_state._engine

    def _install(engine):
        engine_state._engine = engine
        return engine

    yield _install
    engine_state._engine = previous


def test_health_endpoint_does_not_start_engine(use_engine):
    use_engine(None)
    res = TestClient(app).get("/health")

    assert res.status_code == 200
    assert res.json() == {"status": "ok", "engine": "not_started"}
    assert engine_state.current_engine() is None


def test_health_reports_engine_phase(use_engine):
    use_engine(DummyEngine(phase=Phase.FAILED))
    assert TestClient(app).get("/health").json() == {"status": "ok", "engine": "failed"}


class _RecordingEngine:
    def __init__(self, settings):
        self.settings = settings
        self.starts = 0
        self.stops = 0

    def start(self):
        self.starts += 1

    def stop(self):
        self.stops += 1


def test_get_engine_creates_one_shared_engine(monkeypatch):
    settings = TrackerSettings()
    monkeypatch.setattr(engine_state, "LandmarkEngine", _RecordingEngine)
    monkeypatch.setattr(engine_state, "_settings", settings)
    monkeypatch.setattr(engine_state, "_engine", None)

    engine = engine_state.get_engine()

    assert engine_state.get_engine() is engine
    assert engine.settings is settings
    assert engine.starts == 1


def test_stop_engine_detaches_and_stops(monkeypatch):
    monkeypatch.setattr(engine_state, "LandmarkEngine", _RecordingEngine)
    monkeypatch.setattr(engine_state, "_settings", TrackerSettings())
    monkeypatch.setattr(engine_state, "_engine", None)
    engine = engine_state.get_engine()

    engine_state.stop_engine()
    engine_state.stop_engine()

    assert engine.stops == 1
    assert engine_state.current_engine() is None
    assert engine_state.get_engine() is not engine


def test_main_serves_app_with_cli_address(monkeypatch):
    calls = []
    monkeypatch.setattr(api_main.uvicorn, "run", lambda target, **kw: calls.append((target, kw)))

    api_main.main(["--host", "0.0.0.0", "--port", "9001"])

    assert calls == [(app, {"host": "0.0.0.0", "port": 9001, "workers": 1})]


def test_stats_with_payload(use_engine):
    use_engine(DummyEngine(payload=_payload()))
    res = TestClient(app).get("/stats")

    assert res.status_code == 200
    assert res.json() == {
        "subjects": 1,
        "points": 2,
        "fps": 9.8,
        "cycles": 3,
        "phase": "waiting",
        "error": None,
    }


def test_stats_reports_setup_error(use_engine):
    use_engine(DummyEngine(error="Setup failed: camera busy", phase=Phase.FAILED))
    data = TestClient(app).get("/stats").json()

    assert data["subjects"] == 0
    assert data["phase"] == "failed"
    assert data["error"] == "Setup failed: camera busy"


def test_diagnostics_endpoint(use_engine):
    use_engine(DummyEngine())
    assert TestClient(app).get("/diagnostics").json() == []

    use_engine(DummyEngine(diagnostic=[{"person_id": 1, "point_count": 5}]))
    assert TestClient(app).get("/diagnostics").json() == [{"person_id": 1, "point_count": 5}]


def test_landmark_websocket_sends_snapshot(use_engine):
    use_engine(DummyEngine(payload=_payload(cycle=7)))
    client = TestClient(app)

    with client.websocket_connect("/stream/landmarks") as ws:
        data = ws.receive_json()

    assert data["cycle"] == 7
    assert data["frame_size"] == [640, 480]
    subject = data["subjects"][0]
    assert subject["subject_id"] == 5
    assert subject["bbox"] == [0.0, 0.0, 20.0, 20.0]
    assert [lm["name"] for lm in subject["landmarks"]] == ["nose", "left_eye"]
    assert subject["landmarks"][0]["source_index"] == 0


def test_video_stream_is_mjpeg(use_engine):
    use_engine(DummyEngine())
    client = TestClient(app)

    with client.stream("GET", "/stream/video") as res:
        assert res.status_code == 200
        assert res.headers["content-type"].startswith("multipart/x-mixed-replace")
        body = b"".join(res.iter_bytes())

    assert body.startswith(b"--frame\r\n")
