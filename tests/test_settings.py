from pathlib import Path

import pytest

from facetrack.core.config import settings as cfg


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("FT_DETECTOR", "FT_MAX_SUBJECTS", "FT_VIDEO_SOURCE", "FT_CONFIDENCE_THRESHOLD"):
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    s = cfg.TrackerSettings()
    assert s.video_source == "webcam"
    assert s.detector == "yolo_pose"
    assert s.confidence_threshold == 0.3
    assert s.cycle_interval_ms == 100.0
    assert s.perf_window_ms == 5000.0
    assert s.diagnostic_every_n == 30


def test_load_settings_reads_updated_file(tmp_path: Path, monkeypatch):
    conf_path = tmp_path / "config.yml"
    conf_path.write_text("detector: face_mesh\nmax_subjects: 2\n", encoding="utf-8")
    monkeypatch.setenv("FT_CONFIG", str(conf_path))

    first = cfg.load_settings()
    assert first.detector == "face_mesh"
    assert first.max_subjects == 2

    conf_path.write_text("detector: yolo_pose\nmax_subjects: 4\n", encoding="utf-8")

    second = cfg.load_settings()
    assert second.detector == "yolo_pose"
    assert second.max_subjects == 4


def test_env_overrides_yaml(tmp_path: Path, monkeypatch):
    conf_path = tmp_path / "config.yml"
    conf_path.write_text("max_subjects: 2\nflip_horizontal: true\n", encoding="utf-8")
    monkeypatch.setenv("FT_CONFIG", str(conf_path))
    monkeypatch.setenv("FT_MAX_SUBJECTS", "5")

    s = cfg.load_settings()
    assert s.max_subjects == 5
    assert s.flip_horizontal is True


def test_missing_config_file_uses_defaults(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("FT_CONFIG", str(tmp_path / "missing.yml"))
    assert cfg.load_settings().model_dump() == cfg.TrackerSettings().model_dump()


def test_detector_is_normalized_and_validated():
    assert cfg.TrackerSettings(detector=" Face_Mesh ").detector == "face_mesh"
    with pytest.raises(ValueError):
        cfg.TrackerSettings(detector="hands")


def test_video_source_validation():
    with pytest.raises(ValueError):
        cfg.TrackerSettings(video_source="rtsp")


def test_confidence_threshold_validation():
    assert cfg.TrackerSettings(confidence_threshold=0).confidence_threshold == 0.0
    with pytest.raises(ValueError):
        cfg.TrackerSettings(confidence_threshold=1.0)
    with pytest.raises(ValueError):
        cfg.TrackerSettings(confidence_threshold=-0.1)


def test_numeric_validation():
    with pytest.raises(ValueError):
        cfg.TrackerSettings(max_subjects=0)
    with pytest.raises(ValueError):
        cfg.TrackerSettings(frame_width=0)
    with pytest.raises(ValueError):
        cfg.TrackerSettings(cycle_interval_ms=-1)
    with pytest.raises(ValueError):
        cfg.TrackerSettings(perf_window_ms=0)
    with pytest.raises(ValueError):
        cfg.TrackerSettings(diagnostic_every_n=-1)
    with pytest.raises(ValueError):
        cfg.TrackerSettings(jpeg_quality=5)
    assert cfg.TrackerSettings(cycle_interval_ms=0).cycle_interval_ms == 0.0


def test_assignment_is_validated():
    s = cfg.TrackerSettings()
    with pytest.raises(ValueError):
        s.max_subjects = 0


def test_settings_to_dict():
    data = cfg.settings_to_dict(cfg.TrackerSettings(max_subjects=3))
    assert data["max_subjects"] == 3
    assert data["model_name"] == "yolo11n-pose.pt"
