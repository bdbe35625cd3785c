import contextlib
import sys

import numpy as np

import facetrack.core.detectors.yolo as yolo_mod


class _FakeResult:
    def __init__(self, boxes=None, keypoints=None):
        self.boxes = boxes
        self.keypoints = keypoints


class _FakeBoxes:
    def __init__(self, xyxy, conf=None, id=None):
        self.xyxy = xyxy
        self.conf = conf
        self.id = id

    def __len__(self):
        return int(len(self.xyxy))


class _FakeKeypoints:
    def __init__(self, data):
        self.data = data


class _FakeTensor:
    def __init__(self, arr):
        self._arr = arr
        self.cpu_called = False

    def __len__(self):
        return len(self._arr)

    def cpu(self):
        self.cpu_called = True
        return self

    def numpy(self):
        return self._arr


class _FakeYOLO:
    def __init__(self, model_name, task=None):
        self.model_name = model_name
        self.task = task
        self.predict_calls = []
        self.track_calls = []
        self.results = []

    def predict(self, frame, **kwargs):
        self.predict_calls.append((frame, kwargs))
        return self.results

    def track(self, frame, **kwargs):
        self.track_calls.append((frame, kwargs))
        return self.results


def _pose_result(n=2, ids=None):
    xyxy = np.array([[0, 0, 10, 20], [30, 30, 60, 80]][:n], dtype=np.float32)
    conf = np.array([0.9, 0.6][:n], dtype=np.float32)
    kd = np.zeros((n, 17, 3), dtype=np.float32)
    kd[:, :5, 0] = 5.0
    kd[:, :5, 1] = 7.0
    kd[:, :5, 2] = 0.8
    return _FakeResult(
        boxes=_FakeBoxes(xyxy, conf, None if ids is None else np.array(ids, dtype=np.float32)),
        keypoints=_FakeKeypoints(kd),
    )


def test_configure_torch_threads_from_env(monkeypatch):
    monkeypatch.setattr(yolo_mod.YoloPoseDetector, "_torch_threads_configured", False)

    class _Torch:
        def __init__(self):
            self.num_threads = None

        def set_num_threads(self, n):
            self.num_threads = n

        @contextlib.contextmanager
        def inference_mode(self):
            yield

    torch = _Torch()
    monkeypatch.setitem(sys.modules, "torch", torch)
    monkeypatch.setenv("FT_TORCH_THREADS", "2")
    monkeypatch.setattr(yolo_mod, "YOLO", _FakeYOLO)

    det = yolo_mod.YoloPoseDetector(model_name="m.pt")
    assert torch.num_threads == 2
    assert det.model.task == "pose"


def test_configure_torch_threads_env_exception_is_ignored(monkeypatch):
    monkeypatch.setattr(yolo_mod.YoloPoseDetector, "_torch_threads_configured", False)
    monkeypatch.setenv("FT_TORCH_THREADS", "2")
    monkeypatch.setitem(sys.modules, "torch", object())
    monkeypatch.setattr(yolo_mod, "YOLO", _FakeYOLO)

    yolo_mod.YoloPoseDetector(model_name="m.onnx")


def test_estimate_tracks_with_persistence(monkeypatch):
    monkeypatch.setattr(yolo_mod, "YOLO", _FakeYOLO)
    det = yolo_mod.YoloPoseDetector(model_name="m.onnx", conf=0.4)
    det.model.results = [_pose_result(ids=[7, 9])]

    out = det.estimate(np.zeros((10, 10, 3), dtype=np.uint8), max_subjects=3)

    (_, kwargs), = det.model.track_calls
    assert kwargs["persist"] is True
    assert kwargs["max_det"] == 3
    assert kwargs["classes"] == [0]
    assert kwargs["conf"] == 0.4
    assert [d.track_id for d in out] == [7, 9]
    assert out[0].bbox == (0.0, 0.0, 10.0, 20.0)
    assert abs(out[1].confidence - 0.6) < 1e-6
    assert out[0].points.shape == (17, 2)
    assert out[0].scores.shape == (17,)


def test_estimate_without_tracking_uses_predict(monkeypatch):
    monkeypatch.setattr(yolo_mod, "YOLO", _FakeYOLO)
    det = yolo_mod.YoloPoseDetector(model_name="m.onnx", track=False)
    det.model.results = [_pose_result(n=1)]

    out = det.estimate(np.zeros((10, 10, 3), dtype=np.uint8))

    assert len(det.model.predict_calls) == 1
    assert det.model.track_calls == []
    assert out[0].track_id is None


def test_estimate_does_not_mirror_an_already_flipped_frame(monkeypatch):
    monkeypatch.setattr(yolo_mod, "YOLO", _FakeYOLO)
    det = yolo_mod.YoloPoseDetector(model_name="m.onnx", track=False)
    frame = np.zeros((2, 3, 3), dtype=np.uint8)
    frame[:, 0] = 255

    det.estimate(frame, flip_horizontal=True)

    (seen, _), = det.model.predict_calls
    assert seen is frame


def test_estimate_empty_results(monkeypatch):
    monkeypatch.setattr(yolo_mod, "YOLO", _FakeYOLO)
    det = yolo_mod.YoloPoseDetector(model_name="m.onnx")
    assert det.estimate(np.zeros((10, 10, 3), dtype=np.uint8)) == []


def test_parse_result_handles_missing_parts():
    parse = yolo_mod.YoloPoseDetector._parse_result
    assert parse(_FakeResult()) == []
    assert parse(_FakeResult(boxes=_FakeBoxes(np.zeros((0, 4))), keypoints=_FakeKeypoints(np.zeros((0, 17, 3))))) == []
    bad_kpts = _FakeResult(boxes=_FakeBoxes(np.zeros((1, 4))), keypoints=_FakeKeypoints(np.zeros((17, 3))))
    assert parse(bad_kpts) == []


def test_parse_result_cpu_conversion():
    xyxy = _FakeTensor(np.array([[1, 2, 3, 4]], dtype=np.float32))
    kd = _FakeTensor(np.zeros((1, 17, 3), dtype=np.float32))
    res = _FakeResult(boxes=_FakeBoxes(xyxy), keypoints=_FakeKeypoints(kd))

    out = yolo_mod.YoloPoseDetector._parse_result(res)

    assert xyxy.cpu_called and kd.cpu_called
    assert out[0].bbox == (1.0, 2.0, 3.0, 4.0)
    assert out[0].confidence is None
