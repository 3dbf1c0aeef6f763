"""
Unit tests for MediaPipeLandmarkDetector

The FaceLandmarker itself is mocked; these tests cover the mesh to 68-layout
mapping, expression scoring and model loading errors.
"""
import pytest

from kyc_liveness.errors import ModelLoadError
from kyc_liveness.services.geometry_analyzer import GeometryAnalyzer
from kyc_liveness.services.landmark_detector import MediaPipeLandmarkDetector


def mesh_landmarks(mocker, count=478):
    """Normalized mesh points; point i sits at (i / 1000, i / 2000)"""
    points = []
    for i in range(count):
        lm = mocker.MagicMock()
        lm.x = i / 1000.0
        lm.y = i / 2000.0
        points.append(lm)
    return points


def blendshape(mocker, name, score):
    category = mocker.MagicMock()
    category.category_name = name
    category.score = score
    return category


@pytest.fixture
def detector(mocker):
    detector = MediaPipeLandmarkDetector(model_path="unused.task")
    detector._face_landmarker = mocker.MagicMock()
    mocker.patch("kyc_liveness.services.landmark_detector.mp.Image")
    return detector


class TestInitialization:

    def test_missing_model_path(self):
        with pytest.raises(ModelLoadError):
            MediaPipeLandmarkDetector(model_path=None).initialize()

    def test_nonexistent_model_file(self, tmp_path):
        detector = MediaPipeLandmarkDetector(model_path=str(tmp_path / "missing.task"))

        with pytest.raises(ModelLoadError, match="not found"):
            detector.initialize()
        assert not detector.is_initialized

    def test_mediapipe_failure_is_wrapped(self, tmp_path, mocker):
        model = tmp_path / "face_landmarker.task"
        model.write_bytes(b"not a model")
        mocker.patch(
            "kyc_liveness.services.landmark_detector.mp.tasks.vision.FaceLandmarker.create_from_options",
            side_effect=RuntimeError("corrupt model")
        )

        with pytest.raises(ModelLoadError, match="corrupt model"):
            MediaPipeLandmarkDetector(model_path=str(model)).initialize()

    def test_scorer_initialized_with_detector(self, tmp_path, mocker):
        model = tmp_path / "face_landmarker.task"
        model.write_bytes(b"model")
        mocker.patch(
            "kyc_liveness.services.landmark_detector.mp.tasks.vision.FaceLandmarker.create_from_options",
            return_value=mocker.MagicMock()
        )
        scorer = mocker.MagicMock()

        detector = MediaPipeLandmarkDetector(model_path=str(model), expression_scorer=scorer)
        detector.initialize()
        detector.initialize()

        assert detector.is_initialized
        scorer.initialize.assert_called_once()

    def test_close_releases_landmarker(self, mocker):
        detector = MediaPipeLandmarkDetector(model_path="unused.task")
        landmarker = mocker.MagicMock()
        detector._face_landmarker = landmarker

        detector.close()

        landmarker.close.assert_called_once()
        assert not detector.is_initialized


class TestDetect:

    def test_no_face_returns_none(self, detector, frame):
        detector._face_landmarker.detect.return_value.face_landmarks = []

        assert detector.detect(frame) is None

    def test_maps_mesh_to_pixel_landmarks(self, detector, frame, mocker):
        result = detector._face_landmarker.detect.return_value
        result.face_landmarks = [mesh_landmarks(mocker)]
        result.face_blendshapes = [[]]

        analysis = detector.detect(frame)

        # frame is 64x48
        assert analysis.face_detected
        assert analysis.landmarks.nose_tip == pytest.approx((1 / 1000.0 * 64, 1 / 2000.0 * 48))
        assert analysis.landmarks.left_eye_outer == pytest.approx((33 / 1000.0 * 64, 33 / 2000.0 * 48))
        assert analysis.landmarks.right_eye_outer == pytest.approx((263 / 1000.0 * 64, 263 / 2000.0 * 48))
        assert len(analysis.landmarks.jaw) == 17

    def test_smile_from_blendshapes(self, detector, frame, mocker):
        result = detector._face_landmarker.detect.return_value
        result.face_landmarks = [mesh_landmarks(mocker)]
        result.face_blendshapes = [[
            blendshape(mocker, "mouthSmileLeft", 0.9),
            blendshape(mocker, "mouthSmileRight", 0.8),
            blendshape(mocker, "eyeBlinkLeft", 0.1),
        ]]

        analysis = detector.detect(frame)

        assert analysis.expression_scores["happy"] == pytest.approx(0.85)
        assert analysis.expression_scores["neutral"] == pytest.approx(0.15)

    def test_scorer_overrides_blendshapes(self, detector, frame, mocker):
        scorer = mocker.MagicMock()
        scorer.score.return_value = {"happy": 0.95, "neutral": 0.05}
        detector.expression_scorer = scorer
        result = detector._face_landmarker.detect.return_value
        result.face_landmarks = [mesh_landmarks(mocker)]
        result.face_blendshapes = [[blendshape(mocker, "mouthSmileLeft", 0.1)]]

        analysis = detector.detect(frame)

        scorer.score.assert_called_once_with(frame)
        assert analysis.expression_scores["happy"] == 0.95

    def test_output_feeds_geometry_analyzer(self, detector, frame, mocker):
        result = detector._face_landmarker.detect.return_value
        result.face_landmarks = [mesh_landmarks(mocker)]
        result.face_blendshapes = []

        signals = GeometryAnalyzer().analyze(detector.detect(frame))

        assert signals.head_rotation is not None
        assert signals.expression("happy") == 0.0


class TestLandmarksFromMesh:

    def test_short_mesh_rejected(self):
        with pytest.raises(ValueError, match="468"):
            MediaPipeLandmarkDetector.landmarks_from_mesh([(0.0, 0.0)] * 100)

    def test_group_sizes(self):
        landmarks = MediaPipeLandmarkDetector.landmarks_from_mesh([(float(i), 0.0) for i in range(468)])

        assert [p[0] for p in landmarks.left_eye] == [33, 160, 158, 133, 153, 144]
        assert [p[0] for p in landmarks.right_eye] == [362, 385, 387, 263, 373, 380]
        assert len(landmarks.nose) == 9
