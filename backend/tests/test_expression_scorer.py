"""
Unit tests for DeepFaceExpressionScorer (DeepFace is mocked)
"""
import sys

import numpy as np
import pytest

from kyc_liveness.errors import ModelLoadError
from kyc_liveness.services.expression_scorer import DeepFaceExpressionScorer


@pytest.fixture
def scorer(mocker):
    scorer = DeepFaceExpressionScorer()
    scorer._deepface = mocker.MagicMock()
    return scorer


class TestExpressionScorer:

    def test_missing_deepface_raises_model_load_error(self, mocker):
        mocker.patch.dict(sys.modules, {"deepface": None})

        with pytest.raises(ModelLoadError):
            DeepFaceExpressionScorer().initialize()

    def test_scores_scaled_to_unit_range(self, scorer, frame):
        scorer._deepface.analyze.return_value = [
            {"emotion": {"happy": 92.0, "neutral": 5.0, "sad": 3.0}, "dominant_emotion": "happy"}
        ]

        scores = scorer.score(frame)

        assert scores["happy"] == pytest.approx(0.92)
        assert scores["sad"] == pytest.approx(0.03)

    def test_accepts_dict_result(self, scorer, frame):
        scorer._deepface.analyze.return_value = {"emotion": {"surprise": 40.0}}

        assert scorer.score(frame) == {"surprise": pytest.approx(0.4)}

    def test_does_not_enforce_detection(self, scorer, frame):
        scorer._deepface.analyze.return_value = []

        assert scorer.score(frame) == {}
        kwargs = scorer._deepface.analyze.call_args.kwargs
        assert kwargs["actions"] == ["emotion"]
        assert kwargs["enforce_detection"] is False

    def test_empty_frame(self, scorer):
        assert scorer.score(np.array([])) == {}
        scorer._deepface.analyze.assert_not_called()
