"""
Unit tests for CaptureStore
"""
import base64

import cv2
import numpy as np
import pytest

from kyc_liveness.models.data_models import ChallengeKey, VerificationSession
from kyc_liveness.services.capture_store import CaptureStore
from kyc_liveness.services.challenges import DEFAULT_CHALLENGES


@pytest.fixture
def session():
    session = VerificationSession(ordered_challenges=DEFAULT_CHALLENGES, started_at=1000.0)
    session.settling_key = ChallengeKey.FRONT
    return session


class TestEncodeImage:

    def test_data_url_prefix(self, frame):
        data_url = CaptureStore().encode_image(frame)

        assert data_url.startswith("data:image/jpeg;base64,")

    def test_payload_decodes_to_frame_of_same_size(self, frame):
        data_url = CaptureStore().encode_image(frame)
        payload = base64.b64decode(data_url.split(",", 1)[1])

        decoded = cv2.imdecode(np.frombuffer(payload, np.uint8), cv2.IMREAD_COLOR)

        assert decoded.shape == frame.shape

    def test_quality_affects_size(self, frame):
        low = CaptureStore(jpeg_quality=10).encode_image(frame)
        high = CaptureStore(jpeg_quality=95).encode_image(frame)

        assert len(low) < len(high)


class TestCaptureCurrentChallengeImage:

    def test_stores_image_under_settling_key(self, session, frame):
        store = CaptureStore()

        assert store.capture_current_challenge_image(session, frame, captured_at=1001.0)

        image = session.captured_images[ChallengeKey.FRONT]
        assert image.key == ChallengeKey.FRONT
        assert image.width == 64
        assert image.height == 48
        assert image.captured_at == 1001.0

    def test_defaults_timestamp_to_wall_clock(self, session, frame, mocker):
        mocker.patch("kyc_liveness.services.capture_store.time.time", return_value=42.0)

        CaptureStore().capture_current_challenge_image(session, frame)

        assert session.captured_images[ChallengeKey.FRONT].captured_at == 42.0

    def test_never_overwrites(self, session, frame):
        store = CaptureStore()
        store.capture_current_challenge_image(session, frame, captured_at=1.0)
        original = session.captured_images[ChallengeKey.FRONT]

        other = np.zeros_like(frame)
        assert store.capture_current_challenge_image(session, other, captured_at=2.0) is False
        assert session.captured_images[ChallengeKey.FRONT] is original

    def test_nothing_settling(self, session, frame):
        session.settling_key = None

        assert CaptureStore().capture_current_challenge_image(session, frame) is False
        assert session.captured_images == {}

    def test_missing_frame(self, session):
        store = CaptureStore()

        assert store.capture_current_challenge_image(session, None) is False
        assert store.capture_current_challenge_image(session, np.array([], dtype=np.uint8)) is False
        assert session.captured_images == {}

    def test_encoding_failure_is_reported_not_raised(self, session, frame, mocker):
        store = CaptureStore()
        mocker.patch.object(store, "encode_image", side_effect=ValueError("cv2.imencode failed"))

        assert store.capture_current_challenge_image(session, frame) is False
        assert session.captured_images == {}
