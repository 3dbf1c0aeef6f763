"""
Capture Store holding one confirming still image per satisfied challenge
"""
import base64
import logging
import time
import cv2
import numpy as np
from typing import Optional

from ..config import config
from ..models.data_models import CapturedImage, VerificationSession

logger = logging.getLogger(__name__)


class CaptureStore:
    """
    Encodes frames as base64 JPEG data URLs and files them on the session
    under the key of the challenge that is currently settling.
    """

    def __init__(
        self,
        jpeg_quality: int = config.CAPTURE_JPEG_QUALITY
    ):
        """
        Args:
            jpeg_quality: OpenCV JPEG quality (0-100)
        """
        self.jpeg_quality = jpeg_quality

    def encode_image(self, frame: np.ndarray) -> str:
        """
        Encode a BGR frame as a `data:image/jpeg;base64,...` URL.

        Raises:
            ValueError: OpenCV could not encode the frame
        """
        ok, buffer = cv2.imencode('.jpg', frame, [int(cv2.IMWRITE_JPEG_QUALITY), self.jpeg_quality])
        if not ok:
            raise ValueError("cv2.imencode failed to encode frame")
        return "data:image/jpeg;base64," + base64.b64encode(buffer.tobytes()).decode('ascii')

    def capture_current_challenge_image(
        self,
        session: VerificationSession,
        frame: Optional[np.ndarray],
        captured_at: Optional[float] = None
    ) -> bool:
        """
        Store exactly one image for the challenge that is currently settling.

        Never overwrites an existing entry; that would break the one image
        per satisfied challenge invariant.

        Args:
            session: Session being verified
            frame: Latest BGR frame from the frame source
            captured_at: Capture timestamp; defaults to the wall clock

        Returns:
            bool: True if an image was stored
        """
        key = session.settling_key
        if key is None:
            logger.error("Capture requested while no challenge is settling")
            return False

        if key in session.captured_images:
            logger.error(f"Refusing to overwrite captured image for '{key.value}'")
            return False

        if frame is None or frame.size == 0:
            logger.warning(f"No frame available to capture for '{key.value}'")
            return False

        try:
            data_url = self.encode_image(frame)
        except (ValueError, cv2.error) as e:
            logger.error(f"Error encoding capture for '{key.value}': {e}")
            return False

        height, width = frame.shape[:2]
        if captured_at is None:
            captured_at = time.time()
        session.captured_images[key] = CapturedImage(
            key=key,
            data_url=data_url,
            width=int(width),
            height=int(height),
            captured_at=captured_at
        )
        logger.info(f"Captured {width}x{height} image for challenge '{key.value}'")
        return True
