"""
Frame sources feeding the verification pipeline
"""
import base64
import binascii
import logging
import cv2
import numpy as np
from typing import Optional, Tuple

from ..config import config
from ..errors import CameraAccessError

logger = logging.getLogger(__name__)

Frame = Tuple[np.ndarray, int, int]


class FrameSource:
    """Interface: current_frame() returns (pixels, width, height) or None"""

    def open(self) -> None:
        pass

    def current_frame(self) -> Optional[Frame]:
        raise NotImplementedError

    def release(self) -> None:
        pass


class OpenCVCameraSource(FrameSource):
    """Local camera read through cv2.VideoCapture"""

    def __init__(
        self,
        camera_index: int = config.CAMERA_INDEX,
        width: int = config.CAMERA_WIDTH,
        height: int = config.CAMERA_HEIGHT
    ):
        self.camera_index = camera_index
        self.width = width
        self.height = height
        self._capture: Optional[cv2.VideoCapture] = None

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    def open(self) -> None:
        """
        Open the camera at the requested resolution.

        Raises:
            CameraAccessError: the device does not exist or cannot be opened
        """
        if self._capture is not None:
            return

        capture = cv2.VideoCapture(self.camera_index)
        if not capture.isOpened():
            capture.release()
            raise CameraAccessError(f"Cannot open camera {self.camera_index}")

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._capture = capture
        logger.info(f"Camera {self.camera_index} opened (requested {self.width}x{self.height})")

    def current_frame(self) -> Optional[Frame]:
        if self._capture is None:
            return None
        ok, frame = self._capture.read()
        if not ok or frame is None:
            logger.debug("Camera returned no frame")
            return None
        height, width = frame.shape[:2]
        return frame, width, height

    def release(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info(f"Camera {self.camera_index} released")


class EncodedFrameSource(FrameSource):
    """
    Holds the most recent frame pushed by a client as base64 image data
    (typically a browser canvas `toDataURL('image/jpeg')`).
    """

    def __init__(self):
        self._latest: Optional[np.ndarray] = None

    def push(self, frame_data: str) -> bool:
        """
        Decode and store a frame.

        Args:
            frame_data: Base64-encoded image data, optionally with a data URL prefix

        Returns:
            bool: True if the frame was decoded and stored
        """
        frame = self.decode_frame(frame_data)
        if frame is None:
            return False
        self._latest = frame
        return True

    @staticmethod
    def decode_frame(frame_data: str) -> Optional[np.ndarray]:
        """Decode base64 image data into a BGR array, or None if it is not an image"""
        try:
            # Remove data URL prefix if present (e.g., "data:image/jpeg;base64,")
            if "," in frame_data:
                frame_data = frame_data.split(",", 1)[1]
            img_bytes = base64.b64decode(frame_data, validate=True)
        except (binascii.Error, ValueError) as e:
            logger.error(f"Error decoding frame: {e}")
            return None

        nparr = np.frombuffer(img_bytes, np.uint8)
        if nparr.size == 0:
            logger.error("Failed to decode frame: empty payload")
            return None

        frame = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
        if frame is None:
            logger.error("Failed to decode frame: cv2.imdecode returned None")
            return None
        return frame

    def current_frame(self) -> Optional[Frame]:
        if self._latest is None:
            return None
        height, width = self._latest.shape[:2]
        return self._latest, width, height

    def release(self) -> None:
        self._latest = None
