"""
Live video sources.

The pipeline only ever asks a source for its current dimensions and its
current frame; opening and releasing the device belongs to whoever owns the
source (see facematch.session).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class AcquisitionError(Exception):
    """Raised when the capture device cannot be opened or is not available."""


class VideoSource(ABC):
    """A handle to a continuously updating video frame."""

    @abstractmethod
    def frame_size(self) -> Tuple[int, int]:
        """Current (width, height) of the stream. (0, 0) when not ready."""
        pass

    @abstractmethod
    def current_frame(self) -> Optional[np.ndarray]:
        """Current BGR frame (H, W, 3), or None if none is available."""
        pass


@dataclass
class CaptureConfig:
    """Configuration for webcam capture."""
    width: int = 640
    height: int = 480
    fps: int = 30
    device_id: int = 0

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "CaptureConfig":
        return cls(
            width=int(config.get("width", cls.width)),
            height=int(config.get("height", cls.height)),
            fps=int(config.get("fps", cls.fps)),
            device_id=int(config.get("device_id", cls.device_id)),
        )


class WebcamCapture(VideoSource):
    """
    OpenCV-backed camera source.

    Dimensions are read from the device; before the device delivers its
    first frame some backends report 0x0, which the sampler treats as
    "not ready".
    """

    def __init__(self, config: Optional[CaptureConfig] = None):
        self.config = config or CaptureConfig()
        self._cap: Optional[cv2.VideoCapture] = None

    def open(self) -> bool:
        """
        Open the camera device.

        Returns:
            True if the camera opened, False otherwise.
        """
        if self._cap is not None:
            self.close()

        self._cap = cv2.VideoCapture(self.config.device_id)
        if not self._cap.isOpened():
            logger.error(f"Failed to open camera {self.config.device_id}")
            self._cap.release()
            self._cap = None
            return False

        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
        self._cap.set(cv2.CAP_PROP_FPS, self.config.fps)

        logger.info(
            f"Opened camera {self.config.device_id} "
            f"(requested {self.config.width}x{self.config.height}@{self.config.fps})"
        )
        return True

    def close(self) -> None:
        """Release the camera device."""
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info("Camera closed")

    @property
    def is_open(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def frame_size(self) -> Tuple[int, int]:
        if not self.is_open:
            return (0, 0)
        width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)
        return (width, height)

    def current_frame(self) -> Optional[np.ndarray]:
        if not self.is_open:
            return None
        ok, frame = self._cap.read()
        if not ok:
            return None
        return frame

    def __enter__(self):
        if not self.open():
            raise AcquisitionError(f"Camera {self.config.device_id} unavailable")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
