"""
Face Detection Module

Locates the single most prominent face in a frame using MediaPipe Face
Landmarker (Tasks API) and reports its bounding box, 2D landmarks and a
confidence estimate. The bounding box becomes the geometric region attached
to a FaceSignature, and the padded crop is what the embedder sees.

Usage:
    from facematch.face_detector import FaceDetector

    detector = FaceDetector({"min_detection_confidence": 0.5})
    detection = detector.detect(frame)
    if detection:
        crop = detector.crop_face_region(frame, detection)
"""

import logging
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import cv2
import mediapipe as mp
import numpy as np
from mediapipe.tasks import python as mp_tasks
from mediapipe.tasks.python import vision

logger = logging.getLogger(__name__)

MODEL_URL = "https://storage.googleapis.com/mediapipe-models/face_landmarker/face_landmarker/float16/1/face_landmarker.task"
MODEL_FILENAME = "face_landmarker.task"


@dataclass
class FaceDetection:
    """
    A single detected face.

    Attributes:
        bbox: (x1, y1, x2, y2) in pixels, clamped to the image.
        landmarks_2d: (N, 2) landmark pixel coordinates.
        confidence: Heuristic confidence between 0.0 and 1.0.
    """

    bbox: Tuple[int, int, int, int]
    landmarks_2d: np.ndarray
    confidence: float


def get_model_path(model_dir: Optional[str] = None) -> str:
    """
    Return the local landmarker model path, downloading it on first use.

    Args:
        model_dir: Directory for the model file. Defaults to
                   <project root>/storage/models.
    """
    if model_dir is None:
        from facematch.config import get_project_root

        directory = get_project_root() / "storage" / "models"
    else:
        directory = Path(model_dir)
    directory.mkdir(parents=True, exist_ok=True)

    model_path = directory / MODEL_FILENAME
    if not model_path.exists():
        logger.info(f"Downloading MediaPipe face landmarker model to {model_path}")
        urllib.request.urlretrieve(MODEL_URL, str(model_path))
        logger.info("Download complete")

    return str(model_path)


class FaceDetector:
    """
    Single-face detector wrapping MediaPipe's FaceLandmarker in IMAGE mode.

    Args:
        config: Dictionary with optional keys:
            - min_detection_confidence: Detector threshold (default 0.5)
            - face_padding: Crop padding ratio around the bbox (default 0.3)
            - model_dir: Where the .task model is stored/downloaded
    """

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        min_conf = config.get("min_detection_confidence", 0.5)
        self.face_padding = config.get("face_padding", 0.3)

        base_options = mp_tasks.BaseOptions(
            model_asset_path=get_model_path(config.get("model_dir"))
        )
        options = vision.FaceLandmarkerOptions(
            base_options=base_options,
            running_mode=vision.RunningMode.IMAGE,
            num_faces=1,
            min_face_detection_confidence=min_conf,
            min_face_presence_confidence=min_conf,
            output_face_blendshapes=False,
            output_facial_transformation_matrixes=False,
        )
        self.landmarker = vision.FaceLandmarker.create_from_options(options)

    def detect(self, frame: np.ndarray) -> Optional[FaceDetection]:
        """
        Detect the face in a BGR frame.

        Returns:
            FaceDetection, or None if no face is found.
        """
        h, w = frame.shape[:2]

        # MediaPipe expects RGB
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
        results = self.landmarker.detect(mp_image)

        if not results.face_landmarks:
            return None

        points = np.array(
            [[lm.x * w, lm.y * h] for lm in results.face_landmarks[0]],
            dtype=np.float32,
        )
        return FaceDetection(
            bbox=self._bbox_from_landmarks(points, w, h),
            landmarks_2d=points,
            confidence=self._estimate_confidence(points, w, h),
        )

    @staticmethod
    def _bbox_from_landmarks(
        points: np.ndarray, width: int, height: int
    ) -> Tuple[int, int, int, int]:
        x1 = max(0, int(np.min(points[:, 0])))
        y1 = max(0, int(np.min(points[:, 1])))
        x2 = min(width, int(np.max(points[:, 0])))
        y2 = min(height, int(np.max(points[:, 1])))
        return (x1, y1, x2, y2)

    @staticmethod
    def _estimate_confidence(points: np.ndarray, width: int, height: int) -> float:
        """
        Rough confidence from framing: faces touching the border or covering
        a tiny fraction of the image score lower.
        """
        margin = 5
        inside = (
            points[:, 0].min() >= margin
            and points[:, 1].min() >= margin
            and points[:, 0].max() <= width - margin
            and points[:, 1].max() <= height - margin
        )
        confidence = 0.95 if inside else 0.7

        span = np.ptp(points, axis=0)
        area_ratio = float(span[0] * span[1]) / float(width * height)
        if area_ratio < 0.01:
            confidence *= 0.5
        elif area_ratio < 0.05:
            confidence *= 0.8

        return min(1.0, max(0.0, confidence))

    def crop_face_region(
        self,
        frame: np.ndarray,
        detection: FaceDetection,
        padding: Optional[float] = None,
    ) -> np.ndarray:
        """Crop the face with `padding` (ratio of bbox size) on each side."""
        if padding is None:
            padding = self.face_padding

        h, w = frame.shape[:2]
        x1, y1, x2, y2 = detection.bbox
        pad_x = int((x2 - x1) * padding)
        pad_y = int((y2 - y1) * padding)

        return frame[
            max(0, y1 - pad_y):min(h, y2 + pad_y),
            max(0, x1 - pad_x):min(w, x2 + pad_x),
        ]

    def close(self):
        """Release MediaPipe resources."""
        if getattr(self, "landmarker", None) is not None:
            self.landmarker.close()
            self.landmarker = None
