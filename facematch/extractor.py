"""
Signature Extractor Interface

This module defines the capability the pipeline depends on for turning an
image into a face signature. The pipeline never talks to a concrete
detector directly, so sampling, state handling and comparison can be tested
with a deterministic stub.

Two implementations live here:
1. StubSignatureExtractor - deterministic, dependency-light (OpenCV only)
2. FaceSignatureExtractor - MediaPipe detection + ArcFace embedding

SerializedExtractor wraps either one so that threads never run the models
concurrently.

Usage:
    from facematch.extractor import StubSignatureExtractor

    extractor = StubSignatureExtractor()
    signature = extractor.extract(frame)   # FaceSignature or None
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import cv2
import numpy as np

from facematch.types import FaceSignature

logger = logging.getLogger(__name__)


class SignatureExtractor(ABC):
    """
    Abstract base class for face signature extraction.

    Implementations receive a BGR image (H, W, 3) uint8 and return the
    signature of the single most prominent face, or None if no face is
    found. They may raise on internal failures; callers in the pipeline
    absorb those.
    """

    @abstractmethod
    def extract(self, image: np.ndarray) -> Optional[FaceSignature]:
        """
        Extract a face signature from an image.

        Args:
            image: BGR image as numpy array with shape (H, W, 3).

        Returns:
            FaceSignature, or None when no face is present.
        """
        pass

    def close(self) -> None:
        """Release any model resources. Default: nothing to release."""


class SerializedExtractor(SignatureExtractor):
    """
    Runs every extract() call of a wrapped extractor under one lock.

    Detector and embedder models are not safe to call from several threads
    at once; the sampling loop and reference recomputation both run
    extraction in worker threads, so they share one of these.
    """

    def __init__(self, extractor: SignatureExtractor):
        self.extractor = extractor
        self._lock = threading.Lock()

    def extract(self, image: np.ndarray) -> Optional[FaceSignature]:
        with self._lock:
            return self.extractor.extract(image)

    def close(self) -> None:
        with self._lock:
            self.extractor.close()


# ============================================================
# Stub Implementation
# ============================================================


class StubSignatureExtractor(SignatureExtractor):
    """
    Deterministic extractor based on a downsampled grayscale thumbnail.

    The descriptor is the L2-normalized, mean-centred thumbnail of the whole
    image, so identical images give identical signatures. Featureless images
    (pixel standard deviation below `min_contrast`) are treated as "no face".

    Use this to run the pipeline without model weights.
    """

    def __init__(self, thumbnail_size: int = 8, min_contrast: float = 2.0):
        """
        Args:
            thumbnail_size: Side length of the square thumbnail; the
                            descriptor has thumbnail_size ** 2 entries.
            min_contrast: Minimum grayscale standard deviation for an image
                          to count as containing a face.
        """
        self.thumbnail_size = thumbnail_size
        self.min_contrast = min_contrast

    def extract(self, image: np.ndarray) -> Optional[FaceSignature]:
        if image is None or image.size == 0:
            return None

        gray = image if image.ndim == 2 else cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        if float(gray.std()) < self.min_contrast:
            return None

        size = (self.thumbnail_size, self.thumbnail_size)
        thumb = cv2.resize(gray, size, interpolation=cv2.INTER_AREA)
        vec = thumb.astype(np.float32).ravel()
        vec -= vec.mean()

        norm = np.linalg.norm(vec)
        if norm < 1e-8:
            return None

        h, w = gray.shape[:2]
        return FaceSignature(descriptor=vec / norm, region=(0, 0, w, h), confidence=1.0)


# ============================================================
# MediaPipe + ArcFace Implementation
# ============================================================


class FaceSignatureExtractor(SignatureExtractor):
    """
    Production extractor: locate the face with MediaPipe, then embed the
    padded face crop with ArcFace.

    The region reported in the signature is the detector's bounding box in
    full-frame coordinates.

    Args:
        detector: A FaceDetector (or anything with detect/crop_face_region).
        embedder: A FaceEmbedder (or anything with extract_embedding).
    """

    def __init__(self, detector, embedder):
        self.detector = detector
        self.embedder = embedder

    @classmethod
    def from_config(
        cls,
        detection_config: Optional[Dict[str, Any]] = None,
        embedding_config: Optional[Dict[str, Any]] = None,
    ) -> "FaceSignatureExtractor":
        """Build detector and embedder from their config sections."""
        # Heavy model imports stay out of module import time
        from facematch.face_detector import FaceDetector
        from facematch.face_embedder import FaceEmbedder

        detector = FaceDetector(detection_config or {})
        embedder = FaceEmbedder(embedding_config or {})
        embedder.load_model()
        return cls(detector, embedder)

    def extract(self, image: np.ndarray) -> Optional[FaceSignature]:
        detection = self.detector.detect(image)
        if detection is None:
            return None

        crop = self.detector.crop_face_region(image, detection)
        if crop.size == 0:
            logger.debug("Empty face crop for bbox %s", detection.bbox)
            return None

        embedding = self.embedder.extract_embedding(crop)
        if embedding is None:
            return None

        return FaceSignature(
            descriptor=embedding,
            region=detection.bbox,
            confidence=detection.confidence,
        )

    def close(self) -> None:
        self.detector.close()
