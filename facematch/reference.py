"""
Reference Signature Holder

Owns the signature of the static reference image (e.g. a selfie). It is
computed once at startup and only recomputed when a caller asks for it.
A reference without a detectable face is stored as None; the holder never
raises for detector failures.
"""

import logging
import threading
from pathlib import Path
from typing import Optional, Union

import cv2
import numpy as np

from facematch.extractor import SignatureExtractor
from facematch.types import FaceSignature

logger = logging.getLogger(__name__)


class ReferenceImageError(Exception):
    """Raised when the reference image file cannot be read."""


class ReferenceSignatureHolder:
    """
    Holds the reference FaceSignature (or None).

    Replacement is atomic: a new signature is fully computed before it is
    swapped in, so readers see either the old or the new value.
    """

    def __init__(self, extractor: SignatureExtractor):
        self.extractor = extractor
        self._signature: Optional[FaceSignature] = None
        self._lock = threading.Lock()

    @property
    def signature(self) -> Optional[FaceSignature]:
        with self._lock:
            return self._signature

    @property
    def is_available(self) -> bool:
        return self.signature is not None

    def compute(self, image: np.ndarray) -> Optional[FaceSignature]:
        """
        Compute and store the signature of `image`.

        Returns:
            The stored signature, or None if no face was found or the
            extractor failed.
        """
        try:
            signature = self.extractor.extract(image)
        except Exception as e:
            logger.warning(f"Reference extraction failed: {e}")
            signature = None

        with self._lock:
            self._signature = signature

        if signature is None:
            logger.warning("No face found in reference image; matching is unavailable")
        else:
            logger.info(
                f"Reference signature computed (dim={signature.dim}, region={signature.region})"
            )
        return signature

    def compute_from_file(self, path: Union[str, Path]) -> Optional[FaceSignature]:
        """
        Load an image from disk and compute its signature.

        Raises:
            ReferenceImageError: If the file is missing or not a readable image.
        """
        path = Path(path)
        image = cv2.imread(str(path), cv2.IMREAD_COLOR) if path.is_file() else None
        if image is None:
            raise ReferenceImageError(f"Cannot read reference image: {path}")
        return self.compute(image)

    def clear(self) -> None:
        with self._lock:
            self._signature = None
