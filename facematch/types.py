"""
Shared data types for the live face matching pipeline.

A FaceSignature only exists when extraction succeeded; "no face" is
represented by None everywhere in the pipeline, never by a zero vector.

Usage:
    from facematch.types import FaceSignature, MatchOutcome, MatchStatus

    signature = FaceSignature(descriptor=vec, region=(10, 20, 110, 140))
    outcome = MatchOutcome.compared(distance=0.42, fps=59.8)
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class FaceSignature:
    """
    Identity descriptor of a single detected face.

    Attributes:
        descriptor: Fixed-length 1-D float32 vector summarising the face.
        region: Bounding box (x1, y1, x2, y2) in pixels of the image the
                descriptor was extracted from.
        confidence: Detection confidence (0.0 to 1.0).
    """

    descriptor: np.ndarray
    region: Tuple[int, int, int, int] = (0, 0, 0, 0)
    confidence: float = 1.0

    def __post_init__(self):
        descriptor = np.asarray(self.descriptor, dtype=np.float32)
        if descriptor.ndim != 1 or descriptor.size == 0:
            raise ValueError(
                f"Signature descriptor must be a non-empty 1-D vector, "
                f"got shape {descriptor.shape}"
            )
        # Frozen dataclass: bypass __setattr__ to store the normalised copy
        object.__setattr__(self, "descriptor", descriptor)
        object.__setattr__(self, "region", tuple(int(v) for v in self.region))

    @property
    def dim(self) -> int:
        """Length of the descriptor vector."""
        return int(self.descriptor.shape[0])


class MatchStatus(str, Enum):
    """Whether an evaluation produced a distance."""

    COMPARED = "compared"
    NO_COMPARISON = "no_comparison"


# Reasons attached to NO_COMPARISON outcomes
REASON_NO_REFERENCE = "no_reference"
REASON_NO_FACE = "no_face_in_frame"
REASON_EXTRACTION_FAILED = "extraction_failed"
REASON_DESCRIPTOR_MISMATCH = "descriptor_mismatch"


@dataclass
class MatchOutcome:
    """
    Result of evaluating one sampled frame against the reference.

    Attributes:
        status: COMPARED when both signatures were present, else NO_COMPARISON.
        distance: Euclidean distance between the two descriptors.
                  None whenever status is NO_COMPARISON.
        fps: Frame-rate estimate from the interval since the previous
             evaluation. None on the first evaluation.
        reason: Why no comparison was possible (None when COMPARED).
        is_match: Threshold decision, or None when no threshold is configured
                  or no distance exists.
        frame_region: Face region found in the frame, if any.
        timestamp: Unix timestamp of the evaluation.
    """

    status: MatchStatus
    distance: Optional[float] = None
    fps: Optional[float] = None
    reason: Optional[str] = None
    is_match: Optional[bool] = None
    frame_region: Optional[Tuple[int, int, int, int]] = None
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def compared(cls, distance: float, **kwargs) -> "MatchOutcome":
        return cls(status=MatchStatus.COMPARED, distance=float(distance), **kwargs)

    @classmethod
    def no_comparison(cls, reason: str, **kwargs) -> "MatchOutcome":
        return cls(status=MatchStatus.NO_COMPARISON, reason=reason, **kwargs)

    @property
    def comparable(self) -> bool:
        return self.status == MatchStatus.COMPARED

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict form for JSON transport."""
        return {
            "status": self.status.value,
            "distance": self.distance,
            "fps": self.fps,
            "reason": self.reason,
            "is_match": self.is_match,
            "frame_region": list(self.frame_region) if self.frame_region else None,
            "timestamp": self.timestamp,
        }
