"""
Match Evaluator: compare a sampled frame against the reference signature.

For every sampled frame the evaluator
1. updates the frame-rate estimate,
2. extracts the frame's signature (off the event loop, awaited),
3. reports the Euclidean distance to the reference, or an explicit
   NO_COMPARISON outcome when either signature is missing.

Detector failures never escape `evaluate`; they degrade the outcome to
NO_COMPARISON with reason "extraction_failed".

Usage:
    from facematch.matching import MatchEvaluator
    from facematch.extractor import StubSignatureExtractor

    evaluator = MatchEvaluator(StubSignatureExtractor())
    outcome = await evaluator.evaluate(frame, reference_signature)
"""

import asyncio
import logging
import time
from typing import Callable, Optional

import numpy as np

from facematch.extractor import SignatureExtractor
from facematch.types import (
    REASON_DESCRIPTOR_MISMATCH,
    REASON_EXTRACTION_FAILED,
    REASON_NO_FACE,
    REASON_NO_REFERENCE,
    FaceSignature,
    MatchOutcome,
)

logger = logging.getLogger(__name__)


def euclidean_distance(a: FaceSignature, b: FaceSignature) -> float:
    """
    Euclidean distance between two signature descriptors.

    Raises:
        ValueError: If the descriptors have different lengths.
    """
    if a.dim != b.dim:
        raise ValueError(f"Descriptor dimension mismatch: {a.dim} vs {b.dim}")
    # float64 accumulation; a - b and b - a differ only in sign, so the
    # result is exactly symmetric
    diff = a.descriptor.astype(np.float64) - b.descriptor.astype(np.float64)
    return float(np.sqrt(np.dot(diff, diff)))


class FrameRateMeter:
    """
    Frames-per-second estimate from the interval between successive calls.

    Holds the last-evaluation timestamp (milliseconds) as explicit state.

    Args:
        clock: Returns the current time in seconds (default time.perf_counter).
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.perf_counter
        self.last_tick_ms: Optional[float] = None

    def tick(self) -> Optional[float]:
        """
        Record a call and return 1000 / elapsed_ms since the previous one.

        Returns None on the first call and when no time has elapsed.
        """
        now_ms = self._clock() * 1000.0
        previous = self.last_tick_ms
        self.last_tick_ms = now_ms

        if previous is None:
            return None
        elapsed = now_ms - previous
        if elapsed <= 0:
            return None
        return 1000.0 / elapsed

    def reset(self) -> None:
        self.last_tick_ms = None


class MatchEvaluator:
    """
    Compares per-frame signatures against a reference signature.

    Args:
        extractor: SignatureExtractor used on every frame.
        distance_threshold: If set, outcomes carry is_match = distance <= threshold.
                            If None, only the raw distance is reported.
        frame_rate: FrameRateMeter to use (a fresh one by default).
    """

    def __init__(
        self,
        extractor: SignatureExtractor,
        distance_threshold: Optional[float] = None,
        frame_rate: Optional[FrameRateMeter] = None,
    ):
        self.extractor = extractor
        self.distance_threshold = (
            float(distance_threshold) if distance_threshold is not None else None
        )
        self.frame_rate = frame_rate or FrameRateMeter()

    async def evaluate(
        self,
        frame: np.ndarray,
        reference: Optional[FaceSignature],
    ) -> MatchOutcome:
        """
        Evaluate one frame buffer against the reference signature.

        Args:
            frame: BGR frame buffer (H, W, 3). Must not be mutated by the
                   caller until this coroutine completes.
            reference: Reference signature, or None if unavailable.

        Returns:
            MatchOutcome (never raises for detector failures).
        """
        fps = self.frame_rate.tick()

        try:
            signature = await asyncio.to_thread(self.extractor.extract, frame)
        except Exception as e:
            logger.warning(f"Signature extraction failed: {e}")
            return MatchOutcome.no_comparison(REASON_EXTRACTION_FAILED, fps=fps)

        region = signature.region if signature is not None else None

        if reference is None:
            return MatchOutcome.no_comparison(REASON_NO_REFERENCE, fps=fps, frame_region=region)
        if signature is None:
            return MatchOutcome.no_comparison(REASON_NO_FACE, fps=fps)

        try:
            distance = euclidean_distance(signature, reference)
        except ValueError as e:
            logger.error(str(e))
            return MatchOutcome.no_comparison(
                REASON_DESCRIPTOR_MISMATCH, fps=fps, frame_region=region
            )

        is_match = None
        if self.distance_threshold is not None:
            is_match = distance <= self.distance_threshold

        return MatchOutcome.compared(
            distance, fps=fps, is_match=is_match, frame_region=region
        )
