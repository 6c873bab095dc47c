"""
Verification Session

Wires the pipeline together for one camera and one reference image and
follows the startup order of the live component: acquire the camera,
compute the reference signature once, then accept start/stop requests.

Usage:
    from facematch.session import VerificationSession

    session = VerificationSession.from_config()
    session.open()                 # raises AcquisitionError on camera failure
    session.add_listener(print)
    session.start()                # inside a running event loop
    ...
    await session.close()
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np

from facematch.config import get_config, get_project_root
from facematch.extractor import (
    FaceSignatureExtractor,
    SerializedExtractor,
    SignatureExtractor,
    StubSignatureExtractor,
)
from facematch.matching import MatchEvaluator
from facematch.reference import ReferenceSignatureHolder
from facematch.sampler import DisplayClock, FrameSampler, OutcomeListener
from facematch.state import PipelineState, ProcessingState, ProcessingStateMachine
from facematch.types import FaceSignature
from facematch.video_source import (
    AcquisitionError,
    CaptureConfig,
    VideoSource,
    WebcamCapture,
)

logger = logging.getLogger(__name__)


def build_extractor(
    detection_config: Dict[str, Any], embedding_config: Dict[str, Any]
) -> SignatureExtractor:
    """Create the extractor named by embedding.backend ("stub" or a model backend)."""
    if embedding_config.get("backend") == "stub":
        logger.info("Using stub signature extractor")
        return StubSignatureExtractor()
    return FaceSignatureExtractor.from_config(detection_config, embedding_config)


class VerificationSession:
    """
    One live verification pipeline.

    Args:
        source: Live VideoSource. If it has open()/close() the session
                manages the device through them.
        extractor: SignatureExtractor shared by reference and frames.
        reference_image: Path of the reference image computed on open().
        distance_threshold: Optional match decision threshold.
        refresh_hz: Sampling cadence.
    """

    def __init__(
        self,
        source: VideoSource,
        extractor: SignatureExtractor,
        reference_image: Optional[Union[str, Path]] = None,
        distance_threshold: Optional[float] = None,
        refresh_hz: float = 60.0,
    ):
        self.source = source
        self.extractor = extractor
        self.reference_image = Path(reference_image) if reference_image else None

        # Loop iterations and reference recomputation share one model instance
        shared = SerializedExtractor(extractor)
        self.reference = ReferenceSignatureHolder(shared)
        self.evaluator = MatchEvaluator(shared, distance_threshold=distance_threshold)
        self.state = PipelineState(machine=ProcessingStateMachine(), reference=self.reference)
        self.sampler = FrameSampler(
            source, self.evaluator, self.state, clock=DisplayClock(refresh_hz)
        )
        self.camera_open = False

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "VerificationSession":
        """Build a session from the full configuration dictionary."""
        if config is None:
            config = get_config()

        source = WebcamCapture(CaptureConfig.from_dict(config.get("video") or {}))
        extractor = build_extractor(
            config.get("face_detection") or {}, config.get("embedding") or {}
        )

        reference_image = (config.get("reference") or {}).get("image_path")
        if reference_image and not Path(reference_image).is_absolute():
            reference_image = get_project_root() / reference_image

        return cls(
            source=source,
            extractor=extractor,
            reference_image=reference_image,
            distance_threshold=(config.get("matching") or {}).get("distance_threshold"),
            refresh_hz=float((config.get("sampling") or {}).get("refresh_hz", 60.0)),
        )

    # ==================== Lifecycle ====================

    def open(self) -> None:
        """
        Acquire the camera, then compute the reference signature once.

        Raises:
            AcquisitionError: If the camera cannot be opened. Not retried.
            ReferenceImageError: If the reference image file is unreadable.
        """
        opener = getattr(self.source, "open", None)
        if opener is not None and not opener():
            self.camera_open = False
            raise AcquisitionError("Camera could not be opened")
        self.camera_open = True

        if self.reference_image is not None:
            self.reference.compute_from_file(self.reference_image)
        else:
            logger.warning("No reference image configured; matching is unavailable")

    async def close(self) -> None:
        """Stop sampling, then release the camera and detector."""
        await self.sampler.close()
        closer = getattr(self.source, "close", None)
        if closer is not None:
            closer()
        self.camera_open = False
        self.extractor.close()

    # ==================== Control ====================

    def start(self) -> None:
        """
        Start sampling (idempotent).

        Raises:
            AcquisitionError: If the camera was never acquired.
        """
        if not self.camera_open:
            raise AcquisitionError("Camera not acquired; call open() first")
        self.sampler.start()

    def stop(self) -> None:
        """Stop sampling at the next iteration boundary (idempotent)."""
        self.sampler.stop()

    @property
    def processing_state(self) -> ProcessingState:
        return self.state.machine.state

    def add_listener(self, listener: OutcomeListener) -> None:
        self.sampler.add_listener(listener)

    def remove_listener(self, listener: OutcomeListener) -> None:
        self.sampler.remove_listener(listener)

    def recompute_reference(self, image: np.ndarray) -> Optional[FaceSignature]:
        """Explicitly recompute the reference from a new image."""
        return self.reference.compute(image)

    def status(self) -> Dict[str, Any]:
        last = self.sampler.last_outcome
        return {
            "state": self.processing_state.value,
            "camera_open": self.camera_open,
            "reference_available": self.reference.is_available,
            "last_outcome": last.to_dict() if last is not None else None,
        }


# Session singleton used by the API
_session: Optional[VerificationSession] = None


def get_session() -> VerificationSession:
    """Return the process-wide session, building it from config on first use."""
    global _session
    if _session is None:
        _session = VerificationSession.from_config()
    return _session
