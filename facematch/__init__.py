"""
Live Face Match Core

Samples frames from a live video source, extracts a face signature from each
frame and compares it with a reference signature computed once from a
static image.

Main components:
    - types: FaceSignature, MatchOutcome
    - extractor: SignatureExtractor interface and implementations
    - reference: ReferenceSignatureHolder
    - matching: MatchEvaluator, euclidean_distance
    - state: ProcessingStateMachine, PipelineState
    - sampler: FrameSampler, FrameBuffer, DisplayClock
    - video_source: VideoSource, WebcamCapture
    - session: VerificationSession
    - config: config.yaml loading

The MediaPipe detector and ArcFace embedder live in face_detector and
face_embedder and are imported on demand.

Usage:
    from facematch import VerificationSession
    session = VerificationSession.from_config()
"""

from facematch.types import FaceSignature, MatchOutcome, MatchStatus

from facematch.extractor import (
    SignatureExtractor,
    StubSignatureExtractor,
    SerializedExtractor,
    FaceSignatureExtractor,
)

from facematch.reference import ReferenceSignatureHolder, ReferenceImageError

from facematch.matching import MatchEvaluator, FrameRateMeter, euclidean_distance

from facematch.state import ProcessingState, ProcessingStateMachine, PipelineState

from facematch.video_source import (
    VideoSource,
    WebcamCapture,
    CaptureConfig,
    AcquisitionError,
)

from facematch.sampler import FrameSampler, FrameBuffer, DisplayClock

from facematch.session import VerificationSession, get_session

__all__ = [
    # Types
    "FaceSignature",
    "MatchOutcome",
    "MatchStatus",
    # Extraction
    "SignatureExtractor",
    "StubSignatureExtractor",
    "SerializedExtractor",
    "FaceSignatureExtractor",
    # Reference
    "ReferenceSignatureHolder",
    "ReferenceImageError",
    # Matching
    "MatchEvaluator",
    "FrameRateMeter",
    "euclidean_distance",
    # State
    "ProcessingState",
    "ProcessingStateMachine",
    "PipelineState",
    # Video
    "VideoSource",
    "WebcamCapture",
    "CaptureConfig",
    "AcquisitionError",
    # Sampling
    "FrameSampler",
    "FrameBuffer",
    "DisplayClock",
    # Session
    "VerificationSession",
    "get_session",
]
