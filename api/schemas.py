"""
Pydantic Schemas for API Request/Response Models

These schemas define the JSON contract of the live face match control
surface: processing start/stop/status, reference recomputation, the
per-frame outcome stream and the health check.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from facematch.types import MatchOutcome


# ============================================================
# Outcome Schemas
# ============================================================

class OutcomeMessage(BaseModel):
    """One evaluated frame, as pushed over /ws/outcomes."""
    type: str = Field(default="outcome", description="Message type")
    status: str = Field(..., description="'compared' or 'no_comparison'")
    distance: Optional[float] = Field(
        None, description="Euclidean distance to the reference (null when not comparable)"
    )
    fps: Optional[float] = Field(
        None, description="Frame-rate estimate (null on the first evaluation)"
    )
    reason: Optional[str] = Field(None, description="Why no comparison was possible")
    is_match: Optional[bool] = Field(
        None, description="Threshold decision (null when no threshold is configured)"
    )
    frame_region: Optional[List[int]] = Field(
        None, description="Face region (x1, y1, x2, y2) found in the frame"
    )
    timestamp: float = Field(..., description="Unix timestamp of the evaluation")

    @classmethod
    def from_outcome(cls, outcome: MatchOutcome) -> "OutcomeMessage":
        return cls(**outcome.to_dict())


# ============================================================
# Processing Schemas
# ============================================================

class ProcessingStatusResponse(BaseModel):
    """Current state of the sampling pipeline."""
    state: str = Field(..., description="'idle' or 'running'")
    camera_open: bool = Field(..., description="Whether the camera was acquired")
    reference_available: bool = Field(
        ..., description="Whether a reference signature is available"
    )
    last_outcome: Optional[OutcomeMessage] = Field(
        None, description="Most recent evaluation outcome"
    )


# ============================================================
# Reference Schemas
# ============================================================

class ReferenceRequest(BaseModel):
    """Request to recompute the reference signature from a new image."""
    image: str = Field(..., description="Base64-encoded JPEG/PNG image")


class ReferenceResponse(BaseModel):
    """Reference signature availability."""
    available: bool = Field(..., description="Whether a face was found in the reference")
    region: Optional[List[int]] = Field(
        None, description="Face region (x1, y1, x2, y2) in the reference image"
    )
    dim: Optional[int] = Field(None, description="Descriptor length")


# ============================================================
# Health Check Schemas
# ============================================================

class HealthResponse(BaseModel):
    """System health check response."""
    status: str = Field(..., description="'healthy' or 'degraded'")
    camera_open: bool = Field(..., description="Whether the camera was acquired")
    reference_available: bool = Field(..., description="Whether a reference signature exists")
    processing_state: str = Field(..., description="'idle' or 'running'")
    extractor: str = Field(..., description="Signature extractor in use")
    gpu_available: bool = Field(..., description="Whether a CUDA GPU is available")
