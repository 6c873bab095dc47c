"""
Reference API Routes

Inspect the reference signature and recompute it from an uploaded image.
Recomputation runs in a worker thread; the new signature replaces the old
one atomically, so a running sampling loop is never interrupted.
"""

import asyncio
import base64
import binascii
import logging
from typing import Optional

import cv2
import numpy as np
from fastapi import APIRouter, Depends, HTTPException

from api.schemas import ReferenceRequest, ReferenceResponse
from facematch.session import VerificationSession, get_session
from facematch.types import FaceSignature

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reference", tags=["reference"])


def decode_image(image_b64: str) -> Optional[np.ndarray]:
    """
    Decode a base64-encoded JPEG/PNG image to a BGR numpy array.

    Returns:
        BGR numpy array or None if decoding fails.
    """
    try:
        img_bytes = base64.b64decode(image_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        logger.warning(f"Failed to decode base64 image: {e}")
        return None
    if not img_bytes:
        return None
    return cv2.imdecode(np.frombuffer(img_bytes, np.uint8), cv2.IMREAD_COLOR)


def _describe(signature: Optional[FaceSignature]) -> ReferenceResponse:
    if signature is None:
        return ReferenceResponse(available=False)
    return ReferenceResponse(available=True, region=list(signature.region), dim=signature.dim)


@router.get("", response_model=ReferenceResponse)
async def get_reference(session: VerificationSession = Depends(get_session)):
    """Availability and face region of the current reference signature."""
    return _describe(session.reference.signature)


@router.post("", response_model=ReferenceResponse)
async def recompute_reference(
    request: ReferenceRequest,
    session: VerificationSession = Depends(get_session),
):
    """
    Recompute the reference signature from a new image.

    An image without a face is accepted and leaves matching unavailable.

    Raises:
        400: If the image cannot be decoded.
    """
    image = decode_image(request.image)
    if image is None:
        raise HTTPException(status_code=400, detail="Invalid image data")

    signature = await asyncio.to_thread(session.recompute_reference, image)
    return _describe(signature)
