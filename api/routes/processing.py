"""
Processing API Routes

Start/stop control of the sampling loop, its status, and a WebSocket that
streams every evaluation outcome to the client.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect

from api.schemas import OutcomeMessage, ProcessingStatusResponse
from facematch.session import VerificationSession, get_session
from facematch.types import MatchOutcome
from facematch.video_source import AcquisitionError

logger = logging.getLogger(__name__)

# Outcomes buffered per WebSocket client before the oldest are dropped
OUTCOME_QUEUE_SIZE = 30

router = APIRouter(prefix="/processing", tags=["processing"])
ws_router = APIRouter(prefix="/ws", tags=["processing"])


def _status(session: VerificationSession) -> ProcessingStatusResponse:
    return ProcessingStatusResponse(**session.status())


@router.post("/start", response_model=ProcessingStatusResponse)
async def start_processing(session: VerificationSession = Depends(get_session)):
    """
    Start sampling frames. Calling it while already running changes nothing.

    Raises:
        503: If the camera was not acquired.
    """
    try:
        session.start()
    except AcquisitionError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return _status(session)


@router.post("/stop", response_model=ProcessingStatusResponse)
async def stop_processing(session: VerificationSession = Depends(get_session)):
    """Stop sampling after the in-flight iteration. Idempotent."""
    session.stop()
    return _status(session)


@router.get("/status", response_model=ProcessingStatusResponse)
async def processing_status(session: VerificationSession = Depends(get_session)):
    """Current state, camera/reference availability and the last outcome."""
    return _status(session)


def offer_latest(queue: asyncio.Queue, outcome: MatchOutcome) -> None:
    """Put `outcome` on `queue`, dropping the oldest entry when it is full."""
    if queue.full():
        queue.get_nowait()
    queue.put_nowait(outcome)


async def _forward_outcomes(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        outcome = await queue.get()
        await websocket.send_json(OutcomeMessage.from_outcome(outcome).model_dump())


@ws_router.websocket("/outcomes")
async def stream_outcomes(
    websocket: WebSocket,
    session: VerificationSession = Depends(get_session),
):
    """
    Push one message per evaluated frame.

    Protocol:
        Server -> Client (per evaluation):
        {
            "type": "outcome",
            "status": "compared" | "no_comparison",
            "distance": float | null,
            "fps": float | null,
            "reason": str | null,
            "is_match": bool | null,
            "frame_region": [x1, y1, x2, y2] | null,
            "timestamp": float
        }
    """
    await websocket.accept()

    queue: asyncio.Queue = asyncio.Queue(maxsize=OUTCOME_QUEUE_SIZE)

    def enqueue(outcome: MatchOutcome) -> None:
        offer_latest(queue, outcome)

    session.add_listener(enqueue)
    sender = asyncio.create_task(_forward_outcomes(websocket, queue))
    try:
        # Client messages are ignored; receiving only detects the disconnect
        while True:
            await websocket.receive_text()

    except WebSocketDisconnect:
        logger.info("Outcome stream client disconnected")

    except Exception as e:
        logger.error(f"Outcome stream failed: {e}")

    finally:
        session.remove_listener(enqueue)
        sender.cancel()
        await asyncio.gather(sender, return_exceptions=True)
