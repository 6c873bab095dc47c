"""
FastAPI Application Entry Point

Hosts one VerificationSession and exposes its start/stop control, reference
management and outcome stream.

On startup the session acquires the camera and computes the reference
signature once. A camera that cannot be opened is reported in the log and
through /health and /processing/start (HTTP 503); it is not retried.

Usage:
    # From project root:
    uvicorn api.app:app --host 0.0.0.0 --port 8000

    # Or run directly:
    python -m api.app
"""

import logging
from contextlib import asynccontextmanager

import torch
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import outcome_ws_router, processing_router, reference_router
from api.schemas import HealthResponse
from facematch.config import get_logging_config, get_server_config
from facematch.reference import ReferenceImageError
from facematch.session import VerificationSession, get_session
from facematch.video_source import AcquisitionError

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging() -> None:
    """Apply the `logging` section of config.yaml to the root logger."""
    log_config = get_logging_config()
    level = str(log_config.get("level", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=log_config.get("format", DEFAULT_LOG_FORMAT),
    )


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup: acquire the camera, compute the reference signature.
    Shutdown: stop sampling, release the camera.
    """
    logger.info("=" * 60)
    logger.info("Starting Live Face Match API")
    logger.info("=" * 60)

    session = get_session()
    try:
        session.open()
    except AcquisitionError as e:
        logger.error(f"Camera acquisition failed: {e}")
    except ReferenceImageError as e:
        logger.error(f"Reference image unavailable: {e}")

    logger.info(
        f"Session ready: camera_open={session.camera_open}, "
        f"reference_available={session.reference.is_available}"
    )

    yield

    logger.info("Shutting down API...")
    await session.close()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Live Face Match API",
    description="""
Continuous face verification of a live camera feed against a reference image.

## Control
- `POST /processing/start` / `POST /processing/stop`: toggle frame sampling
- `GET /processing/status`: state and latest outcome

## Reference
- `GET /reference`: reference signature availability
- `POST /reference`: recompute from a base64 image

## Outcome stream
Connect to `/ws/outcomes` to receive one JSON message per evaluated frame.
    """,
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(processing_router)
app.include_router(reference_router)
app.include_router(outcome_ws_router)


# ============================================================
# Health Check Endpoint
# ============================================================

@app.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check(session: VerificationSession = Depends(get_session)):
    """
    Report camera, reference and processing status.

    "degraded" means matching cannot produce distances: either the camera
    was not acquired or the reference image had no detectable face.
    """
    healthy = session.camera_open and session.reference.is_available

    return HealthResponse(
        status="healthy" if healthy else "degraded",
        camera_open=session.camera_open,
        reference_available=session.reference.is_available,
        processing_state=session.processing_state.value,
        extractor=type(session.extractor).__name__,
        gpu_available=torch.cuda.is_available(),
    )


@app.get("/", tags=["system"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Live Face Match API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    server = get_server_config()
    logger.info(f"Starting server on {server['host']}:{server['port']}")
    uvicorn.run(
        "api.app:app",
        host=server["host"],
        port=server["port"],
        log_level="info",
    )
