"""
API Routes Package

Route handlers organized by feature:
- processing.py: start/stop/status endpoints and the outcome WebSocket
- reference.py: reference signature inspection and recomputation
"""

from api.routes.processing import router as processing_router
from api.routes.processing import ws_router as outcome_ws_router
from api.routes.reference import router as reference_router

__all__ = [
    "processing_router",
    "outcome_ws_router",
    "reference_router",
]
