"""
Processing state machine and the pipeline state record.

The state machine is the only gate deciding whether the frame sampler keeps
scheduling iterations. Both transitions are idempotent.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum

from facematch.reference import ReferenceSignatureHolder

logger = logging.getLogger(__name__)


class ProcessingState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class ProcessingStateMachine:
    """Idle/Running flag with idempotent start and stop."""

    def __init__(self):
        self._state = ProcessingState.IDLE
        self._lock = threading.Lock()

    @property
    def state(self) -> ProcessingState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == ProcessingState.RUNNING

    def start(self) -> bool:
        """Idle -> Running. Returns True if a transition happened."""
        with self._lock:
            if self._state == ProcessingState.RUNNING:
                return False
            self._state = ProcessingState.RUNNING
        logger.info("Processing state: idle -> running")
        return True

    def stop(self) -> bool:
        """Running -> Idle. Returns True if a transition happened."""
        with self._lock:
            if self._state == ProcessingState.IDLE:
                return False
            self._state = ProcessingState.IDLE
        logger.info("Processing state: running -> idle")
        return True


@dataclass
class PipelineState:
    """
    Mutable state shared by one sampling pipeline.

    Attributes:
        machine: Idle/Running gate.
        reference: Holder of the reference signature.
    """

    machine: ProcessingStateMachine
    reference: ReferenceSignatureHolder
