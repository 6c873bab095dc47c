"""
Frame Sampler / Loop Controller

Drives the capture -> extract -> compare cycle while the processing state is
Running. One iteration is scheduled per display refresh tick, and a new
iteration is only scheduled after the previous evaluation has completed, so
the single reusable frame buffer is never shared.

The loop is an explicit `while` over the state gate inside one asyncio task:
- the gate is checked when a tick fires (stop takes effect before the next
  cycle begins) and again when an iteration ends;
- an iteration already in flight always runs to completion;
- frames that are not ready (0x0, missing, wrong shape) skip the iteration.

Usage:
    sampler = FrameSampler(source, evaluator, pipeline_state)
    sampler.add_listener(lambda outcome: print(outcome.distance))
    sampler.start()          # must be called with a running event loop
    ...
    sampler.stop()
"""

import asyncio
import logging
import time
from typing import Callable, List, Optional, Tuple

import numpy as np

from facematch.matching import MatchEvaluator
from facematch.state import PipelineState
from facematch.types import MatchOutcome
from facematch.video_source import VideoSource

logger = logging.getLogger(__name__)

OutcomeListener = Callable[[MatchOutcome], None]


class DisplayClock:
    """
    Paces iterations to a display refresh rate.

    `next_frame()` resolves at the next refresh boundary after the previous
    tick. If the caller is slower than the refresh rate, it resolves on the
    next loop turn instead, so the cadence throttles to the work done.

    Args:
        refresh_hz: Display refresh rate (ticks per second).
    """

    def __init__(self, refresh_hz: float = 60.0):
        if refresh_hz <= 0:
            raise ValueError(f"refresh_hz must be positive, got {refresh_hz}")
        self.interval = 1.0 / float(refresh_hz)
        self._last_tick: Optional[float] = None

    async def next_frame(self) -> None:
        now = time.monotonic()
        delay = 0.0
        if self._last_tick is not None:
            delay = max(0.0, self._last_tick + self.interval - now)
        await asyncio.sleep(delay)
        self._last_tick = time.monotonic()


class FrameBuffer:
    """
    Reusable raster snapshot of the live frame.

    The pixel array is reallocated only when the synced dimensions change.
    """

    def __init__(self, channels: int = 3):
        self.channels = channels
        self.width = 0
        self.height = 0
        self.pixels: Optional[np.ndarray] = None

    def sync(self, size: Tuple[int, int]) -> bool:
        """
        Match the buffer to the live (width, height).

        Returns:
            False if the size is not usable (stream not ready).
        """
        width, height = int(size[0]), int(size[1])
        if width <= 0 or height <= 0:
            return False
        if (width, height) != (self.width, self.height) or self.pixels is None:
            self.pixels = np.zeros((height, width, self.channels), dtype=np.uint8)
            self.width, self.height = width, height
            logger.debug(f"Frame buffer resized to {width}x{height}")
        return True

    def capture(self, frame: Optional[np.ndarray]) -> bool:
        """
        Copy `frame` into the buffer.

        Returns:
            False if the frame is missing or does not match the synced size.
        """
        if frame is None or self.pixels is None:
            return False
        if frame.shape != self.pixels.shape:
            return False
        np.copyto(self.pixels, frame)
        return True


class FrameSampler:
    """
    Loop controller for one video source.

    Args:
        source: VideoSource to read frames from.
        evaluator: MatchEvaluator applied to every captured frame.
        state: PipelineState (state machine gate + reference holder).
        clock: Tick source pacing iterations (DisplayClock by default).
    """

    def __init__(
        self,
        source: VideoSource,
        evaluator: MatchEvaluator,
        state: PipelineState,
        clock: Optional[DisplayClock] = None,
    ):
        self.source = source
        self.evaluator = evaluator
        self.state = state
        self.clock = clock or DisplayClock()
        self.buffer = FrameBuffer()
        self.last_outcome: Optional[MatchOutcome] = None

        self._listeners: List[OutcomeListener] = []
        self._task: Optional[asyncio.Task] = None

    # ==================== Listeners ====================

    def add_listener(self, listener: OutcomeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: OutcomeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _publish(self, outcome: MatchOutcome) -> None:
        self.last_outcome = outcome
        if outcome.comparable:
            logger.debug(f"Distance: {outcome.distance:.4f} (fps={outcome.fps})")
        else:
            logger.debug(f"No comparison possible: {outcome.reason} (fps={outcome.fps})")

        for listener in list(self._listeners):
            try:
                listener(outcome)
            except Exception:
                logger.exception("Outcome listener failed")

    # ==================== Control ====================

    @property
    def is_running(self) -> bool:
        return self.state.machine.is_running

    @property
    def loop_active(self) -> bool:
        """True while a sampling task exists and has not finished."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """
        Begin sampling. No-op if already running.

        If a previous loop is still completing its in-flight iteration, that
        loop sees the Running state and continues; no second loop is created.

        Raises:
            RuntimeError: If called without a running event loop. The state
                          stays Idle.
        """
        loop = asyncio.get_running_loop()
        if not self.state.machine.start():
            return
        if not self.loop_active:
            self._task = loop.create_task(self._run())

    def stop(self) -> None:
        """Request sampling to end at the next iteration boundary. No-op if idle."""
        self.state.machine.stop()

    async def wait_stopped(self) -> None:
        """Wait until the sampling task has exited."""
        if self._task is not None:
            await self._task

    async def close(self) -> None:
        self.stop()
        await self.wait_stopped()

    # ==================== Loop ====================

    async def step(self) -> Optional[MatchOutcome]:
        """
        Run one capture-compare iteration while no sampling loop is active.

        Returns:
            The published outcome, or None if the iteration was skipped.

        Raises:
            RuntimeError: If the sampling loop task owns the frame buffer.
        """
        if self.loop_active:
            raise RuntimeError("step() cannot run while the sampling loop is active")
        return await self._iterate()

    async def _iterate(self) -> Optional[MatchOutcome]:
        try:
            size = self.source.frame_size()
            if not self.buffer.sync(size):
                logger.debug(f"Video not ready (size={size}); skipping iteration")
                return None
            if not self.buffer.capture(self.source.current_frame()):
                logger.debug("Stale or missing frame; skipping iteration")
                return None
        except Exception as e:
            logger.warning(f"Frame capture failed, skipping iteration: {e}")
            return None

        reference = self.state.reference.signature
        outcome = await self.evaluator.evaluate(self.buffer.pixels, reference)
        self._publish(outcome)
        return outcome

    async def _run(self) -> None:
        logger.info("Frame sampling loop started")
        try:
            while True:
                await self.clock.next_frame()
                if not self.state.machine.is_running:
                    break
                await self._iterate()
                if not self.state.machine.is_running:
                    break
        finally:
            logger.info("Frame sampling loop stopped")
