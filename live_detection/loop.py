from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence, Union

from detect_kit.errors import InferenceError, InvalidFrameError, ModelLoadError
from detect_kit.postprocess import PostConfig
from detect_kit.runtime import DetectionPipeline, ModelHandle
from detect_kit.types import Detection, DetectionSet, Frame

from .settings import DetectionSettings, SettingsCell
from .timer import RepeatingTimer, TimerToken

LOGGER = logging.getLogger(__name__)


class FrameSource(Protocol):
    def read(self) -> Optional[Frame]:
        """Latest frame, or None when the source is not ready yet."""
        ...


class LoopState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    RUNNING = "running"
    ERROR = "error"


class ModelStatus(str, Enum):
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


DetectionCallback = Callable[[DetectionSet], None]
StatusCallback = Callable[[ModelStatus, Optional[BaseException]], None]


@dataclass(frozen=True)
class LoopStats:
    ticks: int = 0
    published: int = 0
    skipped_not_ready: int = 0
    skipped_busy: int = 0
    skipped_missed: int = 0
    failed: int = 0


class DetectionLoop:
    """
    Periodic detection session: frame -> pipeline -> published DetectionSet.

    States: IDLE -> LOADING -> RUNNING -> IDLE (stop), or LOADING -> ERROR when
    the model fails to load. ERROR is left only by an explicit `retry()`/`start()`.

    Ticks run one at a time on the timer thread. Per-tick failures are logged and
    the tick is skipped; they never stop the schedule. Results computed for a run
    that has since been stopped are dropped instead of published.
    """

    def __init__(
        self,
        handle: ModelHandle,
        source: FrameSource,
        settings: Union[SettingsCell, DetectionSettings, None] = None,
        *,
        post_cfg: PostConfig = PostConfig(),
        timer: Optional[RepeatingTimer] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if settings is None:
            settings = DetectionSettings(
                confidence_threshold=handle.config.confidence_threshold,
                iou_threshold=handle.config.iou_threshold,
            )
        self.settings = settings if isinstance(settings, SettingsCell) else SettingsCell(settings)
        self.handle = handle
        self.source = source
        self.pipeline = DetectionPipeline(handle, post_cfg=post_cfg)
        self._timer = timer or RepeatingTimer(clock=clock, name="detection-loop")
        self._clock = clock

        self._lock = threading.Lock()
        self._busy = threading.Lock()
        self._state = LoopState.IDLE
        self._generation = 0
        self._token: Optional[TimerToken] = None
        self._loader: Optional[threading.Thread] = None
        self._last_error: Optional[BaseException] = None
        self._latest = DetectionSet()

        self._ticks = 0
        self._published = 0
        self._skipped_not_ready = 0
        self._skipped_busy = 0
        self._failed = 0
        self._missed_prev_runs = 0

        self._detection_subs: List[DetectionCallback] = []
        self._status_subs: List[StatusCallback] = []

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> LoopState:
        with self._lock:
            return self._state

    @property
    def latest(self) -> DetectionSet:
        with self._lock:
            return self._latest

    @property
    def last_error(self) -> Optional[BaseException]:
        with self._lock:
            return self._last_error

    def subscribe(
        self,
        on_detections: Optional[DetectionCallback] = None,
        on_status: Optional[StatusCallback] = None,
    ) -> None:
        with self._lock:
            if on_detections is not None:
                self._detection_subs.append(on_detections)
            if on_status is not None:
                self._status_subs.append(on_status)

    def start(self, wait: bool = False) -> None:
        """
        Load the model if needed, then start ticking. No-op while loading or running.

        wait=True blocks until the load step has finished (loaded or failed).
        """

        with self._lock:
            if self._state in (LoopState.LOADING, LoopState.RUNNING):
                loader = self._loader
            else:
                self._generation += 1
                self._state = LoopState.LOADING
                self._last_error = None
                loader = threading.Thread(
                    target=self._load_then_run,
                    args=(self._generation,),
                    name="detection-loop-load",
                    daemon=True,
                )
                self._loader = loader
                loader.start()

        if wait and loader is not None:
            loader.join()

    def retry(self, wait: bool = False) -> None:
        """Restart after a model load failure."""

        if self.state is not LoopState.ERROR:
            LOGGER.debug("retry() ignored in state %s", self.state.value)
            return
        self.start(wait=wait)

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Cancel the schedule. An in-flight tick finishes but its result is dropped.

        timeout: if given, wait up to this long for the timer thread to exit.
        """

        with self._lock:
            self._generation += 1
            token = self._token
            self._token = None
            if self._state is not LoopState.ERROR:
                self._state = LoopState.IDLE
            if token is not None:
                token.cancel()
                self._missed_prev_runs += token.skipped
        if token is not None:
            if timeout is not None:
                token.join(timeout)
        LOGGER.info("Detection loop stopped")

    def run_once(self) -> Optional[DetectionSet]:
        """Run a single tick synchronously; returns the published set, if any."""

        with self._lock:
            generation = self._generation
        return self._tick(generation)

    def stats(self) -> LoopStats:
        with self._lock:
            token = self._token
            missed = self._missed_prev_runs + (token.skipped if token is not None else 0)
            return LoopStats(
                ticks=self._ticks,
                published=self._published,
                skipped_not_ready=self._skipped_not_ready,
                skipped_busy=self._skipped_busy,
                skipped_missed=missed,
                failed=self._failed,
            )

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _load_then_run(self, generation: int) -> None:
        self._emit_status(ModelStatus.LOADING, None)
        try:
            self.handle.load()
        except ModelLoadError as e:
            with self._lock:
                current = generation == self._generation and self._state is LoopState.LOADING
                if current:
                    self._state = LoopState.ERROR
                    self._last_error = e
            if current:
                self._emit_status(ModelStatus.ERROR, e)
            else:
                LOGGER.info("Model load failed after the loop was stopped: %s", e)
            return

        with self._lock:
            if generation != self._generation or self._state is not LoopState.LOADING:
                LOGGER.info("Loop stopped while the model was loading; not starting ticks")
                return
            self._token = self._timer.schedule(
                lambda: self._tick(generation),
                lambda: self.settings.get().tick_interval_s,
            )
            self._state = LoopState.RUNNING
        LOGGER.info("Detection loop running (every %d ms)", self.settings.get().tick_interval_ms)
        self._emit_status(ModelStatus.LOADED, None)

    def _tick(self, generation: int) -> Optional[DetectionSet]:
        if not self._busy.acquire(blocking=False):
            with self._lock:
                self._skipped_busy += 1
            LOGGER.debug("Previous tick still in flight; skipping")
            return None

        try:
            settings = self.settings.get()
            with self._lock:
                self._ticks += 1
                tick = self._ticks

            try:
                frame = self.source.read()
                if frame is None:
                    with self._lock:
                        self._skipped_not_ready += 1
                    return None
                detections = self.pipeline.detect(frame, settings.confidence_threshold, settings.iou_threshold)
            except (InvalidFrameError, InferenceError) as e:
                with self._lock:
                    self._failed += 1
                LOGGER.warning("Skipping tick %d: %s", tick, e)
                return None
            except Exception:
                with self._lock:
                    self._failed += 1
                LOGGER.exception("Unexpected error in tick %d; skipping", tick)
                return None

            return self._publish(generation, tick, detections, frame)
        finally:
            self._busy.release()

    def _publish(
        self, generation: int, tick: int, detections: Sequence[Detection], frame: Frame
    ) -> Optional[DetectionSet]:
        with self._lock:
            if generation != self._generation:
                LOGGER.debug("Dropping result of tick %d from a stopped run", tick)
                return None
            result = DetectionSet(
                detections=tuple(detections),
                tick=tick,
                timestamp=self._clock(),
                frame_size=(frame.width, frame.height),
            )
            self._latest = result
            self._published += 1
            subs = list(self._detection_subs)

        for cb in subs:
            try:
                cb(result)
            except Exception:
                LOGGER.exception("Detection subscriber raised")
        return result

    def _emit_status(self, status: ModelStatus, error: Optional[BaseException]) -> None:
        with self._lock:
            subs = list(self._status_subs)
        for cb in subs:
            try:
                cb(status, error)
            except Exception:
                LOGGER.exception("Status subscriber raised")
