"""
Debounced render scheduling with generation-based staleness checks.

Every state change calls ``request_render(snapshot)``.  The request bumps the
generation counter, captures the view snapshot as a ``RenderJob`` and
(re)arms a debounce timer; bursts of changes inside the debounce window
therefore collapse into one job carrying the last state.

When the timer fires the job is handed to a background executor.  The job's
generation is compared with the current counter before the work starts and
again, under the lock, right before publication; a stale job is dropped
without publishing.  Older jobs may still be running when a newer one starts
(they write to their own output files), but only the newest result is ever
published.

States: ``idle`` → ``scheduled`` → ``rendering`` → ``idle``.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from fov_overlay.config import DEBOUNCE_SECONDS

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_SCHEDULED = "scheduled"
STATE_RENDERING = "rendering"


@dataclass(frozen=True)
class RenderJob:
    generation: int
    view_mode: str
    selected: frozenset
    highlight_fl: int | None = None


class RenderScheduler:
    """Coalesces render requests and publishes only the newest result.

    *render_fn(job)* runs on a worker thread and returns a result object;
    *publish(job, result)* is called at most once per generation, while the
    scheduler lock is held, so it must not call back into the scheduler.
    """

    def __init__(
        self, render_fn, publish,
        debounce_seconds: float = DEBOUNCE_SECONDS,
        executor=None,
        timer_factory=threading.Timer,
    ):
        self._render_fn = render_fn
        self._publish = publish
        self._debounce_seconds = debounce_seconds
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=2, thread_name_prefix="fov-render",
        )
        self._timer_factory = timer_factory

        self._lock = threading.Lock()
        self._generation = 0
        self._pending: RenderJob | None = None
        self._timer = None
        self._state = STATE_IDLE
        self._closed = False

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def state(self) -> str:
        return self._state

    def is_current(self, job: RenderJob) -> bool:
        return job.generation == self._generation

    def _next_job(self, snapshot) -> RenderJob:
        self._generation += 1
        return RenderJob(
            generation=self._generation,
            view_mode=snapshot.view_mode,
            selected=frozenset(snapshot.selected),
            highlight_fl=snapshot.highlight_fl,
        )

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # --- Debounced path ---

    def request_render(self, snapshot) -> RenderJob | None:
        """Schedule a render of *snapshot* after the debounce delay."""
        with self._lock:
            if self._closed:
                return None
            job = self._next_job(snapshot)
            self._pending = job
            self._cancel_timer()
            timer = self._timer_factory(self._debounce_seconds, self._fire)
            timer.daemon = True
            self._timer = timer
            self._state = STATE_SCHEDULED
        timer.start()
        return job

    def _fire(self):
        with self._lock:
            job = self._pending
            self._pending = None
            self._timer = None
            if self._closed or job is None or not self.is_current(job):
                return
            self._state = STATE_RENDERING
        try:
            self._executor.submit(self._run, job)
        except RuntimeError:
            # Executor shut down between the check above and the submit
            logger.debug("Render generation %d dropped after shutdown", job.generation)
            with self._lock:
                self._state = STATE_IDLE

    def _run(self, job: RenderJob):
        if not self.is_current(job):
            logger.debug("Skipping stale render generation %d", job.generation)
            return
        try:
            result = self._render_fn(job)
        except Exception:
            logger.exception("Render generation %d failed", job.generation)
            result = None
        self._finish(job, result)

    def _finish(self, job: RenderJob, result) -> bool:
        with self._lock:
            if self._closed or not self.is_current(job):
                logger.debug(
                    "Discarding stale render generation %d (current %d)",
                    job.generation, self._generation,
                )
                return False
            self._state = STATE_IDLE
            self._publish(job, result)
            return True

    # --- Immediate path ---

    def render_now(self, snapshot, render_fn=None):
        """Render *snapshot* on the calling thread and publish it.

        Supersedes any scheduled or in-flight job.  *render_fn* overrides
        the default render function for this call (used for the first,
        bootstrap render).  Returns the result.
        """
        with self._lock:
            if self._closed:
                return None
            self._cancel_timer()
            self._pending = None
            job = self._next_job(snapshot)
            self._state = STATE_RENDERING
        result = (render_fn or self._render_fn)(job)
        self._finish(job, result)
        return result

    def shutdown(self):
        with self._lock:
            self._closed = True
            self._cancel_timer()
            self._pending = None
            self._state = STATE_IDLE
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
