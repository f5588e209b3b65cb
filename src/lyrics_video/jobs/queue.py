from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path
from typing import Any

from lyrics_video.errors import EngineError
from lyrics_video.jobs.models import JobStatus, RenderJob, VideoType
from lyrics_video.jobs.store import QueueStore
from lyrics_video.render.engine import RenderEngine, RenderProgress
from lyrics_video.render.inputs import build_input_props
from lyrics_video.render.staging import staged_inputs
from lyrics_video.utils.log import job_id_var, logger
from lyrics_video.utils.paths import output_video_path, public_url

CANCELLED_MESSAGE = "Rendering cancelled by user"
STOPPED_MESSAGE = "Rendering stopped: processor shut down"

FAILURE_POLICIES = ("continue", "abort")


class JobProcessor:
    """
    Drains a QueueStore one job at a time against a RenderEngine.

    A single scheduler task is woken through a bounded event queue whenever the
    store changes, a job finishes or a cancellation window closes. Each wake-up
    runs one synchronous claim step, so a job can never be claimed twice. The
    claimed job renders in its own task, which keeps the scheduler (and
    `cancel`) responsive while the engine call is suspended.
    """

    def __init__(
        self,
        store: QueueStore,
        engine: RenderEngine,
        *,
        entry_point: Path,
        output_dir: Path,
        staging_dir: Path,
        public_base_url: str,
        composition_id: str = "lyrics-video",
        cancel_grace_sec: float = 0.5,
        event_queue_max: int = 64,
        variant_failure_policy: str = "continue",
    ) -> None:
        policy = str(variant_failure_policy or "").strip().lower()
        if policy not in FAILURE_POLICIES:
            raise ValueError(f"variant_failure_policy must be one of {FAILURE_POLICIES}")
        self.store = store
        self.engine = engine
        self.entry_point = Path(entry_point)
        self.output_dir = Path(output_dir)
        self.staging_dir = Path(staging_dir)
        self.public_base_url = str(public_base_url)
        self.composition_id = str(composition_id)
        self.cancel_grace_sec = max(0.0, float(cancel_grace_sec))
        self.variant_failure_policy = policy

        self._events: asyncio.Queue[str] = asyncio.Queue(maxsize=max(1, int(event_queue_max)))
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task | None = None
        self._job_tasks: set[asyncio.Task] = set()
        self._cancel_active = False
        self._cancel_handle: asyncio.TimerHandle | None = None
        self._waiters: dict[str, asyncio.Event] = {}
        self._idle = asyncio.Event()
        self._unsubscribe = store.subscribe(self._on_store_event)

    @classmethod
    def from_settings(cls, store: QueueStore, engine: RenderEngine, settings: Any) -> JobProcessor:
        return cls(
            store,
            engine,
            entry_point=settings.resolved_entry_point(),
            output_dir=Path(settings.output_dir),
            staging_dir=settings.resolved_staging_dir(),
            public_base_url=str(settings.public_base_url),
            composition_id=str(settings.composition_id),
            cancel_grace_sec=float(settings.cancel_grace_sec),
            event_queue_max=int(settings.scheduler_event_queue_max),
            variant_failure_policy=str(settings.variant_failure_policy),
        )

    # --- lifecycle ---
    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def cancel_active(self) -> bool:
        return self._cancel_active

    async def start(self) -> None:
        if self.running:
            return
        self._loop = asyncio.get_running_loop()
        self._task = asyncio.create_task(self._run(), name="render-scheduler")
        self._put("started")
        logger.info(
            "scheduler_started",
            entry_point=str(self.entry_point),
            failure_policy=self.variant_failure_policy,
        )

    async def stop(self) -> None:
        if self._cancel_handle is not None:
            self._cancel_handle.cancel()
            self._cancel_handle = None
        self._cancel_active = False
        tasks = [t for t in [self._task, *self._job_tasks] if t is not None]
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._task = None
        self._job_tasks.clear()
        logger.info("scheduler_stopped")

    def close(self) -> None:
        self._unsubscribe()

    # --- wake-ups ---
    def _call_in_loop(self, fn: Callable[..., None], *args: Any) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            fn(*args)
        else:
            loop.call_soon_threadsafe(fn, *args)

    def _on_store_event(self, event: str, job_id: str | None) -> None:
        self._call_in_loop(self._handle_store_event, event, job_id)

    def _handle_store_event(self, event: str, job_id: str | None) -> None:
        if event == "removed" and job_id:
            self._resolve_waiter(job_id)
        elif event == "cleared":
            for jid in list(self._waiters):
                if jid not in self.store:
                    self._resolve_waiter(jid)
        self._put(f"queue_{event}")

    def _put(self, reason: str) -> None:
        try:
            self._events.put_nowait(reason)
        except asyncio.QueueFull:
            # A wake-up is already pending; the next step sees the latest state.
            pass

    async def _run(self) -> None:
        while True:
            reason = await self._events.get()
            try:
                self.step()
            except Exception:
                logger.exception("scheduler_step_failed", reason=reason)
            finally:
                self._events.task_done()
            if self._is_idle():
                self._idle.set()
            else:
                self._idle.clear()

    def _is_idle(self) -> bool:
        return (
            not self._cancel_active
            and self.store.processing_id is None
            and self.store.first_pending() is None
        )

    # --- scheduling ---
    def step(self) -> str | None:
        """
        One claim step. Returns the id of the claimed job, if any.

        No await between reading the marker and setting it.
        """
        if self._cancel_active or self.store.processing_id is not None:
            return None
        job = self.store.first_pending()
        if job is None:
            return None
        self.store.set_processing_marker(job.id)
        self.store.update(
            job.id,
            status=JobStatus.PROCESSING,
            progress=0.0,
            current_video_type=None,
            error=None,
        )
        logger.info("job_claimed", job_id=job.id, video_types=[v.value for v in job.video_types()])
        task = asyncio.create_task(self._process(job.id), name=f"render-job-{job.id}")
        self._job_tasks.add(task)
        task.add_done_callback(self._job_tasks.discard)
        return job.id

    def _is_active(self, job_id: str) -> bool:
        return not self._cancel_active and self.store.processing_id == job_id

    def _apply(self, job_id: str, **fields: Any) -> bool:
        if not self._is_active(job_id):
            logger.debug("stale_update_dropped", job_id=job_id, fields=sorted(fields))
            return False
        self.store.update(job_id, **fields)
        return True

    async def _process(self, job_id: str) -> None:
        token = job_id_var.set(job_id)
        last_error: str | None = None
        aborted = False
        try:
            job = self.store.get(job_id)
            if job is None:
                return
            for vt in job.video_types():
                if not self._is_active(job_id):
                    logger.info("job_abandoned", job_id=job_id, at=vt.value)
                    return
                self._apply(job_id, current_video_type=vt, progress=0.0)
                try:
                    location = await self._render_variant(job, vt)
                except (EngineError, OSError) as ex:
                    last_error = f"Error rendering {vt.value}: {ex}"
                    logger.warning(
                        "variant_failed", job_id=job_id, video_type=vt.value, error=str(ex)
                    )
                    if self._is_active(job_id):
                        self.store.record_variant_error(job_id, vt, last_error)
                    if self.variant_failure_policy == "abort":
                        aborted = True
                        break
                    continue
                if self._is_active(job_id):
                    self.store.record_result(job_id, vt, location)
                    logger.info(
                        "variant_rendered", job_id=job_id, video_type=vt.value, output=location
                    )
                else:
                    logger.info("variant_result_dropped", job_id=job_id, video_type=vt.value)

            current = self.store.get(job_id)
            produced = bool(current and current.result)
            if aborted or (last_error is not None and not produced):
                self._apply(job_id, status=JobStatus.ERROR, error=last_error)
                logger.warning("job_failed", job_id=job_id, error=last_error)
            elif self._apply(job_id, status=JobStatus.COMPLETE, progress=1.0):
                logger.info("job_complete", job_id=job_id)
        except asyncio.CancelledError:
            self._apply(job_id, status=JobStatus.ERROR, error=STOPPED_MESSAGE)
            raise
        except Exception as ex:
            logger.exception("job_crashed", job_id=job_id)
            self._apply(job_id, status=JobStatus.ERROR, error=str(ex) or type(ex).__name__)
        finally:
            self._release(job_id)
            job_id_var.reset(token)

    async def _render_variant(self, job: RenderJob, video_type: VideoType) -> str:
        job_id = job.id

        def _on_progress(p: RenderProgress) -> None:
            if not self._is_active(job_id):
                logger.debug("stale_progress_dropped", job_id=job_id)
                return
            current = self.store.get(job_id)
            if current is None or current.current_video_type != video_type:
                return
            frac = p.fraction
            if frac < current.progress:
                return
            self.store.update(job_id, progress=frac)

        output_path = output_video_path(self.output_dir)
        try:
            with staged_inputs(
                self.staging_dir, self.public_base_url, job_id=job_id, variant=video_type.value
            ) as staged:
                props = build_input_props(job.inputs, video_type, staged)
                bundle = await self.engine.bundle(str(self.entry_point))
                composition = await self.engine.select_composition(
                    bundle, self.composition_id, props
                )
                await self.engine.render_media(composition, str(output_path), props, _on_progress)
        except BaseException:
            output_path.unlink(missing_ok=True)
            raise
        return public_url(self.public_base_url, "output", output_path, self.output_dir)

    def _release(self, job_id: str) -> None:
        if self.store.processing_id == job_id:
            self.store.set_processing_marker(None)
        self._resolve_waiter(job_id)
        self._put("job_finished")

    # --- cancellation ---
    def cancel(self) -> str | None:
        """
        Cancel the job holding the processing marker, if any.

        The in-flight engine call is not aborted. The job is marked failed, the
        marker is freed, and callbacks from the cancelled job are ignored. The
        next job is claimed once the short cancellation window closes.
        """
        job_id = self.store.processing_id
        if job_id is None:
            return None
        self._cancel_active = True
        self.store.update(job_id, status=JobStatus.ERROR, error=CANCELLED_MESSAGE)
        self.store.set_processing_marker(None)
        self._resolve_waiter(job_id)
        logger.info("job_cancelled", job_id=job_id)
        if self._loop is None:
            self._cancel_active = False
        else:
            self._call_in_loop(self._schedule_cancel_clear)
        return job_id

    def _schedule_cancel_clear(self) -> None:
        assert self._loop is not None
        if self._cancel_handle is not None:
            self._cancel_handle.cancel()
        self._cancel_handle = self._loop.call_later(self.cancel_grace_sec, self._clear_cancel)

    def _clear_cancel(self) -> None:
        self._cancel_handle = None
        self._cancel_active = False
        self._put("cancel_cleared")

    # --- waiting ---
    def _resolve_waiter(self, job_id: str) -> None:
        ev = self._waiters.pop(job_id, None)
        if ev is not None:
            self._call_in_loop(ev.set)

    async def wait(self, job_id: str, timeout: float | None = None) -> RenderJob | None:
        """Wait until the job completes, fails or is removed; returns its final state."""
        job = self.store.get(job_id)
        if job is None or job.status.is_terminal:
            return job
        ev = self._waiters.setdefault(job_id, asyncio.Event())
        await asyncio.wait_for(ev.wait(), timeout)
        return self.store.get(job_id)

    async def drain(self) -> None:
        """Wait until nothing is pending or processing."""
        self._idle.clear()
        self._put("drain")
        await self._idle.wait()
