from __future__ import annotations

import copy
import threading
from collections.abc import Callable
from dataclasses import fields as dc_fields
from typing import Any

from lyrics_video.errors import InvalidTransition, JobBusyError
from lyrics_video.jobs.models import (
    JobSpec,
    JobStatus,
    RenderJob,
    VideoType,
    can_transition,
    new_id,
    now_utc,
)
from lyrics_video.utils.log import logger

# (event, job_id) -> None; events: added | updated | removed | cleared | marker
StoreListener = Callable[[str, "str | None"], None]

_JOB_FIELDS = {f.name for f in dc_fields(RenderJob)}
_IMMUTABLE_FIELDS = {"id", "inputs", "single_version", "created_at"}
# Grow-only maps; written through record_result / record_variant_error.
_MERGE_FIELDS = {"result", "variant_errors"}


class QueueStore:
    """
    In-memory, ordered render queue.

    Owns the jobs and the single processing marker. Holds no scheduling logic;
    listeners registered with `subscribe` are told about every mutation after
    the store lock has been released.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, RenderJob] = {}
        self._processing_id: str | None = None
        self._lock = threading.RLock()
        self._listeners: list[StoreListener] = []

    # --- observers ---
    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, event: str, job_id: str | None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for cb in listeners:
            try:
                cb(event, job_id)
            except Exception:
                logger.exception("store_listener_failed", event=event, job_id=job_id)

    # --- reads ---
    def get(self, id: str) -> RenderJob | None:
        with self._lock:
            job = self._jobs.get(id)
            return copy.deepcopy(job) if job is not None else None

    def list(self, *, status: JobStatus | None = None) -> list[RenderJob]:
        with self._lock:
            jobs = [copy.deepcopy(j) for j in self._jobs.values()]
        if status is not None:
            jobs = [j for j in jobs if j.status == status]
        return jobs

    def first_pending(self) -> RenderJob | None:
        with self._lock:
            for job in self._jobs.values():
                if job.status == JobStatus.PENDING:
                    return copy.deepcopy(job)
        return None

    def counts(self) -> dict[str, int]:
        out = {s.value: 0 for s in JobStatus}
        with self._lock:
            for job in self._jobs.values():
                out[job.status.value] += 1
        return out

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, id: object) -> bool:
        with self._lock:
            return id in self._jobs

    @property
    def processing_id(self) -> str | None:
        with self._lock:
            return self._processing_id

    @property
    def is_processing(self) -> bool:
        return self.processing_id is not None

    # --- writes ---
    def add(self, spec: JobSpec) -> str:
        job = RenderJob(
            id=new_id(),
            inputs=copy.deepcopy(spec.inputs),
            single_version=bool(spec.single_version),
            status=JobStatus.PENDING,
            progress=0.0,
            result={},
        )
        with self._lock:
            self._jobs[job.id] = job
        logger.info(
            "job_enqueued",
            job_id=job.id,
            video_type=spec.inputs.metadata.video_type.value,
            single_version=job.single_version,
        )
        self._emit("added", job.id)
        return job.id

    def remove(self, id: str) -> bool:
        with self._lock:
            job = self._jobs.get(id)
            if job is None:
                return False
            if id == self._processing_id or job.status == JobStatus.PROCESSING:
                raise JobBusyError(id)
            del self._jobs[id]
        self._emit("removed", id)
        return True

    def clear(self) -> int:
        with self._lock:
            keep = {
                jid: j
                for jid, j in self._jobs.items()
                if j.status == JobStatus.PROCESSING or jid == self._processing_id
            }
            removed = len(self._jobs) - len(keep)
            self._jobs = keep
        if removed:
            self._emit("cleared", None)
        return removed

    def update(self, id: str, **fields: Any) -> RenderJob | None:
        unknown = set(fields) - _JOB_FIELDS
        if unknown:
            raise KeyError(f"Unknown job fields: {sorted(unknown)}")
        frozen = set(fields) & _IMMUTABLE_FIELDS
        if frozen:
            raise KeyError(f"Immutable job fields: {sorted(frozen)}")
        merged = set(fields) & _MERGE_FIELDS
        if merged:
            raise KeyError(f"Grow-only job fields cannot be replaced: {sorted(merged)}")
        with self._lock:
            job = self._jobs.get(id)
            if job is None:
                return None
            if "status" in fields:
                target = JobStatus(fields["status"])
                if not can_transition(job.status, target):
                    raise InvalidTransition(id, job.status.value, target.value)
                fields["status"] = target
            for k, v in fields.items():
                setattr(job, k, v)
            job.updated_at = now_utc()
            snapshot = copy.deepcopy(job)
        self._emit("updated", id)
        return snapshot

    def record_result(self, id: str, video_type: VideoType, location: str) -> RenderJob | None:
        with self._lock:
            job = self._jobs.get(id)
            if job is None:
                return None
            job.result = {**job.result, video_type: location}
            job.updated_at = now_utc()
            snapshot = copy.deepcopy(job)
        self._emit("updated", id)
        return snapshot

    def record_variant_error(self, id: str, video_type: VideoType, message: str) -> RenderJob | None:
        with self._lock:
            job = self._jobs.get(id)
            if job is None:
                return None
            job.variant_errors = {**job.variant_errors, video_type: message}
            job.updated_at = now_utc()
            snapshot = copy.deepcopy(job)
        self._emit("updated", id)
        return snapshot

    def set_processing_marker(self, id: str | None) -> None:
        with self._lock:
            if id is not None and id not in self._jobs:
                raise KeyError(f"Unknown job: {id}")
            if self._processing_id == id:
                return
            self._processing_id = id
        self._emit("marker", id)
