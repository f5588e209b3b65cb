from __future__ import annotations

from pathlib import Path
from typing import Any

from fastapi import APIRouter, HTTPException, Request

from lyrics_video.errors import JobBusyError, ValidationError
from lyrics_video.jobs.models import JobStatus
from lyrics_video.jobs.submit import build_job_specs
from lyrics_video.utils.log import logger
from lyrics_video.web.common import _get_processor, _get_store, _read_json_object, _settings

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.post("", status_code=201)
async def submit_jobs(request: Request) -> dict[str, Any]:
    """
    Queue one job per requested video type, or a single job rendering every
    type when `allVersions` is true.
    """
    body = await _read_json_object(request)
    s = _settings(request)
    try:
        specs = build_job_specs(body, uploads_dir=Path(s.uploads_dir))
    except ValidationError as ex:
        raise HTTPException(status_code=400, detail=str(ex)) from None
    store = _get_store(request)
    ids = [store.add(spec) for spec in specs]
    return {"ids": ids}


@router.get("")
async def list_jobs(request: Request, status: str | None = None) -> dict[str, Any]:
    store = _get_store(request)
    processor = _get_processor(request)
    st: JobStatus | None = None
    if status:
        try:
            st = JobStatus(status)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Unknown status: {status}") from None
    return {
        "jobs": [j.to_dict() for j in store.list(status=st)],
        "processing_id": store.processing_id,
        "cancel_active": processor.cancel_active,
        "counts": store.counts(),
    }


@router.get("/{job_id}")
async def get_job(request: Request, job_id: str) -> dict[str, Any]:
    job = _get_store(request).get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Not found")
    return job.to_dict()


@router.delete("/{job_id}")
async def delete_job(request: Request, job_id: str) -> dict[str, Any]:
    try:
        removed = _get_store(request).remove(job_id)
    except JobBusyError as ex:
        raise HTTPException(status_code=409, detail=str(ex)) from None
    if removed:
        logger.info("job_removed", job_id=job_id)
    return {"ok": True, "removed": removed}


@router.post("/clear")
async def clear_jobs(request: Request) -> dict[str, Any]:
    removed = _get_store(request).clear()
    logger.info("queue_cleared", removed=removed)
    return {"ok": True, "removed": removed}


@router.post("/cancel")
async def cancel_job(request: Request) -> dict[str, Any]:
    cancelled = _get_processor(request).cancel()
    return {"ok": True, "cancelled": cancelled}
