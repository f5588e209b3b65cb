from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from lyrics_video.errors import LyricsVideoError, RenderCancelled, RenderError, ValidationError
from lyrics_video.jobs.models import JobStatus, RenderJob
from lyrics_video.jobs.queue import CANCELLED_MESSAGE
from lyrics_video.jobs.submit import build_render_spec
from lyrics_video.utils.log import logger
from lyrics_video.web.common import _get_processor, _get_store, _read_json_object, _settings

router = APIRouter()


def video_url_or_raise(job: RenderJob | None) -> str:
    if job is None:
        raise RenderError("Job was removed from the queue before it finished")
    if job.status == JobStatus.COMPLETE:
        url = job.result.get(job.metadata.video_type)
        if url:
            return url
        raise RenderError("Render finished without an output")
    if job.error == CANCELLED_MESSAGE:
        raise RenderCancelled(job.error)
    raise RenderError(job.error or f"Job ended in status {job.status.value}")


@router.post("/render")
async def render_video(request: Request):
    """
    Render one variant and answer with its URL once it is done.

    The request is queued like any other job, so it waits behind work that is
    already pending.
    """
    body = await _read_json_object(request)
    s = _settings(request)
    try:
        spec = build_render_spec(body, uploads_dir=Path(s.uploads_dir))
    except ValidationError as ex:
        return JSONResponse(status_code=400, content={"error": str(ex), "field": ex.field})

    store = _get_store(request)
    processor = _get_processor(request)
    job_id = store.add(spec)
    job = await processor.wait(job_id)
    try:
        video_url = video_url_or_raise(job)
    except LyricsVideoError as ex:
        logger.warning("render_request_failed", job_id=job_id, error=str(ex))
        return JSONResponse(
            status_code=500,
            content={"error": "Error rendering video", "details": str(ex), "jobId": job_id},
        )
    return {"videoUrl": video_url, "jobId": job_id}
