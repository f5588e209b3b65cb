from __future__ import annotations

import json
from typing import Any

from fastapi import HTTPException, Request

from lyrics_video.config import Settings
from lyrics_video.jobs.queue import JobProcessor
from lyrics_video.jobs.store import QueueStore


def _get_store(request: Request) -> QueueStore:
    store = getattr(request.app.state, "queue_store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="Queue not initialized")
    return store


def _get_processor(request: Request) -> JobProcessor:
    processor = getattr(request.app.state, "processor", None)
    if processor is None:
        raise HTTPException(status_code=503, detail="Queue not initialized")
    return processor


def _settings(request: Request) -> Settings:
    return request.app.state.settings


async def _read_json_object(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON") from None
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return body
