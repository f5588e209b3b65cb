from __future__ import annotations

from pathlib import Path
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from starlette.datastructures import UploadFile

from lyrics_video.utils.log import logger
from lyrics_video.utils.paths import public_url, upload_path
from lyrics_video.web.common import _settings

router = APIRouter()

_UPLOAD_TYPES = {"audio", "image", "lyrics"}
_CHUNK = 1024 * 1024


@router.post("/upload/{kind}")
async def upload_file(request: Request, kind: str) -> dict[str, str]:
    """
    Store one multipart file (field `file`) as `<timestamp-ms><ext>`.

    The field named after the upload kind (`audio`, `image`) is accepted too.
    """
    if kind not in _UPLOAD_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown upload type: {kind}")
    form = await request.form()
    upload = form.get("file") or form.get(kind)
    if not isinstance(upload, UploadFile) or not (upload.filename or ""):
        raise HTTPException(status_code=400, detail="No file uploaded")

    s = _settings(request)
    uploads_dir = Path(s.uploads_dir)
    dest = upload_path(uploads_dir, upload.filename or "")
    written = 0
    try:
        with dest.open("wb") as f:
            while True:
                chunk = await upload.read(_CHUNK)
                if not chunk:
                    break
                written += len(chunk)
                f.write(chunk)
    except OSError:
        dest.unlink(missing_ok=True)
        raise
    finally:
        await upload.close()

    logger.info("file_uploaded", kind=kind, filename=dest.name, bytes=written)
    return {
        "url": public_url(str(s.public_base_url), "uploads", dest, uploads_dir),
        "filename": dest.name,
    }


@router.post("/api/clear-cache")
async def clear_cache(request: Request) -> dict[str, Any]:
    """Delete every uploaded file."""
    uploads_dir = Path(_settings(request).uploads_dir)
    removed = 0
    if uploads_dir.is_dir():
        for p in uploads_dir.iterdir():
            if p.is_file():
                p.unlink(missing_ok=True)
                removed += 1
    logger.info("uploads_cleared", removed=removed)
    return {"message": "Cache cleared successfully", "removed": removed}
