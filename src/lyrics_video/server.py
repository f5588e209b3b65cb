from __future__ import annotations

import secrets
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from lyrics_video import __version__
from lyrics_video.config import Settings, get_settings
from lyrics_video.jobs.queue import JobProcessor
from lyrics_video.jobs.store import QueueStore
from lyrics_video.render.engine import RemotionCliEngine, RenderEngine
from lyrics_video.utils.log import logger, set_request_id
from lyrics_video.web.routes_jobs import router as jobs_router
from lyrics_video.web.routes_render import router as render_router
from lyrics_video.web.routes_upload import router as upload_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    s: Settings = app.state.settings
    for d in (Path(s.uploads_dir), Path(s.output_dir), s.resolved_staging_dir()):
        d.mkdir(parents=True, exist_ok=True)

    store = QueueStore()
    processor = JobProcessor.from_settings(store, app.state.engine, s)
    app.state.queue_store = store
    app.state.processor = processor
    await processor.start()
    logger.info(
        "server_started",
        uploads_dir=str(s.uploads_dir),
        output_dir=str(s.output_dir),
        public_base_url=str(s.public_base_url),
    )
    try:
        yield
    finally:
        await processor.stop()
        processor.close()
        logger.info("server_stopped")


def create_app(*, engine: RenderEngine | None = None, settings: Settings | None = None) -> FastAPI:
    """
    Build the HTTP app. The queue and its processor are created in the
    lifespan, so every app instance owns an independent queue.
    """
    s = settings or get_settings()
    app = FastAPI(title="lyrics-video", version=__version__, lifespan=lifespan)
    app.state.settings = s
    app.state.engine = engine if engine is not None else RemotionCliEngine.from_settings(s)

    # Directories are created in the lifespan; the mounts resolve lazily.
    app.mount(
        "/uploads", StaticFiles(directory=str(s.uploads_dir), check_dir=False), name="uploads"
    )
    app.mount("/output", StaticFiles(directory=str(s.output_dir), check_dir=False), name="output")
    app.mount(
        "/staging",
        StaticFiles(directory=str(s.resolved_staging_dir()), check_dir=False),
        name="staging",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=s.cors_origin_list(),
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        rid = request.headers.get("x-request-id") or secrets.token_hex(8)
        set_request_id(rid)
        t0 = time.perf_counter()
        status_code = 0
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers.setdefault("x-request-id", rid)
            return response
        finally:
            if not request.url.path.startswith("/staging/"):
                logger.info(
                    "http_done",
                    method=request.method,
                    path=request.url.path,
                    status=status_code,
                    duration_ms=(time.perf_counter() - t0) * 1000.0,
                )
            set_request_id(None)

    app.include_router(upload_router)
    app.include_router(render_router)
    app.include_router(jobs_router)

    @app.get("/healthz")
    async def healthz(request: Request):
        processor: JobProcessor | None = getattr(request.app.state, "processor", None)
        return {
            "ok": True,
            "version": __version__,
            "scheduler_running": bool(processor and processor.running),
        }

    return app
