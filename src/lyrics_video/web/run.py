from __future__ import annotations

import uvicorn

from lyrics_video.config import get_settings
from lyrics_video.server import create_app


def main(host: str | None = None, port: int | None = None) -> None:
    s = get_settings()
    uvicorn.run(
        create_app(settings=s),
        host=str(host or s.host),
        port=int(port or s.port),
        reload=False,
        log_config=None,
    )
