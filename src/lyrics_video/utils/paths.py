from __future__ import annotations

import threading
import time
from pathlib import Path

_NAME_LOCK = threading.Lock()


def _timestamp_ms() -> int:
    return time.time_ns() // 1_000_000


def timestamped_path(directory: Path, *, prefix: str = "", suffix: str = "") -> Path:
    """
    `<directory>/<prefix><timestamp-ms><suffix>` that does not exist yet.

    Several variants can finish in the same millisecond, so the timestamp is
    bumped until the name is free. The empty file is created to reserve it.
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    with _NAME_LOCK:
        ts = _timestamp_ms()
        while True:
            p = directory / f"{prefix}{ts}{suffix}"
            try:
                p.touch(exist_ok=False)
            except FileExistsError:
                ts += 1
                continue
            return p


def output_video_path(output_dir: Path) -> Path:
    return timestamped_path(output_dir, prefix="lyrics-video-", suffix=".mp4")


def upload_path(uploads_dir: Path, original_name: str) -> Path:
    ext = Path(str(original_name or "")).suffix.lower()
    if not ext.replace(".", "").isalnum():
        ext = ""
    return timestamped_path(uploads_dir, suffix=ext)


def public_url(base_url: str, mount: str, path: Path, root: Path) -> str:
    rel = Path(path).resolve().relative_to(Path(root).resolve()).as_posix()
    return f"{base_url.rstrip('/')}/{mount.strip('/')}/{rel}"
