from __future__ import annotations

import math
import subprocess
from pathlib import Path

from lyrics_video.config import get_settings
from lyrics_video.errors import FFprobeError


def ffprobe_duration_seconds(path: Path, *, timeout_s: int = 20) -> float:
    """Duration of an audio/video file, in seconds."""
    s = get_settings()
    p = Path(path)
    if not p.is_file():
        raise FFprobeError(f"ffprobe: file not found: {p}")
    argv = [
        str(s.ffprobe_bin),
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        str(p),
    ]
    try:
        out = (
            subprocess.check_output(argv, stderr=subprocess.DEVNULL, timeout=timeout_s)
            .decode("utf-8", errors="replace")
            .strip()
        )
    except subprocess.TimeoutExpired as ex:
        raise FFprobeError("ffprobe timed out") from ex
    except (OSError, subprocess.CalledProcessError) as ex:
        raise FFprobeError(f"ffprobe failed: {ex}") from ex
    try:
        dur = float(out)
    except ValueError:
        raise FFprobeError(f"ffprobe returned no duration for {p}") from None
    if not math.isfinite(dur) or dur <= 0:
        raise FFprobeError(f"ffprobe returned an invalid duration for {p}: {out}")
    return dur
