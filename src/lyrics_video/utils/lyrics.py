from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any

from lyrics_video.errors import ValidationError
from lyrics_video.jobs.models import LyricEntry


def _number(v: Any, *, field: str, index: int) -> float:
    if isinstance(v, bool):
        raise ValidationError(f"lyrics[{index}].{field} must be a number", field="lyrics")
    try:
        n = float(v)
    except (TypeError, ValueError):
        raise ValidationError(
            f"lyrics[{index}].{field} must be a number", field="lyrics"
        ) from None
    if not math.isfinite(n):
        raise ValidationError(f"lyrics[{index}].{field} must be finite", field="lyrics")
    return n


def parse_lyrics(raw: Any) -> tuple[LyricEntry, ...]:
    """
    Validate a lyrics array: `[{"start": s, "end": e, "text": "..."}, ...]`.

    Order is preserved. Each entry needs `0 <= start <= end`.
    """
    if not isinstance(raw, list):
        raise ValidationError("lyrics must be a list", field="lyrics")
    out: list[LyricEntry] = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(f"lyrics[{i}] must be an object", field="lyrics")
        if "start" not in item or "end" not in item:
            raise ValidationError(f"lyrics[{i}] needs start and end", field="lyrics")
        start = _number(item.get("start"), field="start", index=i)
        end = _number(item.get("end"), field="end", index=i)
        if start < 0:
            raise ValidationError(f"lyrics[{i}].start must be >= 0", field="lyrics")
        if start > end:
            raise ValidationError(f"lyrics[{i}].start must be <= end", field="lyrics")
        out.append(LyricEntry(start=start, end=end, text=str(item.get("text") or "")))
    return tuple(out)


def load_lyrics(path: Path) -> tuple[LyricEntry, ...]:
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ValidationError(f"Lyrics file not found: {p}", field="lyrics") from None
    except json.JSONDecodeError as ex:
        raise ValidationError(f"Lyrics file is not valid JSON: {ex}", field="lyrics") from None
    return parse_lyrics(raw)
