"""
Turn submission payloads into validated JobSpecs.

Payload keys follow the JSON the browser client sends (camelCase):

    {
      "audioFile": "1712345678901.mp3",          # upload name, URL, or path (CLI)
      "instrumentalUrl": ..., "vocalUrl": ..., "littleVocalUrl": ...,
      "lyrics": [{"start": 0.0, "end": 2.5, "text": "..."}],
      "durationInSeconds": 185.2,
      "albumArtUrl": ..., "backgroundImageUrl": ...,
      "backgroundImagesMap": {"Vocal Only": "..."},
      "metadata": {"artist": ..., "songTitle": ..., "videoType": "Lyrics Video", ...},
      "videoTypes": ["Vocal Only", "Instrumental Only"],   # queue API only
      "allVersions": false                                 # queue API only
    }

Nothing here touches the queue; a ValidationError means nothing was enqueued.
"""

from __future__ import annotations

import math
from dataclasses import replace
from pathlib import Path
from typing import Any

from lyrics_video.errors import ValidationError
from lyrics_video.jobs.models import (
    AudioSources,
    JobSpec,
    RenderInputs,
    VideoMetadata,
    VideoType,
)
from lyrics_video.render.staging import is_remote
from lyrics_video.utils.lyrics import parse_lyrics

DEFAULT_ARTIST = "Unknown Artist"
DEFAULT_SONG_TITLE = "Unknown Song"


def _video_type(v: Any, *, field: str) -> VideoType:
    try:
        return VideoType.parse(v)
    except ValueError as ex:
        raise ValidationError(str(ex), field=field) from None


def _int(v: Any, default: int, *, field: str) -> int:
    if v is None or v == "":
        return default
    try:
        return int(v)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field) from None


def resolve_media_ref(
    ref: Any, *, field: str, uploads_dir: Path | None, allow_local_paths: bool
) -> str | None:
    """
    Normalize one media reference.

    http(s) URLs pass through. A bare file name is looked up in `uploads_dir`.
    Other local paths are accepted only when `allow_local_paths` is set (CLI).
    """
    if ref is None:
        return None
    s = str(ref).strip()
    if not s:
        return None
    if is_remote(s):
        return s
    p = Path(s)
    if uploads_dir is not None and p.name == s:
        candidate = Path(uploads_dir) / s
        if candidate.is_file():
            return str(candidate.resolve())
    if not allow_local_paths:
        raise ValidationError(f"{field}: not an uploaded file or URL: {s}", field=field)
    if not p.is_file():
        raise ValidationError(f"{field}: file not found: {s}", field=field)
    return str(p.resolve())


def parse_metadata(raw: Any) -> VideoMetadata:
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValidationError("metadata must be an object", field="metadata")
    return VideoMetadata(
        artist=str(raw.get("artist") or DEFAULT_ARTIST),
        song_title=str(raw.get("songTitle") or raw.get("song_title") or DEFAULT_SONG_TITLE),
        video_type=_video_type(
            raw.get("videoType") or raw.get("video_type") or VideoType.LYRICS_VIDEO,
            field="metadata.videoType",
        ),
        lyrics_line_threshold=_int(
            raw.get("lyricsLineThreshold"), 42, field="metadata.lyricsLineThreshold"
        ),
        metadata_position=_int(raw.get("metadataPosition"), -155, field="metadata.metadataPosition"),
        metadata_width=_int(raw.get("metadataWidth"), 700, field="metadata.metadataWidth"),
    )


def parse_render_inputs(
    payload: dict[str, Any], *, uploads_dir: Path | None = None, allow_local_paths: bool = False
) -> RenderInputs:
    if not isinstance(payload, dict):
        raise ValidationError("request body must be a JSON object")

    missing = [
        k
        for k in ("audioFile", "lyrics", "durationInSeconds")
        if payload.get(k) in (None, "", [])
    ]
    if missing:
        raise ValidationError(
            f"Missing required parameters: {', '.join(missing)}", field=missing[0]
        )

    def media(key: str) -> str | None:
        return resolve_media_ref(
            payload.get(key),
            field=key,
            uploads_dir=uploads_dir,
            allow_local_paths=allow_local_paths,
        )

    try:
        duration = float(payload["durationInSeconds"])
    except (TypeError, ValueError):
        raise ValidationError(
            "durationInSeconds must be a number", field="durationInSeconds"
        ) from None
    if not math.isfinite(duration) or duration <= 0:
        raise ValidationError("durationInSeconds must be > 0", field="durationInSeconds")

    raw_map = payload.get("backgroundImagesMap") or {}
    if not isinstance(raw_map, dict):
        raise ValidationError("backgroundImagesMap must be an object", field="backgroundImagesMap")
    backgrounds: dict[VideoType, str | None] = {}
    for k, v in raw_map.items():
        vt = _video_type(k, field="backgroundImagesMap")
        backgrounds[vt] = resolve_media_ref(
            v,
            field=f"backgroundImagesMap.{vt.value}",
            uploads_dir=uploads_dir,
            allow_local_paths=allow_local_paths,
        )

    return RenderInputs(
        audio=AudioSources(
            main=media("audioFile"),
            instrumental=media("instrumentalUrl"),
            vocal=media("vocalUrl"),
            little_vocal=media("littleVocalUrl"),
        ),
        lyrics=parse_lyrics(payload["lyrics"]),
        duration_in_seconds=duration,
        metadata=parse_metadata(payload.get("metadata")),
        album_art=media("albumArtUrl"),
        backgrounds=backgrounds,
        background_image=media("backgroundImageUrl"),
    )


def build_job_specs(
    payload: dict[str, Any], *, uploads_dir: Path | None = None, allow_local_paths: bool = False
) -> list[JobSpec]:
    """
    One multi-type job when `allVersions` is set, otherwise one single-version
    job per requested video type (`videoTypes`, defaulting to metadata.videoType).
    """
    inputs = parse_render_inputs(
        payload, uploads_dir=uploads_dir, allow_local_paths=allow_local_paths
    )
    if bool(payload.get("allVersions")):
        return [JobSpec(inputs=inputs, single_version=False)]

    raw_types = payload.get("videoTypes")
    if raw_types is None or raw_types == []:
        return [JobSpec(inputs=inputs, single_version=True)]
    if not isinstance(raw_types, list):
        raise ValidationError("videoTypes must be a list", field="videoTypes")

    specs: list[JobSpec] = []
    seen: set[VideoType] = set()
    for raw in raw_types:
        vt = _video_type(raw, field="videoTypes")
        if vt in seen:
            continue
        seen.add(vt)
        meta = replace(inputs.metadata, video_type=vt)
        specs.append(JobSpec(inputs=replace(inputs, metadata=meta), single_version=True))
    return specs


def build_render_spec(payload: dict[str, Any], *, uploads_dir: Path | None = None) -> JobSpec:
    """Single-version job for the synchronous `/render` endpoint."""
    return JobSpec(
        inputs=parse_render_inputs(payload, uploads_dir=uploads_dir), single_version=True
    )
