from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class VideoType(str, Enum):
    LYRICS_VIDEO = "Lyrics Video"
    VOCAL_ONLY = "Vocal Only"
    INSTRUMENTAL_ONLY = "Instrumental Only"
    LITTLE_VOCAL = "Little Vocal"

    @classmethod
    def parse(cls, value: str | VideoType) -> VideoType:
        if isinstance(value, VideoType):
            return value
        v = str(value or "").strip()
        for vt in cls:
            if v == vt.value or v.lower() == vt.value.lower() or v.upper() == vt.name:
                return vt
        raise ValueError(f"Unknown video type: {value!r}")


# Render order for jobs that produce every variant.
ALL_VIDEO_TYPES: tuple[VideoType, ...] = tuple(VideoType)


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in {JobStatus.COMPLETE, JobStatus.ERROR}


_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.PROCESSING},
    JobStatus.PROCESSING: {JobStatus.COMPLETE, JobStatus.ERROR},
    JobStatus.COMPLETE: set(),
    JobStatus.ERROR: set(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return current == target or target in _TRANSITIONS[current]


def now_utc() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True, slots=True)
class LyricEntry:
    start: float
    end: float
    text: str

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> LyricEntry:
        return cls(start=float(d["start"]), end=float(d["end"]), text=str(d.get("text") or ""))


@dataclass(frozen=True, slots=True)
class AudioSources:
    """Media references for the full mix and the optional stems."""

    main: str | None = None
    instrumental: str | None = None
    vocal: str | None = None
    little_vocal: str | None = None

    def available(self) -> dict[str, str]:
        out: dict[str, str] = {}
        for name in ("main", "instrumental", "vocal", "little_vocal"):
            v = getattr(self, name)
            if v:
                out[name] = v
        return out


@dataclass(frozen=True, slots=True)
class VideoMetadata:
    artist: str
    song_title: str
    video_type: VideoType = VideoType.LYRICS_VIDEO
    lyrics_line_threshold: int = 42
    metadata_position: int = -155
    metadata_width: int = 700

    def to_props(self) -> dict[str, Any]:
        return {
            "artist": self.artist,
            "songTitle": self.song_title,
            "videoType": self.video_type.value,
            "lyricsLineThreshold": self.lyrics_line_threshold,
            "metadataPosition": self.metadata_position,
            "metadataWidth": self.metadata_width,
        }


@dataclass(frozen=True, slots=True)
class RenderInputs:
    audio: AudioSources
    lyrics: tuple[LyricEntry, ...]
    duration_in_seconds: float
    metadata: VideoMetadata
    album_art: str | None = None
    backgrounds: dict[VideoType, str | None] = field(default_factory=dict)
    background_image: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["lyrics"] = [asdict(x) for x in self.lyrics]
        d["metadata"]["video_type"] = self.metadata.video_type.value
        d["backgrounds"] = {k.value: v for k, v in self.backgrounds.items()}
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> RenderInputs:
        meta = dict(d["metadata"])
        meta["video_type"] = VideoType.parse(meta.get("video_type") or VideoType.LYRICS_VIDEO)
        return cls(
            audio=AudioSources(**dict(d.get("audio") or {})),
            lyrics=tuple(LyricEntry.from_dict(x) for x in d.get("lyrics") or []),
            duration_in_seconds=float(d["duration_in_seconds"]),
            metadata=VideoMetadata(**meta),
            album_art=d.get("album_art"),
            backgrounds={
                VideoType.parse(k): v for k, v in dict(d.get("backgrounds") or {}).items()
            },
            background_image=d.get("background_image"),
        )


@dataclass(frozen=True, slots=True)
class JobSpec:
    """What a submission asks for; the store turns it into a RenderJob."""

    inputs: RenderInputs
    single_version: bool = True


@dataclass(slots=True)
class RenderJob:
    id: str
    inputs: RenderInputs
    single_version: bool
    status: JobStatus = JobStatus.PENDING
    progress: float = 0.0
    current_video_type: VideoType | None = None
    result: dict[VideoType, str] = field(default_factory=dict)
    variant_errors: dict[VideoType, str] = field(default_factory=dict)
    error: str | None = None
    created_at: str = field(default_factory=now_utc)
    updated_at: str = field(default_factory=now_utc)

    @property
    def metadata(self) -> VideoMetadata:
        return self.inputs.metadata

    def video_types(self) -> list[VideoType]:
        if self.single_version:
            return [self.inputs.metadata.video_type]
        return list(ALL_VIDEO_TYPES)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "single_version": self.single_version,
            "current_video_type": self.current_video_type.value
            if self.current_video_type
            else None,
            "result": {k.value: v for k, v in self.result.items()},
            "variant_errors": {k.value: v for k, v in self.variant_errors.items()},
            "error": self.error,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "inputs": self.inputs.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> RenderJob:
        cvt = d.get("current_video_type")
        return cls(
            id=str(d["id"]),
            inputs=RenderInputs.from_dict(d["inputs"]),
            single_version=bool(d.get("single_version", True)),
            status=JobStatus(d.get("status") or JobStatus.PENDING.value),
            progress=float(d.get("progress") or 0.0),
            current_video_type=VideoType.parse(cvt) if cvt else None,
            result={VideoType.parse(k): v for k, v in dict(d.get("result") or {}).items()},
            variant_errors={
                VideoType.parse(k): v for k, v in dict(d.get("variant_errors") or {}).items()
            },
            error=d.get("error"),
            created_at=str(d.get("created_at") or now_utc()),
            updated_at=str(d.get("updated_at") or now_utc()),
        )
