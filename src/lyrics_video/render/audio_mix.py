from __future__ import annotations

from dataclasses import dataclass

from lyrics_video.jobs.models import AudioSources, VideoType

# Vocal level laid under the instrumental when no pre-mixed little-vocal stem exists.
LITTLE_VOCAL_MIX_VOLUME = 0.12


@dataclass(frozen=True, slots=True)
class AudioTrack:
    source: str
    volume: float

    def to_props(self) -> dict[str, object]:
        return {"src": self.source, "volume": self.volume}


def _main_only(sources: AudioSources) -> list[AudioTrack]:
    return [AudioTrack(sources.main, 1.0)] if sources.main else []


def resolve_audio_mix(video_type: VideoType, sources: AudioSources | None) -> list[AudioTrack]:
    """
    Pick the audio tracks (and their volumes) a video variant is rendered with.

    First match wins:
      Vocal Only         vocal stem, else main
      Instrumental Only  instrumental stem, else main
      Little Vocal       pre-mixed little-vocal stem, else instrumental + vocal at 0.12
                         when both exist, else main
      Lyrics Video       main

    Empty references count as missing; an empty list means nothing is playable.
    """
    if sources is None:
        return []

    if video_type is VideoType.VOCAL_ONLY:
        if sources.vocal:
            return [AudioTrack(sources.vocal, 1.0)]
        return _main_only(sources)

    if video_type is VideoType.INSTRUMENTAL_ONLY:
        if sources.instrumental:
            return [AudioTrack(sources.instrumental, 1.0)]
        return _main_only(sources)

    if video_type is VideoType.LITTLE_VOCAL:
        if sources.little_vocal:
            return [AudioTrack(sources.little_vocal, 1.0)]
        if sources.instrumental and sources.vocal:
            return [
                AudioTrack(sources.instrumental, 1.0),
                AudioTrack(sources.vocal, LITTLE_VOCAL_MIX_VOLUME),
            ]
        return _main_only(sources)

    if video_type is VideoType.LYRICS_VIDEO:
        return _main_only(sources)

    raise ValueError(f"Unhandled video type: {video_type!r}")
