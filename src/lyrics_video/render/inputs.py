from __future__ import annotations

from typing import Any

from lyrics_video.jobs.models import RenderInputs, VideoType
from lyrics_video.render.audio_mix import resolve_audio_mix
from lyrics_video.render.staging import StagedInputs


def resolve_background(inputs: RenderInputs, video_type: VideoType) -> str | None:
    """Per-variant background, else the job-level default, else none."""
    override = inputs.backgrounds.get(video_type)
    if override:
        return override
    return inputs.background_image or None


def build_input_props(
    inputs: RenderInputs, video_type: VideoType, staged: StagedInputs
) -> dict[str, Any]:
    """
    Compose the props handed to the composition for one variant.

    Every media reference is swapped for its staged URL. `audioTracks` carries
    the resolved mix; the individual stem URLs are kept for compositions that
    read them directly.
    """
    audio = inputs.audio
    staged_audio = type(audio)(
        main=staged.url_for(audio.main),
        instrumental=staged.url_for(audio.instrumental),
        vocal=staged.url_for(audio.vocal),
        little_vocal=staged.url_for(audio.little_vocal),
    )
    tracks = resolve_audio_mix(video_type, staged_audio)

    backgrounds_map: dict[str, str] = {}
    for vt, ref in inputs.backgrounds.items():
        url = staged.url_for(ref)
        if url:
            backgrounds_map[vt.value] = url
    background = staged.url_for(resolve_background(inputs, video_type))

    metadata = inputs.metadata.to_props()
    metadata["videoType"] = video_type.value

    return {
        "audioUrl": staged_audio.main or "",
        "instrumentalUrl": staged_audio.instrumental or "",
        "vocalUrl": staged_audio.vocal or "",
        "littleVocalUrl": staged_audio.little_vocal or "",
        "audioTracks": [t.to_props() for t in tracks],
        "lyrics": [{"start": x.start, "end": x.end, "text": x.text} for x in inputs.lyrics],
        "durationInSeconds": inputs.duration_in_seconds,
        "albumArtUrl": staged.url_for(inputs.album_art) or "",
        "backgroundImageUrl": background or "",
        "backgroundImagesMap": backgrounds_map,
        "metadata": metadata,
    }
