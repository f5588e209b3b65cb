from __future__ import annotations

import itertools

import pytest

from lyrics_video.jobs.models import AudioSources, VideoType
from lyrics_video.render.audio_mix import LITTLE_VOCAL_MIX_VOLUME, AudioTrack, resolve_audio_mix

MAIN = "main.mp3"
INST = "inst.mp3"
VOC = "vocal.mp3"
LV = "little.mp3"


def _all_availability() -> list[AudioSources]:
    out = []
    for inst, voc, lv in itertools.product([None, INST], [None, VOC], [None, LV]):
        out.append(AudioSources(main=MAIN, instrumental=inst, vocal=voc, little_vocal=lv))
    return out


@pytest.mark.parametrize("video_type", list(VideoType))
def test_resolver_is_pure(video_type: VideoType) -> None:
    for sources in _all_availability():
        snapshot = sources.available()
        first = resolve_audio_mix(video_type, sources)
        for _ in range(5):
            assert resolve_audio_mix(video_type, sources) == first
        assert sources.available() == snapshot


def test_little_vocal_table() -> None:
    for sources in _all_availability():
        tracks = resolve_audio_mix(VideoType.LITTLE_VOCAL, sources)
        if sources.little_vocal:
            assert tracks == [AudioTrack(LV, 1.0)]
        elif sources.instrumental and sources.vocal:
            assert tracks == [AudioTrack(INST, 1.0), AudioTrack(VOC, 0.12)]
            assert tracks[1].volume == LITTLE_VOCAL_MIX_VOLUME
        else:
            assert tracks == [AudioTrack(MAIN, 1.0)]


def test_stem_preference_and_fallback() -> None:
    full = AudioSources(main=MAIN, instrumental=INST, vocal=VOC, little_vocal=LV)
    bare = AudioSources(main=MAIN)
    assert resolve_audio_mix(VideoType.VOCAL_ONLY, full) == [AudioTrack(VOC, 1.0)]
    assert resolve_audio_mix(VideoType.VOCAL_ONLY, bare) == [AudioTrack(MAIN, 1.0)]
    assert resolve_audio_mix(VideoType.INSTRUMENTAL_ONLY, full) == [AudioTrack(INST, 1.0)]
    assert resolve_audio_mix(VideoType.INSTRUMENTAL_ONLY, bare) == [AudioTrack(MAIN, 1.0)]
    assert resolve_audio_mix(VideoType.LYRICS_VIDEO, full) == [AudioTrack(MAIN, 1.0)]


def test_empty_strings_count_as_missing() -> None:
    sources = AudioSources(main=MAIN, instrumental="", vocal="", little_vocal="")
    assert resolve_audio_mix(VideoType.VOCAL_ONLY, sources) == [AudioTrack(MAIN, 1.0)]
    assert resolve_audio_mix(VideoType.LITTLE_VOCAL, sources) == [AudioTrack(MAIN, 1.0)]


def test_nothing_available_yields_empty_list() -> None:
    assert resolve_audio_mix(VideoType.LYRICS_VIDEO, None) == []
    assert resolve_audio_mix(VideoType.VOCAL_ONLY, AudioSources()) == []
    assert resolve_audio_mix(VideoType.LITTLE_VOCAL, AudioSources(vocal=VOC)) == []
    assert resolve_audio_mix(VideoType.LITTLE_VOCAL, AudioSources(instrumental=INST)) == []


def test_track_props_shape() -> None:
    assert AudioTrack("a.mp3", 0.12).to_props() == {"src": "a.mp3", "volume": 0.12}
