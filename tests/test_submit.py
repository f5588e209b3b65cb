from __future__ import annotations

from pathlib import Path

import pytest

from lyrics_video.errors import ValidationError
from lyrics_video.jobs.models import VideoType
from lyrics_video.jobs.submit import build_job_specs, build_render_spec, resolve_media_ref
from lyrics_video.utils.lyrics import load_lyrics, parse_lyrics


def _payload(**over) -> dict:
    base = {
        "audioFile": "https://cdn.example/song.mp3",
        "lyrics": [{"start": 0, "end": 1.5, "text": "hello"}, {"start": 1.5, "end": 3, "text": "world"}],
        "durationInSeconds": 12.5,
        "metadata": {"artist": "A", "songTitle": "S", "videoType": "Vocal Only"},
    }
    base.update(over)
    return base


def test_default_is_one_single_version_job() -> None:
    specs = build_job_specs(_payload())
    assert len(specs) == 1
    assert specs[0].single_version is True
    assert specs[0].inputs.metadata.video_type is VideoType.VOCAL_ONLY
    assert [x.text for x in specs[0].inputs.lyrics] == ["hello", "world"]


def test_one_job_per_requested_type() -> None:
    specs = build_job_specs(
        _payload(videoTypes=["Instrumental Only", "Little Vocal", "instrumental only"])
    )
    assert [s.inputs.metadata.video_type for s in specs] == [
        VideoType.INSTRUMENTAL_ONLY,
        VideoType.LITTLE_VOCAL,
    ]
    assert all(s.single_version for s in specs)


def test_all_versions_is_a_single_multi_type_job() -> None:
    specs = build_job_specs(_payload(allVersions=True, videoTypes=["Vocal Only"]))
    assert len(specs) == 1
    assert specs[0].single_version is False


def test_metadata_defaults() -> None:
    spec = build_render_spec(_payload(metadata=None))
    meta = spec.inputs.metadata
    assert (meta.artist, meta.song_title, meta.video_type) == (
        "Unknown Artist",
        "Unknown Song",
        VideoType.LYRICS_VIDEO,
    )
    assert (meta.lyrics_line_threshold, meta.metadata_position, meta.metadata_width) == (42, -155, 700)


@pytest.mark.parametrize("missing", ["audioFile", "lyrics", "durationInSeconds"])
def test_missing_required_fields(missing: str) -> None:
    p = _payload()
    p.pop(missing)
    with pytest.raises(ValidationError) as ei:
        build_render_spec(p)
    assert ei.value.field == missing
    assert "Missing required parameters" in str(ei.value)


@pytest.mark.parametrize("duration", [0, -3, "abc", float("nan")])
def test_bad_duration(duration) -> None:
    with pytest.raises(ValidationError):
        build_render_spec(_payload(durationInSeconds=duration))


def test_unknown_video_type_rejected() -> None:
    with pytest.raises(ValidationError):
        build_job_specs(_payload(videoTypes=["Karaoke"]))
    with pytest.raises(ValidationError):
        build_job_specs(_payload(backgroundImagesMap={"Karaoke": "https://x/bg.png"}))


def test_background_map_keys_are_video_types() -> None:
    spec = build_render_spec(
        _payload(
            backgroundImagesMap={"Vocal Only": "https://x/v.png", "Little Vocal": ""},
            backgroundImageUrl="https://x/default.png",
        )
    )
    assert spec.inputs.backgrounds == {
        VideoType.VOCAL_ONLY: "https://x/v.png",
        VideoType.LITTLE_VOCAL: None,
    }
    assert spec.inputs.background_image == "https://x/default.png"


def test_media_refs_resolve_against_uploads(tmp_path: Path) -> None:
    uploads = tmp_path / "uploads"
    uploads.mkdir()
    (uploads / "1712345678901.mp3").write_bytes(b"ID3")
    spec = build_render_spec(_payload(audioFile="1712345678901.mp3"), uploads_dir=uploads)
    assert spec.inputs.audio.main == str((uploads / "1712345678901.mp3").resolve())


def test_http_submissions_cannot_point_at_arbitrary_paths(tmp_path: Path) -> None:
    secret = tmp_path / "secret.mp3"
    secret.write_bytes(b"x")
    with pytest.raises(ValidationError):
        build_render_spec(_payload(audioFile=str(secret)), uploads_dir=tmp_path / "uploads")
    ref = resolve_media_ref(
        str(secret), field="audioFile", uploads_dir=None, allow_local_paths=True
    )
    assert ref == str(secret.resolve())
    with pytest.raises(ValidationError):
        resolve_media_ref(
            str(tmp_path / "nope.mp3"), field="audioFile", uploads_dir=None, allow_local_paths=True
        )


def test_lyrics_validation() -> None:
    assert parse_lyrics([]) == ()
    with pytest.raises(ValidationError):
        parse_lyrics({"start": 0})
    with pytest.raises(ValidationError):
        parse_lyrics([{"start": 2, "end": 1, "text": "backwards"}])
    with pytest.raises(ValidationError):
        parse_lyrics([{"start": -1, "end": 1}])
    with pytest.raises(ValidationError):
        parse_lyrics([{"start": "soon", "end": 1}])
    with pytest.raises(ValidationError):
        parse_lyrics([{"start": 1}])
    entries = parse_lyrics([{"start": 1, "end": 1, "text": None}])
    assert entries[0].text == ""


@pytest.mark.parametrize(
    "entry",
    [
        {"start": float("nan"), "end": 1},
        {"start": 0, "end": float("nan")},
        {"start": 0, "end": float("inf")},
        {"start": "NaN", "end": 1},
    ],
)
def test_lyrics_reject_non_finite_times(entry: dict) -> None:
    with pytest.raises(ValidationError) as ei:
        parse_lyrics([entry])
    assert ei.value.field == "lyrics"


def test_load_lyrics_file(tmp_path: Path) -> None:
    p = tmp_path / "lyrics.json"
    p.write_text('[{"start": 0.5, "end": 2, "text": "la"}]', encoding="utf-8")
    assert load_lyrics(p)[0].start == 0.5
    p.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_lyrics(p)
    with pytest.raises(ValidationError):
        load_lyrics(tmp_path / "missing.json")
