from __future__ import annotations

from pathlib import Path

import pytest

from lyrics_video.jobs.models import VideoType
from lyrics_video.render.inputs import build_input_props, resolve_background
from lyrics_video.render.staging import StagedInputs, slugify, staged_inputs
from lyrics_video.utils.paths import output_video_path, public_url, upload_path
from tests._helpers.fake_engine import make_inputs


def test_slugify() -> None:
    assert slugify("Little Vocal") == "little-vocal"
    assert slugify("  ") == "item"


def test_remote_refs_pass_through_and_local_files_are_linked(tmp_path: Path) -> None:
    src = tmp_path / "song name.mp3"
    src.write_bytes(b"ID3")
    staged = StagedInputs(tmp_path / "staging", "http://h:1/", job_id="j1", variant="Vocal Only")
    assert staged.url_for(None) is None
    assert staged.url_for("https://cdn/x.mp3") == "https://cdn/x.mp3"
    url = staged.url_for(str(src))
    assert url == "http://h:1/staging/j1/vocal-only/00-song%20name.mp3"
    assert staged.url_for(str(src)) == url
    assert (tmp_path / "staging" / "j1" / "vocal-only" / "00-song name.mp3").read_bytes() == b"ID3"
    with pytest.raises(FileNotFoundError):
        staged.url_for(str(tmp_path / "missing.mp3"))
    staged.release()
    assert not (tmp_path / "staging" / "j1").exists()
    assert src.exists()
    with pytest.raises(RuntimeError):
        staged.url_for(str(src))


def test_context_manager_releases_on_error(tmp_path: Path) -> None:
    src = tmp_path / "a.mp3"
    src.write_bytes(b"x")
    with pytest.raises(ValueError):
        with staged_inputs(tmp_path / "st", "http://h", job_id="j", variant="Lyrics Video") as st:
            st.url_for(str(src))
            raise ValueError("boom")
    assert not (tmp_path / "st" / "j").exists()


def test_background_resolution() -> None:
    inputs = make_inputs(
        backgrounds={VideoType.VOCAL_ONLY: "https://x/vocal.png", VideoType.LITTLE_VOCAL: None},
        background_image="https://x/default.png",
    )
    assert resolve_background(inputs, VideoType.VOCAL_ONLY) == "https://x/vocal.png"
    assert resolve_background(inputs, VideoType.LITTLE_VOCAL) == "https://x/default.png"
    assert resolve_background(inputs, VideoType.LYRICS_VIDEO) == "https://x/default.png"
    assert resolve_background(make_inputs(), VideoType.LYRICS_VIDEO) is None


def test_input_props_shape(tmp_path: Path) -> None:
    inputs = make_inputs(
        video_type=VideoType.LYRICS_VIDEO,
        instrumental="https://x/inst.mp3",
        vocal="https://x/vocal.mp3",
        backgrounds={VideoType.VOCAL_ONLY: "https://x/vocal.png"},
    )
    with staged_inputs(tmp_path, "http://h", job_id="j", variant="Little Vocal") as st:
        props = build_input_props(inputs, VideoType.LITTLE_VOCAL, st)
    assert props["audioTracks"] == [
        {"src": "https://x/inst.mp3", "volume": 1.0},
        {"src": "https://x/vocal.mp3", "volume": 0.12},
    ]
    assert props["metadata"]["videoType"] == "Little Vocal"
    assert props["backgroundImagesMap"] == {"Vocal Only": "https://x/vocal.png"}
    assert props["backgroundImageUrl"] == ""
    assert props["littleVocalUrl"] == ""
    assert props["durationInSeconds"] == 5.0
    assert props["lyrics"][0] == {"start": 0.0, "end": 2.0, "text": "first line"}


def test_output_names_are_unique_and_timestamped(tmp_path: Path) -> None:
    names = {output_video_path(tmp_path).name for _ in range(20)}
    assert len(names) == 20
    assert all(n.startswith("lyrics-video-") and n.endswith(".mp4") for n in names)


def test_upload_names_keep_the_extension(tmp_path: Path) -> None:
    p = upload_path(tmp_path, "My Song.MP3")
    assert p.suffix == ".mp3"
    assert p.stem.isdigit()
    assert upload_path(tmp_path, "noext").suffix == ""


def test_public_url(tmp_path: Path) -> None:
    p = tmp_path / "sub" / "a.mp4"
    assert public_url("http://h:3003/", "output", p, tmp_path) == "http://h:3003/output/sub/a.mp4"
