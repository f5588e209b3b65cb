from __future__ import annotations

import asyncio
import os
import stat
import sys
from pathlib import Path

import pytest

from lyrics_video.errors import BundleError, CompositionNotFound, RenderError
from lyrics_video.render.engine import (
    RemotionCliEngine,
    RenderProgress,
    parse_progress_line,
)

_FAKE_NPX = """#!/bin/sh
# remotion <command> ...
case "$2" in
  bundle)
    mkdir -p "$5"
    echo "Bundled $3"
    exit 0
    ;;
  compositions)
    echo "lyrics-video"
    echo "title-card"
    exit 0
    ;;
  render)
    if [ -n "$FAKE_ARGS_LOG" ]; then
      echo "$@" > "$FAKE_ARGS_LOG"
    fi
    if [ -n "$FAKE_PID_FILE" ]; then
      echo $$ > "$FAKE_PID_FILE"
      exec sleep 30
    fi
    if [ -n "$FAKE_RENDER_FAIL" ]; then
      echo "Error: codec exploded" >&2
      exit 1
    fi
    printf 'Rendered 10/100\\rRendered 50/100\\r'
    echo "Rendered 100/100"
    : > "$5"
    exit 0
    ;;
esac
exit 3
"""

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses a /bin/sh stand-in for npx")


@pytest.mark.parametrize(
    "line,expected",
    [
        ("Rendered 120/300", RenderProgress(120, 300)),
        ("  rendered 3 / 10 frames", RenderProgress(3, 10)),
        ("Rendering frames ━━━━━━━━ 45/90", RenderProgress(45, 90)),
        ("Encoded 45/90", None),
        ("Rendered 5/0", None),
        ("Rendered 11/10", None),
        ("", None),
    ],
)
def test_parse_progress_line(line: str, expected) -> None:
    assert parse_progress_line(line) == expected


def test_progress_fraction_is_clamped() -> None:
    assert RenderProgress(0, 0).fraction == 0.0
    assert RenderProgress(50, 100).fraction == 0.5
    assert RenderProgress(150, 100).fraction == 1.0


def _engine(tmp_path: Path) -> RemotionCliEngine:
    npx = tmp_path / "fake-npx"
    npx.write_text(_FAKE_NPX, encoding="utf-8")
    npx.chmod(npx.stat().st_mode | stat.S_IEXEC)
    return RemotionCliEngine(npx_bin=str(npx), cwd=tmp_path, bundle_dir=tmp_path / "bundles", fps=30)


@posix_only
def test_cli_engine_full_cycle(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    args_log = tmp_path / "render-args.txt"
    monkeypatch.setenv("FAKE_ARGS_LOG", str(args_log))
    entry = tmp_path / "root.tsx"
    entry.write_text("// entry", encoding="utf-8")
    engine = _engine(tmp_path)
    out = tmp_path / "out" / "video.mp4"
    seen: list[float] = []

    async def main():
        bundle = await engine.bundle(str(entry))
        again = await engine.bundle(str(entry))
        comp = await engine.select_composition(bundle, "lyrics-video", {"durationInSeconds": 2.5})
        await engine.render_media(comp, str(out), {"durationInSeconds": 2.5}, lambda p: seen.append(p.fraction))
        return bundle, again, comp

    bundle, again, comp = asyncio.run(main())
    assert again is bundle
    assert comp.duration_in_frames == 75
    assert (comp.fps, comp.width, comp.height) == (30, 1280, 720)
    assert out.exists()
    assert seen == [0.1, 0.5, 1.0, 1.0]
    args = args_log.read_text(encoding="utf-8").split()
    assert args[:4] == ["remotion", "render", bundle.serve_url, "lyrics-video"]
    assert any(a.startswith("--props=") for a in args)
    assert not any(a.startswith("--frames") for a in args)


@posix_only
def test_cli_engine_errors(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    entry = tmp_path / "root.tsx"
    entry.write_text("// entry", encoding="utf-8")
    engine = _engine(tmp_path)

    async def missing_entry():
        await engine.bundle(str(tmp_path / "nope.tsx"))

    with pytest.raises(BundleError):
        asyncio.run(missing_entry())

    async def unknown_composition():
        bundle = await engine.bundle(str(entry))
        await engine.select_composition(bundle, "karaoke", {"durationInSeconds": 1})

    with pytest.raises(CompositionNotFound) as ei:
        asyncio.run(unknown_composition())
    assert ei.value.available == ["lyrics-video", "title-card"]

    monkeypatch.setenv("FAKE_RENDER_FAIL", "1")

    async def failing_render():
        bundle = await engine.bundle(str(entry))
        comp = await engine.select_composition(bundle, "lyrics-video", {"durationInSeconds": 1})
        await engine.render_media(comp, str(tmp_path / "x.mp4"), {}, lambda p: None)

    with pytest.raises(RenderError) as ei2:
        asyncio.run(failing_render())
    assert "codec exploded" in str(ei2.value)


def test_missing_npx_is_a_bundle_error(tmp_path: Path) -> None:
    entry = tmp_path / "root.tsx"
    entry.write_text("// entry", encoding="utf-8")
    engine = RemotionCliEngine(npx_bin=str(tmp_path / "no-such-npx"), bundle_dir=tmp_path / "b")

    with pytest.raises(BundleError):
        asyncio.run(engine.bundle(str(entry)))


@posix_only
def test_cancelled_render_kills_the_renderer(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    entry = tmp_path / "root.tsx"
    entry.write_text("// entry", encoding="utf-8")
    pid_file = tmp_path / "render.pid"
    monkeypatch.setenv("FAKE_PID_FILE", str(pid_file))
    engine = _engine(tmp_path)
    out = tmp_path / "out" / "video.mp4"

    async def main() -> int:
        bundle = await engine.bundle(str(entry))
        comp = await engine.select_composition(bundle, "lyrics-video", {"durationInSeconds": 1})
        task = asyncio.create_task(engine.render_media(comp, str(out), {}, lambda p: None))
        for _ in range(500):
            if pid_file.exists() and pid_file.read_text(encoding="utf-8").endswith("\n"):
                break
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return int(pid_file.read_text(encoding="utf-8"))

    pid = asyncio.run(main())
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)
