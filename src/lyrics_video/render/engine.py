from __future__ import annotations

import asyncio
import json
import re
import tempfile
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from lyrics_video.errors import BundleError, CompositionNotFound, RenderError
from lyrics_video.utils.log import logger


@dataclass(frozen=True, slots=True)
class BundleHandle:
    entry_point: str
    serve_url: str


@dataclass(frozen=True, slots=True)
class Composition:
    id: str
    serve_url: str
    fps: int
    width: int
    height: int
    duration_in_frames: int


@dataclass(frozen=True, slots=True)
class RenderProgress:
    rendered_frames: int
    total_frames: int

    @property
    def fraction(self) -> float:
        if self.total_frames <= 0:
            return 0.0
        return max(0.0, min(1.0, self.rendered_frames / self.total_frames))


ProgressCallback = Callable[[RenderProgress], None]


class RenderEngine(Protocol):
    async def bundle(self, entry_point: str) -> BundleHandle: ...

    async def select_composition(
        self, bundle: BundleHandle, composition_id: str, input_props: dict[str, Any]
    ) -> Composition: ...

    async def render_media(
        self,
        composition: Composition,
        output_location: str,
        input_props: dict[str, Any],
        on_progress: ProgressCallback,
    ) -> None: ...


_RENDERED_RE = re.compile(r"Rendered\s+(\d+)\s*/\s*(\d+)", re.IGNORECASE)
_FRAMES_RE = re.compile(r"\b(\d+)\s*/\s*(\d+)\b")


def parse_progress_line(line: str) -> RenderProgress | None:
    """
    Extract frame progress from a Remotion CLI output line.

    Lines look like `Rendered 120/300` (older releases) or carry a bare
    `120/300` counter next to a progress bar.
    """
    text = str(line or "").strip()
    if not text:
        return None
    m = _RENDERED_RE.search(text)
    if m is None and "render" in text.lower():
        m = _FRAMES_RE.search(text)
    if m is None:
        return None
    done, total = int(m.group(1)), int(m.group(2))
    if total <= 0 or done > total:
        return None
    return RenderProgress(rendered_frames=done, total_frames=total)


def _tail(s: str, n: int = 2000) -> str:
    s = str(s or "")
    return s if len(s) <= n else s[-n:]


def _split_lines(chunk: bytes) -> list[str]:
    # Progress bars redraw with carriage returns.
    return [x for x in re.split(r"[\r\n]+", chunk.decode("utf-8", errors="replace")) if x]


class RemotionCliEngine:
    """
    RenderEngine backed by the Remotion CLI (`npx remotion ...`).

    Bundles are cached per entry point for the lifetime of the engine.
    """

    def __init__(
        self,
        *,
        npx_bin: str = "npx",
        cwd: Path | None = None,
        bundle_dir: Path | None = None,
        fps: int = 30,
        width: int = 1280,
        height: int = 720,
        codec: str = "h264",
    ) -> None:
        self.npx_bin = npx_bin
        self.cwd = Path(cwd).resolve() if cwd else None
        self.bundle_dir = Path(bundle_dir) if bundle_dir else Path(tempfile.gettempdir()) / "lyrics-video-bundles"
        self.fps = int(fps)
        self.width = int(width)
        self.height = int(height)
        self.codec = codec
        self._bundles: dict[str, BundleHandle] = {}
        self._bundle_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Any) -> RemotionCliEngine:
        return cls(
            npx_bin=str(settings.npx_bin),
            cwd=Path(settings.app_root),
            bundle_dir=Path(settings.output_dir) / "_bundles",
            fps=int(settings.render_fps),
            width=int(settings.render_width),
            height=int(settings.render_height),
            codec=str(settings.render_codec),
        )

    async def _run(
        self, argv: list[str], *, on_line: Callable[[str], None] | None = None
    ) -> tuple[int, str]:
        logger.debug("remotion_exec", argv=argv)
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(self.cwd) if self.cwd else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        assert proc.stdout is not None
        out: list[str] = []
        pending = b""
        try:
            while True:
                chunk = await proc.stdout.read(4096)
                if not chunk:
                    break
                pending += chunk
                cut = max(pending.rfind(b"\n"), pending.rfind(b"\r"))
                if cut < 0:
                    continue
                complete, pending = pending[: cut + 1], pending[cut + 1 :]
                for line in _split_lines(complete):
                    out.append(line)
                    if on_line is not None:
                        on_line(line)
            for line in _split_lines(pending):
                out.append(line)
                if on_line is not None:
                    on_line(line)
            rc = await proc.wait()
        except BaseException:
            # The child must not outlive the awaiting task.
            if proc.returncode is None:
                with suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()
                logger.warning("remotion_killed", pid=proc.pid, argv=argv[:3])
            raise
        return rc, "\n".join(out)

    async def bundle(self, entry_point: str) -> BundleHandle:
        entry = Path(entry_point).resolve()
        key = str(entry)
        async with self._bundle_lock:
            cached = self._bundles.get(key)
            if cached is not None:
                return cached
            if not entry.is_file():
                raise BundleError(f"Entry point not found: {entry}")
            out_dir = (self.bundle_dir / re.sub(r"[^A-Za-z0-9]+", "-", entry.stem)).resolve()
            out_dir.mkdir(parents=True, exist_ok=True)
            try:
                rc, output = await self._run(
                    [self.npx_bin, "remotion", "bundle", str(entry), "--out-dir", str(out_dir)]
                )
            except OSError as ex:
                raise BundleError(f"Could not start bundler: {ex}") from ex
            if rc != 0:
                raise BundleError(f"Bundling failed (exit {rc}): {_tail(output)}")
            handle = BundleHandle(entry_point=key, serve_url=str(out_dir))
            self._bundles[key] = handle
            logger.info("remotion_bundled", entry=key, serve_url=handle.serve_url)
            return handle

    async def select_composition(
        self, bundle: BundleHandle, composition_id: str, input_props: dict[str, Any]
    ) -> Composition:
        try:
            rc, output = await self._run(
                [self.npx_bin, "remotion", "compositions", bundle.serve_url, "--quiet"]
            )
        except OSError as ex:
            raise RenderError(f"Could not list compositions: {ex}") from ex
        if rc != 0:
            raise RenderError(f"Listing compositions failed (exit {rc}): {_tail(output)}")
        available = [tok for line in output.splitlines() for tok in line.split() if tok]
        if composition_id not in available:
            raise CompositionNotFound(composition_id, available)
        # Only drives the final progress tick; render length is the composition's own.
        seconds = float(input_props.get("durationInSeconds") or 0.0)
        frames = max(1, round(seconds * self.fps))
        return Composition(
            id=composition_id,
            serve_url=bundle.serve_url,
            fps=self.fps,
            width=self.width,
            height=self.height,
            duration_in_frames=frames,
        )

    async def render_media(
        self,
        composition: Composition,
        output_location: str,
        input_props: dict[str, Any],
        on_progress: ProgressCallback,
    ) -> None:
        Path(output_location).parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w", suffix=".json", prefix="props-", delete=False, encoding="utf-8"
        ) as f:
            json.dump(input_props, f)
            props_path = Path(f.name)

        def _on_line(line: str) -> None:
            p = parse_progress_line(line)
            if p is not None:
                on_progress(p)

        try:
            rc, output = await self._run(
                [
                    self.npx_bin,
                    "remotion",
                    "render",
                    composition.serve_url,
                    composition.id,
                    str(output_location),
                    f"--props={props_path}",
                    f"--codec={self.codec}",
                ],
                on_line=_on_line,
            )
        except OSError as ex:
            raise RenderError(f"Could not start renderer: {ex}") from ex
        finally:
            props_path.unlink(missing_ok=True)
        if rc != 0:
            raise RenderError(_tail(output) or f"renderer exited with {rc}")
        on_progress(
            RenderProgress(
                rendered_frames=composition.duration_in_frames,
                total_frames=composition.duration_in_frames,
            )
        )
