from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import click
import uvicorn

from lyrics_video import __version__
from lyrics_video.config import Settings, get_safe_config_report, get_settings
from lyrics_video.errors import FFprobeError, ValidationError
from lyrics_video.jobs.models import JobSpec, JobStatus, RenderJob, VideoType
from lyrics_video.jobs.submit import build_job_specs
from lyrics_video.render.engine import RemotionCliEngine, RenderEngine
from lyrics_video.server import create_app
from lyrics_video.utils.ffmpeg import ffprobe_duration_seconds
from lyrics_video.utils.log import logger, set_log_level
from lyrics_video.utils.lyrics import load_lyrics
from lyrics_video.web import run as web_run

_TYPE_CHOICES = [vt.value for vt in VideoType]


@click.group()
@click.version_option(__version__, prog_name="lyrics-video")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override LOG_LEVEL for this invocation.",
)
def cli(log_level: str | None) -> None:
    """Lyrics video render queue."""
    if log_level:
        set_log_level(log_level)


@cli.command()
@click.option("--host", default=None, help="Bind address (default: HOST).")
@click.option("--port", type=int, default=None, help="Bind port (default: PORT).")
def serve(host: str | None, port: int | None) -> None:
    """Run the HTTP server with the render queue."""
    web_run.main(host=host, port=port)


@cli.command(name="config")
def config_report() -> None:
    """Print the effective configuration as JSON."""
    click.echo(json.dumps(get_safe_config_report(), indent=2, sort_keys=True))


def _parse_backgrounds(values: tuple[str, ...]) -> dict[str, str]:
    out: dict[str, str] = {}
    for raw in values:
        if "=" not in raw:
            raise click.BadParameter(f"expected TYPE=PATH, got {raw!r}", param_hint="--background")
        k, v = raw.split("=", 1)
        try:
            vt = VideoType.parse(k)
        except ValueError as ex:
            raise click.BadParameter(str(ex), param_hint="--background") from None
        out[vt.value] = v.strip()
    return out


def _cli_settings(port: int) -> Settings:
    s = get_settings()
    public = s.public.model_copy(
        update={"port": port, "public_base_url": f"http://127.0.0.1:{port}"}
    )
    return Settings(public=public)


class _ProgressPrinter:
    """Echo variant changes and every 10% of progress."""

    def __init__(self, ids: list[str]) -> None:
        self.ids = set(ids)
        self._last: dict[str, tuple[str | None, int]] = {}

    def on_job(self, job: RenderJob) -> None:
        if job.id not in self.ids:
            return
        vt = job.current_video_type.value if job.current_video_type else None
        bucket = int(job.progress * 10)
        key = (vt, bucket)
        if self._last.get(job.id) == key or job.status != JobStatus.PROCESSING:
            return
        self._last[job.id] = key
        if vt:
            click.echo(f"[{job.id[:8]}] {vt}: {bucket * 10}%")


async def render_specs(
    specs: list[JobSpec], s: Settings, *, engine: RenderEngine | None = None
) -> list[RenderJob]:
    """
    Serve the staging/output mounts in-process, queue `specs`, and wait until
    the queue is drained. The renderer fetches inputs over HTTP, so the server
    has to be up while jobs run.
    """
    app = create_app(engine=engine or RemotionCliEngine.from_settings(s), settings=s)
    config = uvicorn.Config(
        app, host="127.0.0.1", port=int(s.port), log_config=None, lifespan="on"
    )
    server = uvicorn.Server(config)
    serve_task = asyncio.create_task(server.serve())
    try:
        while not server.started:
            if serve_task.done():
                await serve_task
                raise click.ClickException(f"Could not start the staging server on port {s.port}")
            await asyncio.sleep(0.05)

        store = app.state.queue_store
        processor = app.state.processor
        ids = [store.add(spec) for spec in specs]
        printer = _ProgressPrinter(ids)

        def _on_event(event: str, job_id: str | None) -> None:
            if event == "updated" and job_id:
                job = store.get(job_id)
                if job is not None:
                    printer.on_job(job)

        unsubscribe = store.subscribe(_on_event)
        try:
            await processor.drain()
        finally:
            unsubscribe()
        return [job for job in (store.get(i) for i in ids) if job is not None]
    finally:
        server.should_exit = True
        await serve_task


def _local_output(s: Settings, url: str) -> Path:
    return Path(s.output_dir) / url.rsplit("/", 1)[-1]


@cli.command()
@click.argument("audio", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("lyrics_json", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--type",
    "video_types",
    multiple=True,
    type=click.Choice(_TYPE_CHOICES, case_sensitive=False),
    help="Video type to render (repeatable). Default: Lyrics Video.",
)
@click.option("--all-versions", is_flag=True, default=False, help="Render every video type in one job.")
@click.option("--instrumental", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--vocal", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--little-vocal", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--album-art", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--background", "backgrounds", multiple=True, help="Per-type background: TYPE=PATH.")
@click.option(
    "--default-background", type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.option("--artist", default=None)
@click.option("--title", default=None)
@click.option(
    "--duration",
    type=float,
    default=None,
    help="Duration in seconds (default: probed with ffprobe).",
)
@click.option("--port", type=int, default=None, help="Port for the in-process staging server.")
def render(
    audio: Path,
    lyrics_json: Path,
    video_types: tuple[str, ...],
    all_versions: bool,
    instrumental: Path | None,
    vocal: Path | None,
    little_vocal: Path | None,
    album_art: Path | None,
    backgrounds: tuple[str, ...],
    default_background: Path | None,
    artist: str | None,
    title: str | None,
    duration: float | None,
    port: int | None,
) -> None:
    """Render AUDIO with the timed lyrics in LYRICS_JSON and wait for the results."""
    s = _cli_settings(int(port or get_settings().port))

    if duration is None:
        try:
            duration = ffprobe_duration_seconds(audio)
        except FFprobeError as ex:
            raise click.ClickException(f"{ex} (pass --duration)") from None

    try:
        lyrics = load_lyrics(lyrics_json)
    except ValidationError as ex:
        raise click.ClickException(str(ex)) from None

    def _opt(p: Path | None) -> str | None:
        return str(p) if p is not None else None

    types = [VideoType.parse(v).value for v in video_types]
    payload: dict[str, Any] = {
        "audioFile": str(audio),
        "instrumentalUrl": _opt(instrumental),
        "vocalUrl": _opt(vocal),
        "littleVocalUrl": _opt(little_vocal),
        "lyrics": [{"start": x.start, "end": x.end, "text": x.text} for x in lyrics],
        "durationInSeconds": duration,
        "albumArtUrl": _opt(album_art),
        "backgroundImageUrl": _opt(default_background),
        "backgroundImagesMap": _parse_backgrounds(backgrounds),
        "metadata": {
            "artist": artist,
            "songTitle": title or audio.stem,
            "videoType": types[0] if types else VideoType.LYRICS_VIDEO.value,
        },
        "videoTypes": types,
        "allVersions": all_versions,
    }
    try:
        specs = build_job_specs(payload, allow_local_paths=True)
    except ValidationError as ex:
        raise click.ClickException(str(ex)) from None

    logger.info("cli_render_start", jobs=len(specs), all_versions=all_versions)
    jobs = asyncio.run(render_specs(specs, s))

    failed = 0
    for job in jobs:
        click.echo(f"{job.id} {job.status.value}")
        for vt, url in job.result.items():
            click.echo(f"  {vt.value}: {_local_output(s, url)}")
        for vt, msg in job.variant_errors.items():
            click.echo(f"  {vt.value}: {msg}")
        if job.status != JobStatus.COMPLETE:
            failed += 1
            if job.error and not job.variant_errors:
                click.echo(f"  error: {job.error}")
    if failed:
        raise SystemExit(1)
