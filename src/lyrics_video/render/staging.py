from __future__ import annotations

import os
import re
import shutil
from collections.abc import Iterator
from contextlib import contextmanager, suppress
from pathlib import Path
from urllib.parse import quote

from lyrics_video.utils.log import logger

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def is_remote(ref: str) -> bool:
    return ref.startswith("http://") or ref.startswith("https://")


def slugify(text: str) -> str:
    return _SLUG_RE.sub("-", str(text or "").strip().lower()).strip("-") or "item"


class StagedInputs:
    """
    Transient URL handles for one sub-step.

    Local files are linked (or copied) under `<root>/<job>/<variant>/` so the
    renderer can fetch them over HTTP; remote references pass through as-is.
    Every handle is owned by the sub-step and released when it exits.
    """

    def __init__(self, root: Path, base_url: str, *, job_id: str, variant: str) -> None:
        self.dir = (Path(root) / job_id / slugify(variant)).resolve()
        self._url_prefix = f"{base_url.rstrip('/')}/staging/{quote(job_id)}/{quote(slugify(variant))}"
        self._urls: dict[str, str] = {}
        self._released = False

    @property
    def handles(self) -> dict[str, str]:
        return dict(self._urls)

    def url_for(self, ref: str | None) -> str | None:
        if not ref:
            return None
        if self._released:
            raise RuntimeError("staged inputs already released")
        if is_remote(ref):
            return ref
        if ref in self._urls:
            return self._urls[ref]
        src = Path(ref)
        if not src.is_file():
            raise FileNotFoundError(f"Input file not found: {ref}")
        self.dir.mkdir(parents=True, exist_ok=True)
        name = f"{len(self._urls):02d}-{src.name}"
        dst = self.dir / name
        try:
            os.link(src, dst)
        except OSError:
            # cross-device or unsupported filesystem
            shutil.copy2(src, dst)
        url = f"{self._url_prefix}/{quote(name)}"
        self._urls[ref] = url
        return url

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        if self.dir.exists():
            shutil.rmtree(self.dir, ignore_errors=True)
        parent = self.dir.parent
        with suppress(OSError):
            if parent.exists() and not any(parent.iterdir()):
                parent.rmdir()
        logger.debug("staged_inputs_released", dir=str(self.dir), count=len(self._urls))
        self._urls.clear()


@contextmanager
def staged_inputs(root: Path, base_url: str, *, job_id: str, variant: str) -> Iterator[StagedInputs]:
    staged = StagedInputs(root, base_url, job_id=job_id, variant=variant)
    try:
        yield staged
    finally:
        staged.release()
