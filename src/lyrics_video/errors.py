from __future__ import annotations


class LyricsVideoError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(LyricsVideoError, ValueError):
    """Missing or malformed job inputs. Raised before anything is enqueued."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class EngineError(LyricsVideoError):
    """Failure at the rendering engine boundary."""


class BundleError(EngineError):
    pass


class CompositionNotFound(EngineError):
    def __init__(self, composition_id: str, available: list[str] | None = None) -> None:
        avail = ", ".join(available or []) or "none"
        super().__init__(f"Composition {composition_id!r} not found (available: {avail})")
        self.composition_id = composition_id
        self.available = list(available or [])


class RenderError(EngineError):
    pass


class RenderCancelled(LyricsVideoError):
    """A job was cancelled by the user while processing."""


class JobBusyError(LyricsVideoError):
    """The job currently holding the processing marker cannot be removed."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} is processing; cancel it before removing")
        self.job_id = job_id


class InvalidTransition(LyricsVideoError):
    def __init__(self, job_id: str, current: str, target: str) -> None:
        super().__init__(f"Job {job_id}: invalid status transition {current} -> {target}")
        self.job_id = job_id
        self.current = current
        self.target = target


class FFprobeError(LyricsVideoError, RuntimeError):
    pass
