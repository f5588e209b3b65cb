from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_app_root() -> Path:
    """
    Default application root.

    The Remotion project (entry point, node_modules) is expected to live here.
    """
    env = os.environ.get("APP_ROOT")
    if env:
        return Path(env).resolve()
    return Path.cwd().resolve()


class PublicConfig(BaseSettings):
    """
    Non-sensitive config with safe defaults.

    Loaded from (in order):
      - process env
      - optional `.env` file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- core paths ---
    app_root: Path = Field(default_factory=_default_app_root, alias="APP_ROOT")
    uploads_dir: Path = Field(
        default_factory=lambda: (Path.cwd() / "uploads").resolve(), alias="UPLOADS_DIR"
    )
    output_dir: Path = Field(
        default_factory=lambda: (Path.cwd() / "output").resolve(), alias="OUTPUT_DIR"
    )
    # Per-sub-step input handles live here while a variant renders.
    # If unset, defaults to "<OUTPUT_DIR>/_staging".
    staging_dir: Path | None = Field(default=None, alias="STAGING_DIR")

    # --- logging ---
    log_dir: Path = Field(default_factory=lambda: (Path.cwd() / "logs").resolve(), alias="LOG_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_max_bytes: int = Field(default=10 * 1024 * 1024, alias="LOG_MAX_BYTES")
    log_backup_count: int = Field(default=5, alias="LOG_BACKUP_COUNT")

    # --- web ---
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=3003, alias="PORT")
    # Base used to build URLs handed to the renderer and returned to clients.
    public_base_url: str = Field(default="http://localhost:3003", alias="PUBLIC_BASE_URL")
    cors_origins: str = Field(default="*", alias="CORS_ORIGINS")  # comma-separated

    # --- renderer ---
    remotion_entry: Path | None = Field(default=None, alias="REMOTION_ENTRY")
    composition_id: str = Field(default="lyrics-video", alias="COMPOSITION_ID")
    render_fps: int = Field(default=30, alias="RENDER_FPS")
    render_width: int = Field(default=1280, alias="RENDER_WIDTH")
    render_height: int = Field(default=720, alias="RENDER_HEIGHT")
    render_codec: str = Field(default="h264", alias="RENDER_CODEC")
    npx_bin: str = Field(default="npx", alias="NPX_BIN")
    ffprobe_bin: str = Field(default="ffprobe", alias="FFPROBE_BIN")

    # --- scheduler ---
    cancel_grace_sec: float = Field(default=0.5, alias="CANCEL_GRACE_SEC")
    scheduler_event_queue_max: int = Field(default=64, alias="SCHEDULER_EVENT_QUEUE_MAX")
    variant_failure_policy: str = Field(
        default="continue", alias="VARIANT_FAILURE_POLICY"
    )  # continue|abort

    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in str(self.cors_origins or "").split(",") if o.strip()]

    def resolved_staging_dir(self) -> Path:
        if self.staging_dir is not None:
            return Path(self.staging_dir).resolve()
        return (Path(self.output_dir) / "_staging").resolve()

    def resolved_entry_point(self) -> Path:
        if self.remotion_entry is not None:
            return Path(self.remotion_entry).resolve()
        return (Path(self.app_root) / "src" / "remotion" / "root.tsx").resolve()
