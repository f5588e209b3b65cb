"""
Settings shim.

Canonical config lives in `config/`:
  - `config/public_config.py` (defaults, env / `.env` loading)
  - `config/settings.py` exposes `get_settings`

Package code imports `from lyrics_video.config import get_settings`.
"""

from __future__ import annotations

from config.settings import ConfigError as ConfigError
from config.settings import Settings as Settings
from config.settings import get_safe_config_report as get_safe_config_report
from config.settings import get_settings as get_settings
