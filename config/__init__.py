"""
Unified configuration entrypoint.

Import `get_settings` from `config.settings` (or `lyrics_video.config`).
"""
