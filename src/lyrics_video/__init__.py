"""
Lyrics video render queue: queue lyrics-video render requests, drain them one
at a time against a Remotion renderer, and report progress.
"""

__version__ = "0.3.0"
