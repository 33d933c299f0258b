"""
ralph-monitor: live dashboard for Ralph agent sessions.

Turns the artifacts under <workdir>/tasks/ into a single state snapshot,
with background translation of non-English text.
"""

__version__ = "0.3.0"
