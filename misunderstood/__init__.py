"""Triage of messages a bot failed to understand."""

from .__version__ import __version__

__all__ = ["__version__"]
