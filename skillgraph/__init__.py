"""
Core package for the SkillGraph curriculum pipeline.

Kept lightweight so `skillgraph.core` helpers can be imported by the CLI,
the API app, and tests without pulling in DSPy-heavy modules.
"""

from importlib import metadata


def get_version() -> str:
    """Return the installed project version."""
    try:
        return metadata.version("skillgraph")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__all__ = ["get_version"]
