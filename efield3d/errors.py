"""Exception types raised by efield3d."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """
    Raised while setting up a run, never in the middle of a relaxation.

    Covers bad geometry (empty surface sets, invalid latitude bounds,
    degenerate meshes), malformed configuration or STL files and population
    sizes that cannot produce the requested statistics.
    """
