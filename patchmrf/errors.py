"""Exception types raised by the patch MRF pipeline."""

from __future__ import annotations


class PatchMRFError(Exception):
    """Base class for all patch MRF failures."""


class ShapeMismatchError(PatchMRFError, ValueError):
    """Array shapes of candidates, costs, grid or beliefs disagree."""


class InvalidConfigurationError(PatchMRFError, ValueError):
    """An option or option combination is not usable."""


class InferenceError(PatchMRFError, RuntimeError):
    """Belief propagation produced invalid marginals."""
