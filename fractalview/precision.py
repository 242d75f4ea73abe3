"""Choosing the renderer's floating point width from the zoom depth."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass

import numpy as np

from .viewport import Viewport


class PrecisionTier(enum.IntEnum):
    """Renderer builds, valued by the width in bits of their float type."""

    STANDARD = 64
    EXTENDED = 80
    EXTENDED2 = 128


@dataclass(frozen=True)
class PrecisionThresholds:
    """Span limits below which the next wider float type is required.

    ``deep_zoom`` sits just above the point where 64-bit doubles start to
    band (about 1e-13 in practice), ``very_deep_zoom`` just above the limit
    of the 80-bit extended type (about 1e-16).
    """

    deep_zoom: float = 1.0e-11
    very_deep_zoom: float = 1.0e-15

    def __post_init__(self) -> None:
        for name in ("deep_zoom", "very_deep_zoom"):
            value = getattr(self, name)
            if not (math.isfinite(value) and value > 0):
                raise ValueError(f"{name} threshold must be a positive number, got {value!r}")
        if self.very_deep_zoom >= self.deep_zoom:
            raise ValueError(
                f"very_deep_zoom ({self.very_deep_zoom!r}) must be smaller than deep_zoom ({self.deep_zoom!r})"
            )


DEFAULT_THRESHOLDS = PrecisionThresholds()


def select_tier(viewport: Viewport, thresholds: PrecisionThresholds = DEFAULT_THRESHOLDS) -> PrecisionTier:
    span_x = np.abs(np.float64(viewport.x_max) - np.float64(viewport.x_min))
    span_y = np.abs(np.float64(viewport.y_max) - np.float64(viewport.y_min))
    smallest = min(span_x, span_y)

    if smallest < thresholds.very_deep_zoom:
        return PrecisionTier.EXTENDED2
    if smallest < thresholds.deep_zoom:
        return PrecisionTier.EXTENDED
    return PrecisionTier.STANDARD
