"""Mapping pixel selections on a rendered image back to the fractal plane."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .errors import InvalidSelection


@dataclass(frozen=True)
class Viewport:
    """Rectangle of the complex plane covered by one rendered image."""

    x_min: float
    x_max: float
    y_min: float
    y_max: float

    @property
    def width(self) -> float:
        return float(np.float64(self.x_max) - np.float64(self.x_min))

    @property
    def height(self) -> float:
        return float(np.float64(self.y_max) - np.float64(self.y_min))

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    def bounds(self) -> Tuple[float, float, float, float]:
        return self.x_min, self.x_max, self.y_min, self.y_max

    def validate(self) -> "Viewport":
        """Return ``self`` if the bounds form a proper rectangle, else raise."""

        if not all(math.isfinite(v) for v in self.bounds()):
            raise InvalidSelection(f"viewport bounds must be finite: {self.bounds()}")
        if not self.x_min < self.x_max:
            raise InvalidSelection(
                f"viewport x range is empty or inverted ({self.x_min!r} >= {self.x_max!r}); "
                "the selection may be below float64 resolution"
            )
        if not self.y_min < self.y_max:
            raise InvalidSelection(
                f"viewport y range is empty or inverted ({self.y_min!r} >= {self.y_max!r}); "
                "the selection may be below float64 resolution"
            )
        return self


DEFAULT_VIEWPORT = Viewport(x_min=-2.5, x_max=1.0, y_min=-1.3, y_max=1.3)


@dataclass(frozen=True)
class SelectionRect:
    """Rectangle dragged on a rendered image, in image pixels (y grows downward)."""

    x0: float
    y0: float
    x1: float
    y1: float
    image_width: int
    image_height: int

    @classmethod
    def from_drag(
        cls,
        start: Tuple[float, float],
        end: Tuple[float, float],
        image_size: Tuple[int, int],
    ) -> "SelectionRect":
        """Build a rectangle from the two corners of a drag, in either order."""

        return cls(
            x0=float(start[0]),
            y0=float(start[1]),
            x1=float(end[0]),
            y1=float(end[1]),
            image_width=int(image_size[0]),
            image_height=int(image_size[1]),
        ).normalized()

    def normalized(self) -> "SelectionRect":
        return SelectionRect(
            x0=min(self.x0, self.x1),
            y0=min(self.y0, self.y1),
            x1=max(self.x0, self.x1),
            y1=max(self.y0, self.y1),
            image_width=self.image_width,
            image_height=self.image_height,
        )

    def validate(self) -> "SelectionRect":
        """Reject degenerate, inverted and out-of-canvas rectangles."""

        if self.image_width <= 0 or self.image_height <= 0:
            raise InvalidSelection(
                f"canvas size must be positive, got {self.image_width}x{self.image_height}"
            )
        coords = (self.x0, self.y0, self.x1, self.y1)
        if not all(math.isfinite(v) for v in coords):
            raise InvalidSelection(f"selection coordinates must be finite: {coords}")
        if self.x0 > self.x1 or self.y0 > self.y1:
            raise InvalidSelection("selection corners are not normalized; call normalized() first")
        if self.x0 == self.x1 or self.y0 == self.y1:
            raise InvalidSelection(f"selection has zero area: {coords}")
        if self.x0 < 0 or self.y0 < 0 or self.x1 > self.image_width or self.y1 > self.image_height:
            raise InvalidSelection(
                f"selection {coords} lies outside the {self.image_width}x{self.image_height} canvas"
            )
        return self


class MappingMode(str, enum.Enum):
    UNCONSTRAINED = "unconstrained"
    ASPECT_PRESERVING = "aspect"


@dataclass(frozen=True)
class RenderArea:
    """Part of the canvas actually covered by the viewport, in pixels."""

    start_x: float
    start_y: float
    width: float
    height: float


def render_area(previous: Viewport, image_width: int, image_height: int) -> RenderArea:
    """Locate the sub-rectangle of the canvas that keeps the viewport's aspect ratio."""

    ratio = np.float64(previous.x_max - previous.x_min) / np.float64(previous.y_max - previous.y_min)
    canvas_w = np.float64(image_width)
    canvas_h = np.float64(image_height)

    if ratio < canvas_w / canvas_h:
        v_py = canvas_h
        v_px = ratio * canvas_h
        start_x = 0.5 * (canvas_w - v_px)
        start_y = np.float64(0.0)
    else:
        v_px = canvas_w
        v_py = canvas_w / ratio
        start_x = np.float64(0.0)
        start_y = 0.5 * (canvas_h - v_py)

    return RenderArea(
        start_x=float(start_x),
        start_y=float(start_y),
        width=float(v_px),
        height=float(v_py),
    )


def map_selection_to_viewport(
    previous: Viewport,
    rect: SelectionRect,
    mode: MappingMode = MappingMode.UNCONSTRAINED,
) -> Viewport:
    """Translate ``rect`` drawn on the image of ``previous`` into a new viewport.

    The rectangle is expected to be normalized already. No validation is
    performed here; a rectangle that is too small for float64 produces a
    collapsed viewport which :meth:`Viewport.validate` rejects.
    """

    if MappingMode(mode) is MappingMode.ASPECT_PRESERVING:
        area = render_area(previous, rect.image_width, rect.image_height)
        offset_x = np.float64(area.start_x)
        offset_y = np.float64(area.start_y)
        span_px = np.float64(area.width)
        span_py = np.float64(area.height)
    else:
        offset_x = np.float64(0.0)
        offset_y = np.float64(0.0)
        span_px = np.float64(rect.image_width)
        span_py = np.float64(rect.image_height)

    x_min = np.float64(previous.x_min)
    y_max = np.float64(previous.y_max)
    delta_x = (np.float64(previous.x_max) - x_min) / span_px
    delta_y = (y_max - np.float64(previous.y_min)) / span_py

    x0 = np.float64(rect.x0) - offset_x
    x1 = np.float64(rect.x1) - offset_x
    y0 = np.float64(rect.y0) - offset_y
    y1 = np.float64(rect.y1) - offset_y

    return Viewport(
        x_min=float(x_min + x0 * delta_x),
        x_max=float(x_min + x1 * delta_x),
        y_min=float(y_max - y1 * delta_y),
        y_max=float(y_max - y0 * delta_y),
    )
