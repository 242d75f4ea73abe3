"""Public API for turning image selections into freshly rendered fractal images."""

from .config import ServiceConfig
from .diagnostics import log, set_verbose
from .errors import (
    CleanupWarning,
    ExecutionFailed,
    InvalidSelection,
    IOFailure,
    NoOutputProduced,
    RenderError,
    RendererConfigError,
    RetireWarning,
)
from .images import ImageArtifact, ImageStore
from .precision import DEFAULT_THRESHOLDS, PrecisionThresholds, PrecisionTier, select_tier
from .renderer import (
    OUTPUT_FILENAME,
    FractalKind,
    JobState,
    Platform,
    RenderJob,
    RenderOrchestrator,
    RenderParameters,
    RendererTable,
    Theme,
    build_arguments,
)
from .service import RenderService
from .viewport import (
    DEFAULT_VIEWPORT,
    MappingMode,
    RenderArea,
    SelectionRect,
    Viewport,
    map_selection_to_viewport,
    render_area,
)

__all__ = [
    "CleanupWarning",
    "DEFAULT_THRESHOLDS",
    "DEFAULT_VIEWPORT",
    "ExecutionFailed",
    "FractalKind",
    "IOFailure",
    "ImageArtifact",
    "ImageStore",
    "InvalidSelection",
    "JobState",
    "MappingMode",
    "NoOutputProduced",
    "OUTPUT_FILENAME",
    "Platform",
    "PrecisionThresholds",
    "PrecisionTier",
    "RenderArea",
    "RenderError",
    "RenderJob",
    "RenderOrchestrator",
    "RenderParameters",
    "RenderService",
    "RendererConfigError",
    "RendererTable",
    "RetireWarning",
    "SelectionRect",
    "ServiceConfig",
    "Theme",
    "Viewport",
    "build_arguments",
    "log",
    "map_selection_to_viewport",
    "render_area",
    "select_tier",
    "set_verbose",
]
