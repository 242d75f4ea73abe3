"""Runtime configuration for the render service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .precision import DEFAULT_THRESHOLDS, PrecisionThresholds
from .renderer import RendererTable
from .viewport import MappingMode

ENV_PREFIX = "FRACTALVIEW_"


def _env_float(environ: Mapping[str, str], name: str) -> Optional[float]:
    raw = environ.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return None
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from exc


def _env_path(environ: Mapping[str, str], name: str) -> Optional[Path]:
    raw = environ.get(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return None
    return Path(raw).expanduser()


@dataclass
class ServiceConfig:
    renderer_dir: Path = Path("renderer")
    image_dir: Path = Path("images")
    base_url: Optional[str] = None
    work_dir: Optional[Path] = None
    capture_dir: Optional[Path] = None
    mapping_mode: MappingMode = MappingMode.UNCONSTRAINED
    thresholds: PrecisionThresholds = DEFAULT_THRESHOLDS
    max_workers: int = 2
    timeout: Optional[float] = None
    verify_output: bool = True
    renderer_table: RendererTable = field(default_factory=RendererTable.default)

    def __post_init__(self) -> None:
        self.renderer_dir = Path(self.renderer_dir)
        self.image_dir = Path(self.image_dir)
        self.mapping_mode = MappingMode(self.mapping_mode)
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {self.max_workers}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "ServiceConfig":
        """Build a config from ``FRACTALVIEW_*`` variables; keyword overrides win."""

        environ = os.environ if environ is None else environ
        values = {}

        for key, name in (
            ("renderer_dir", "RENDERER_DIR"),
            ("image_dir", "IMAGE_DIR"),
            ("work_dir", "WORK_DIR"),
            ("capture_dir", "CAPTURE_DIR"),
        ):
            path = _env_path(environ, name)
            if path is not None:
                values[key] = path

        base_url = environ.get(ENV_PREFIX + "BASE_URL")
        if base_url:
            values["base_url"] = base_url

        mode = environ.get(ENV_PREFIX + "MAPPING_MODE")
        if mode:
            try:
                values["mapping_mode"] = MappingMode(mode.strip().lower())
            except ValueError as exc:
                choices = ", ".join(m.value for m in MappingMode)
                raise ValueError(f"{ENV_PREFIX}MAPPING_MODE must be one of {choices}, got {mode!r}") from exc

        deep = _env_float(environ, "DEEP_ZOOM")
        very_deep = _env_float(environ, "VERY_DEEP_ZOOM")
        if deep is not None or very_deep is not None:
            values["thresholds"] = PrecisionThresholds(
                deep_zoom=deep if deep is not None else DEFAULT_THRESHOLDS.deep_zoom,
                very_deep_zoom=very_deep if very_deep is not None else DEFAULT_THRESHOLDS.very_deep_zoom,
            )

        workers = environ.get(ENV_PREFIX + "MAX_WORKERS")
        if workers:
            try:
                values["max_workers"] = int(workers)
            except ValueError as exc:
                raise ValueError(f"{ENV_PREFIX}MAX_WORKERS must be an integer, got {workers!r}") from exc

        timeout = _env_float(environ, "TIMEOUT")
        if timeout is not None:
            values["timeout"] = timeout

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
