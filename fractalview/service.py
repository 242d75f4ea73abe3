"""End-to-end render pipeline: selection, viewport, tier, render, publish."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Optional, Union

from .config import ServiceConfig
from .diagnostics import log
from .images import ImageArtifact, ImageStore
from .precision import select_tier
from .renderer import RenderOrchestrator, RenderParameters
from .viewport import SelectionRect, Viewport, map_selection_to_viewport


class RenderService:
    """Runs render requests on a bounded worker pool and manages the resulting images.

    The synchronous methods block for the whole renderer run; callers that
    serve other requests should use the ``submit_*`` variants instead.
    """

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        *,
        orchestrator: Optional[RenderOrchestrator] = None,
        store: Optional[ImageStore] = None,
        check_executables: bool = True,
    ) -> None:
        self.config = config or ServiceConfig.from_env()
        self.orchestrator = orchestrator or RenderOrchestrator(
            self.config.renderer_dir,
            self.config.renderer_table,
            work_root=self.config.work_dir,
            capture_dir=self.config.capture_dir,
            timeout=self.config.timeout,
            verify_output=self.config.verify_output,
            check_executables=check_executables,
        )
        self.store = store or ImageStore(self.config.image_dir, base_url=self.config.base_url)
        self._pool = ThreadPoolExecutor(max_workers=self.config.max_workers, thread_name_prefix="render")

    def __enter__(self) -> "RenderService":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def viewport_for_selection(self, previous: Viewport, rect: SelectionRect) -> Viewport:
        previous.validate()
        rect = rect.normalized().validate()
        viewport = map_selection_to_viewport(previous, rect, self.config.mapping_mode)
        return viewport.validate()

    def render_viewport(self, viewport: Viewport, params: RenderParameters) -> ImageArtifact:
        viewport.validate()
        tier = select_tier(viewport, self.config.thresholds)
        log("Rendering %r with %s precision" % (viewport.bounds(), tier.name))

        captured = self.orchestrator.run_render(viewport, params, tier)
        try:
            return self.store.publish(captured)
        finally:
            Path(captured).unlink(missing_ok=True)

    def render_selection(self, previous: Viewport, rect: SelectionRect, params: RenderParameters) -> ImageArtifact:
        return self.render_viewport(self.viewport_for_selection(previous, rect), params)

    def replace(
        self,
        old: Union[ImageArtifact, str, Path],
        viewport: Viewport,
        params: RenderParameters,
    ) -> ImageArtifact:
        """Render a new image, then retire ``old``. A failed render leaves ``old`` untouched."""

        self.store.resolve_reference(old)
        artifact = self.render_viewport(viewport, params)
        self.store.retire(old)
        return artifact

    def retire(self, reference: Union[ImageArtifact, str, Path]) -> bool:
        return self.store.retire(reference)

    def submit_viewport(self, viewport: Viewport, params: RenderParameters) -> "Future[ImageArtifact]":
        return self._pool.submit(self.render_viewport, viewport, params)

    def submit_selection(
        self, previous: Viewport, rect: SelectionRect, params: RenderParameters
    ) -> "Future[ImageArtifact]":
        return self._pool.submit(self.render_selection, previous, rect, params)

    def submit_replace(
        self,
        old: Union[ImageArtifact, str, Path],
        viewport: Viewport,
        params: RenderParameters,
    ) -> "Future[ImageArtifact]":
        return self._pool.submit(self.replace, old, viewport, params)
