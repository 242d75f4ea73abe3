"""Errors and warnings raised while turning a request into a published image."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

_STDERR_TAIL = 2000


class RenderError(RuntimeError):
    """Base class for every failure reported back to the caller."""


class InvalidSelection(RenderError, ValueError):
    """A selection rectangle or viewport that cannot be rendered."""


class ExecutionFailed(RenderError):
    """The renderer could not be started, crashed, timed out or exited non-zero."""

    def __init__(
        self,
        reason: str,
        *,
        command: Sequence[str] = (),
        returncode: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
        workdir: Optional[Path] = None,
        job=None,
    ) -> None:
        self.reason = reason
        self.job = job
        self.command = list(command)
        self.returncode = returncode
        self.stdout = stdout or ""
        self.stderr = stderr or ""
        self.workdir = workdir
        message = reason
        if self.stderr.strip():
            message = f"{reason}\n{self.stderr.strip()[-_STDERR_TAIL:]}"
        super().__init__(message)


class NoOutputProduced(RenderError):
    """The renderer finished cleanly but left no usable image behind."""

    def __init__(
        self,
        reason: str,
        *,
        command: Sequence[str] = (),
        workdir: Optional[Path] = None,
        listing: Sequence[str] = (),
        job=None,
    ) -> None:
        self.job = job
        self.command = list(command)
        self.workdir = workdir
        self.listing = list(listing)
        super().__init__(reason)


class IOFailure(RenderError):
    """Allocating, moving or removing files for a render failed."""


class RendererConfigError(ValueError):
    """The renderer lookup table or its executables are unusable."""


class CleanupWarning(RuntimeWarning):
    """A job's working directory could not be removed."""


class RetireWarning(RuntimeWarning):
    """An image asked to be retired was already gone."""
