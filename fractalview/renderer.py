"""Running the external fractal renderer in isolated per-job directories."""

from __future__ import annotations

import contextlib
import enum
import math
import os
import shutil
import signal
import subprocess
import tempfile
import uuid
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Mapping, Optional, Tuple, Union

from .diagnostics import log
from .errors import (
    CleanupWarning,
    ExecutionFailed,
    IOFailure,
    NoOutputProduced,
    RendererConfigError,
)
from .images import probe_image
from .precision import PrecisionTier
from .viewport import Viewport

OUTPUT_FILENAME = "contours.png"


class FractalKind(enum.IntEnum):
    MANDELBROT = 1
    JULIA = 2


class Theme(enum.IntEnum):
    """Palette indices understood by the renderer."""

    CANDY = 1
    COSMIC = 2
    FIRE = 3
    OCEAN = 4
    RAINBOW = 5
    VIOLET = 6
    VOLCANO = 7


class Platform(enum.Enum):
    POSIX = "posix"
    WINDOWS = "windows"

    @classmethod
    def current(cls) -> "Platform":
        return cls.WINDOWS if os.name == "nt" else cls.POSIX


def _require_int(name: str, value) -> int:
    # bool is an int subclass but never a meaningful renderer argument
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer, got {type(value).__name__}")
    return int(value)


@dataclass(frozen=True)
class RenderParameters:
    """Renderer settings forwarded untouched to the executable.

    Ranges are checked by whoever collects the values; here they only have
    to be integers so nothing but numbers can reach the argument vector.
    """

    kind: FractalKind = FractalKind.MANDELBROT
    contours: int = 64
    theme: int = Theme.COSMIC
    iterations: int = 1024
    size: int = 2048
    julia_constant: Optional[Tuple[float, float]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", FractalKind(self.kind))
        for name in ("contours", "theme", "iterations", "size"):
            _require_int(name, getattr(self, name))
        if self.kind is FractalKind.JULIA:
            if self.julia_constant is None:
                raise ValueError("Julia renders need julia_constant=(x_c, y_c)")
            x_c, y_c = (float(v) for v in self.julia_constant)
            if not (math.isfinite(x_c) and math.isfinite(y_c)):
                raise ValueError(f"julia_constant must be finite, got {self.julia_constant!r}")
            object.__setattr__(self, "julia_constant", (x_c, y_c))


def _format_float(value: float) -> str:
    return repr(float(value))


def build_arguments(viewport: Viewport, params: RenderParameters, *, legacy_padding: bool = False) -> list[str]:
    """Argument vector for one render, excluding the executable itself.

    Order: contours, fractal kind, iterations, size, theme, then
    ``x_min x_max y_min y_max`` and, for Julia sets only, ``x_c y_c``.
    Older renderers expected ``0.0 0.0`` in place of the Julia constant for
    Mandelbrot renders; that convention is not supported.
    """

    if legacy_padding:
        raise NotImplementedError("padding Mandelbrot invocations with a Julia constant is not supported")

    args = [
        "-c", str(_require_int("contours", params.contours)),
        "-f", str(int(params.kind)),
        "-i", str(_require_int("iterations", params.iterations)),
        "-s", str(_require_int("size", params.size)),
        "-t", str(_require_int("theme", params.theme)),
    ]
    args.extend(_format_float(v) for v in viewport.bounds())
    if params.kind is FractalKind.JULIA:
        args.extend(_format_float(v) for v in params.julia_constant)
    return args


@dataclass(frozen=True)
class RendererTable:
    """Executable name for every ``(precision tier, platform)`` pair."""

    entries: Mapping[Tuple[PrecisionTier, Platform], str]

    @classmethod
    def default(cls, stem: str = "mandelbrot") -> "RendererTable":
        entries = {}
        for tier in PrecisionTier:
            entries[(tier, Platform.POSIX)] = f"{stem}-{tier.value}"
            entries[(tier, Platform.WINDOWS)] = f"{stem}-{tier.value}.exe"
        return cls(entries)

    def validate(self, renderer_dir: Optional[Union[str, Path]] = None) -> "RendererTable":
        """Check every pair is present and, given a directory, that this platform's executables exist."""

        missing = [
            f"{tier.name}/{platform.value}"
            for tier in PrecisionTier
            for platform in Platform
            if not self.entries.get((tier, platform))
        ]
        if missing:
            raise RendererConfigError(f"renderer table has no executable for: {', '.join(missing)}")

        for (tier, platform), name in self.entries.items():
            if Path(name).name != name:
                raise RendererConfigError(
                    f"renderer entry for {tier.name}/{platform.value} must be a bare file name, got {name!r}"
                )

        if renderer_dir is not None:
            directory = Path(renderer_dir)
            platform = Platform.current()
            for tier in PrecisionTier:
                path = directory / self.entries[(tier, platform)]
                if not path.is_file():
                    raise RendererConfigError(f"renderer for {tier.name} not found at {path}")
                if platform is Platform.POSIX and not os.access(path, os.X_OK):
                    raise RendererConfigError(f"renderer for {tier.name} at {path} is not executable")
        return self

    def resolve(self, tier: PrecisionTier, platform: Optional[Platform] = None) -> str:
        platform = platform or Platform.current()
        try:
            return self.entries[(PrecisionTier(tier), platform)]
        except KeyError:
            raise RendererConfigError(f"no renderer for {PrecisionTier(tier).name}/{platform.value}") from None


class JobState(enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CLEANED = "cleaned"


@dataclass
class RenderJob:
    """Bookkeeping for one renderer invocation."""

    job_id: str
    workdir: Path
    command: list[str] = field(default_factory=list)
    state: JobState = JobState.CREATED
    returncode: Optional[int] = None
    stdout: str = ""
    stderr: str = ""
    output: Optional[Path] = None


def _kill_process_group(process: subprocess.Popen) -> None:
    if os.name == "nt":
        process.kill()
        return
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


@contextlib.contextmanager
def job_directory(work_root: Optional[Path] = None) -> Iterator[RenderJob]:
    """Create an empty private directory for one job and always remove it afterwards."""

    job_id = uuid.uuid4().hex
    try:
        if work_root is not None:
            work_root.mkdir(parents=True, exist_ok=True)
        workdir = Path(tempfile.mkdtemp(prefix=f"render-{job_id[:8]}-", dir=work_root))
    except OSError as exc:
        raise IOFailure(f"could not create a working directory under {work_root or tempfile.gettempdir()}: {exc}") from exc

    job = RenderJob(job_id=job_id, workdir=workdir)
    try:
        yield job
    finally:
        try:
            shutil.rmtree(workdir)
        except FileNotFoundError:
            job.state = JobState.CLEANED
        except OSError as exc:
            warnings.warn(f"could not remove working directory {workdir}: {exc}", CleanupWarning, stacklevel=3)
        else:
            job.state = JobState.CLEANED
            log("Removed %s" % workdir)


class RenderOrchestrator:
    """Turns a viewport and parameters into a captured image file."""

    def __init__(
        self,
        renderer_dir: Union[str, Path],
        table: Optional[RendererTable] = None,
        *,
        work_root: Optional[Union[str, Path]] = None,
        capture_dir: Optional[Union[str, Path]] = None,
        timeout: Optional[float] = None,
        verify_output: bool = True,
        check_executables: bool = True,
    ) -> None:
        self.renderer_dir = Path(renderer_dir).expanduser().resolve()
        self.table = (table or RendererTable.default()).validate(
            self.renderer_dir if check_executables else None
        )
        self.work_root = Path(work_root).expanduser().resolve() if work_root is not None else None
        self.capture_dir = Path(capture_dir).expanduser().resolve() if capture_dir is not None else None
        self.timeout = timeout
        self.verify_output = verify_output

    def executable_for(self, tier: PrecisionTier) -> Path:
        return self.renderer_dir / self.table.resolve(tier)

    def command_for(self, viewport: Viewport, params: RenderParameters, tier: PrecisionTier) -> list[str]:
        return [str(self.executable_for(tier)), *build_arguments(viewport, params)]

    def _execute(self, job: RenderJob) -> None:
        job.state = JobState.RUNNING
        log("RUNNING: %s" % subprocess.list2cmdline(job.command))
        try:
            process = subprocess.Popen(
                job.command,
                cwd=job.workdir,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                start_new_session=os.name != "nt",
            )
        except OSError as exc:
            job.state = JobState.FAILED
            raise ExecutionFailed(
                f"could not start renderer {job.command[0]}: {exc}",
                command=job.command,
                workdir=job.workdir,
                job=job,
            ) from exc

        with process:
            try:
                stdout, stderr = process.communicate(timeout=self.timeout)
            except subprocess.TimeoutExpired as exc:
                # the renderer shells out to gnuplot; take its children down too
                _kill_process_group(process)
                stdout, stderr = process.communicate()
                job.state = JobState.FAILED
                job.returncode = process.returncode
                job.stdout = stdout or ""
                job.stderr = stderr or ""
                raise ExecutionFailed(
                    f"renderer timed out after {exc.timeout} seconds",
                    command=job.command,
                    returncode=job.returncode,
                    stdout=job.stdout,
                    stderr=job.stderr,
                    workdir=job.workdir,
                    job=job,
                ) from exc

        job.returncode = process.returncode
        job.stdout = stdout or ""
        job.stderr = stderr or ""
        if process.returncode != 0:
            job.state = JobState.FAILED
            raise ExecutionFailed(
                f"renderer exited with status {process.returncode}",
                command=job.command,
                returncode=process.returncode,
                stdout=job.stdout,
                stderr=job.stderr,
                workdir=job.workdir,
                job=job,
            )

    def _collect(self, job: RenderJob) -> Path:
        output = job.workdir / OUTPUT_FILENAME
        if not output.is_file():
            job.state = JobState.FAILED
            listing = sorted(p.name for p in job.workdir.iterdir())
            raise NoOutputProduced(
                f"renderer exited cleanly but wrote no {OUTPUT_FILENAME}",
                command=job.command,
                workdir=job.workdir,
                listing=listing,
                job=job,
            )

        if self.verify_output:
            try:
                probe_image(output)
            except OSError as exc:
                job.state = JobState.FAILED
                raise NoOutputProduced(
                    f"renderer wrote {OUTPUT_FILENAME} but it is not a readable image: {exc}",
                    command=job.command,
                    workdir=job.workdir,
                    listing=[OUTPUT_FILENAME],
                    job=job,
                ) from exc

        capture_dir = self.capture_dir or Path(tempfile.gettempdir())
        captured = capture_dir / f"{job.job_id}{output.suffix}"
        try:
            capture_dir.mkdir(parents=True, exist_ok=True)
            shutil.move(str(output), str(captured))
        except OSError as exc:
            job.state = JobState.FAILED
            raise IOFailure(f"could not move {output} to {captured}: {exc}") from exc
        return captured

    def run_job(self, viewport: Viewport, params: RenderParameters, tier: PrecisionTier) -> RenderJob:
        """Render once and return the finished job; ``job.output`` is the captured image, now owned by the caller.

        Failures raise ``ExecutionFailed``, ``NoOutputProduced`` or ``IOFailure``.
        The first two carry the job, whose working directory is already gone.
        """

        with job_directory(self.work_root) as job:
            job.command = self.command_for(viewport, params, tier)
            self._execute(job)
            job.output = self._collect(job)
            job.state = JobState.COMPLETED
            log("Captured %s from job %s" % (job.output, job.job_id))
        return job

    def run_render(self, viewport: Viewport, params: RenderParameters, tier: PrecisionTier) -> Path:
        """Render once and return the path of the captured image, which the caller now owns."""

        return self.run_job(viewport, params, tier).output
