import sys
import warnings
from argparse import ArgumentParser
from pathlib import Path

from fractalview import (
    DEFAULT_VIEWPORT,
    FractalKind,
    MappingMode,
    PrecisionThresholds,
    RenderError,
    RendererConfigError,
    RenderParameters,
    RenderService,
    SelectionRect,
    ServiceConfig,
    Theme,
    Viewport,
    select_tier,
    set_verbose,
)
from fractalview.diagnostics import log


def theme(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return int(Theme[value.strip().upper()])
    except KeyError:
        names = ", ".join(t.name.lower() for t in Theme)
        raise ValueError(f"unknown theme '{value}' (use a number or one of: {names})") from None


def build_parser():
    parser = ArgumentParser(description='Zoom into a fractal by selecting a rectangle on its last rendered image.')

    parser.add_argument('--viewport', type=float, nargs=4,
                        dest='viewport', help='plane rectangle of the image the selection was drawn on (or to render directly)',
                        metavar=('X_MIN', 'X_MAX', 'Y_MIN', 'Y_MAX'),
                        default=list(DEFAULT_VIEWPORT.bounds()))

    parser.add_argument('--select', type=float, nargs=4,
                        dest='select', help='pixel corners of the selection, in any order; requires --canvas',
                        metavar=('X0', 'Y0', 'X1', 'Y1'))

    parser.add_argument('--canvas', type=int, nargs=2,
                        dest='canvas', help='pixel size of the image the selection was drawn on',
                        metavar=('WIDTH', 'HEIGHT'))

    parser.add_argument('--mapping-mode', choices=[m.value for m in MappingMode], default=None,
                        dest='mapping_mode', help='"aspect" when the image is letterboxed around the viewport. Default: unconstrained.')

    parser.add_argument('--fractal', choices=['mandelbrot', 'julia'], default='mandelbrot',
                        help='fractal family to render')

    parser.add_argument('--julia-constant', type=float, nargs=2,
                        dest='julia_constant', help='complex constant c = XC + i*YC of a Julia set',
                        metavar=('XC', 'YC'))

    parser.add_argument('--contours', type=int,
                        dest='contours', help='number of contour levels', metavar='CONTOURS', default=64)

    parser.add_argument('--theme', type=theme,
                        dest='theme', help='palette number or name (candy, cosmic, fire, ocean, rainbow, violet, volcano)',
                        metavar='THEME', default=int(Theme.COSMIC))

    parser.add_argument('--iterations', type=int,
                        dest='iterations', help='iteration cap per point', metavar='ITERATIONS', default=1024)

    parser.add_argument('--size', type=int,
                        dest='size', help='pixel size of the longest image side', metavar='SIZE', default=2048)

    parser.add_argument('--renderer-dir', type=Path, dest='renderer_dir',
                        help='directory holding the mandelbrot-64/80/128 executables. Default: $FRACTALVIEW_RENDERER_DIR or ./renderer')
    parser.add_argument('--image-dir', type=Path, dest='image_dir',
                        help='directory of published images. Default: $FRACTALVIEW_IMAGE_DIR or ./images')
    parser.add_argument('--base-url', type=str, dest='base_url',
                        help='URL prefix under which the image directory is served')
    parser.add_argument('--work-dir', type=Path, dest='work_dir',
                        help='parent directory for per-render working directories. Default: system temp')
    parser.add_argument('--timeout', type=float, dest='timeout',
                        help='seconds after which a render is abandoned')
    parser.add_argument('--deep-zoom', type=float, dest='deep_zoom',
                        help='span below which the 80-bit renderer is used (default 1e-11)')
    parser.add_argument('--very-deep-zoom', type=float, dest='very_deep_zoom',
                        help='span below which the 128-bit renderer is used (default 1e-15)')

    parser.add_argument('--replace', type=str, dest='replace', metavar='IMAGE',
                        help='id, path or URL of a published image that the new one supersedes')
    parser.add_argument('--dry-run', action='store_true', dest='dry_run',
                        help='print the viewport, precision tier and command without rendering')

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable verbose logging of renderer commands and file handling.')

    return parser


def build_config(opt, parser: ArgumentParser) -> ServiceConfig:
    thresholds = None
    if opt.deep_zoom is not None or opt.very_deep_zoom is not None:
        base = ServiceConfig.from_env().thresholds
        try:
            thresholds = PrecisionThresholds(
                deep_zoom=opt.deep_zoom if opt.deep_zoom is not None else base.deep_zoom,
                very_deep_zoom=opt.very_deep_zoom if opt.very_deep_zoom is not None else base.very_deep_zoom,
            )
        except ValueError as exc:
            parser.error(str(exc))

    try:
        return ServiceConfig.from_env(
            renderer_dir=opt.renderer_dir,
            image_dir=opt.image_dir,
            base_url=opt.base_url,
            work_dir=opt.work_dir,
            timeout=opt.timeout,
            mapping_mode=opt.mapping_mode,
            thresholds=thresholds,
        )
    except ValueError as exc:
        parser.error(str(exc))


def build_params(opt, parser: ArgumentParser) -> RenderParameters:
    kind = FractalKind.JULIA if opt.fractal == 'julia' else FractalKind.MANDELBROT
    if kind is FractalKind.JULIA and opt.julia_constant is None:
        parser.error("--fractal julia requires --julia-constant XC YC.")
    if kind is FractalKind.MANDELBROT and opt.julia_constant is not None:
        warnings.warn("--julia-constant is ignored for Mandelbrot renders.", stacklevel=2)

    return RenderParameters(
        kind=kind,
        contours=opt.contours,
        theme=opt.theme,
        iterations=opt.iterations,
        size=opt.size,
        julia_constant=tuple(opt.julia_constant) if kind is FractalKind.JULIA else None,
    )


def main(argv=None):
    parser = build_parser()
    opt = parser.parse_args(argv)

    set_verbose(opt.verbose)

    if (opt.select is None) != (opt.canvas is None):
        parser.error("--select and --canvas must be given together.")

    config = build_config(opt, parser)
    params = build_params(opt, parser)
    previous = Viewport(*opt.viewport)

    try:
        # a dry run only prints the command, so the binaries need not be installed
        service = RenderService(config, check_executables=not opt.dry_run)
    except RendererConfigError as exc:
        print(f"Renderer setup failed: {exc}", file=sys.stderr)
        return 2

    with service:
        try:
            if opt.select is not None:
                x0, y0, x1, y1 = opt.select
                rect = SelectionRect.from_drag((x0, y0), (x1, y1), tuple(opt.canvas))
                viewport = service.viewport_for_selection(previous, rect)
            else:
                viewport = previous.validate()

            tier = select_tier(viewport, config.thresholds)
            log("Precision tier: %s" % tier.name)
            print("viewport {0!r} {1!r} {2!r} {3!r}".format(*viewport.bounds()))

            if opt.dry_run:
                command = service.orchestrator.command_for(viewport, params, tier)
                print("tier {0}".format(tier.name.lower()))
                print("command {0}".format(" ".join(command)))
                return 0

            if opt.replace:
                artifact = service.replace(opt.replace, viewport, params)
            else:
                artifact = service.render_viewport(viewport, params)
        except RenderError as exc:
            print(f"Render failed: {exc}", file=sys.stderr)
            return 1
        except ValueError as exc:
            parser.error(str(exc))

    print("image {0} {1}x{2}".format(artifact.url, artifact.width, artifact.height))
    return 0


if __name__ == '__main__':
    sys.exit(main())
