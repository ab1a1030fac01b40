"""
Command-line interface for the Mandelbrot generation engine.

The CLI is thin glue around ``GenerationController``: it builds settings
from files, environment and flags, runs generations and reports timings.
It never writes images.
"""

import click
import sys
import json
from pathlib import Path
from typing import Optional, Tuple
import logging
import platform

from .. import __version__
from ..api import GenerationController, benchmark_generation
from ..acceleration.numba_backend import numba_version
from ..acceleration.threading_backend import get_optimal_worker_count
from ..core.tiling import TILING_STRATEGIES
from ..core.view_area import ViewArea
from ..exceptions import MandelbrotError
from ..io.config import ConfigManager, EngineSettings
from ..rendering.coloring import list_palettes

logger = logging.getLogger(__name__)


def _parse_bounds(value: Optional[str]) -> Optional[Tuple[float, float, float, float]]:
    if value is None:
        return None
    try:
        bounds = tuple(float(x.strip()) for x in value.split(','))
    except ValueError:
        raise click.BadParameter("Use 'min_real,min_imag,max_real,max_imag'")
    if len(bounds) != 4:
        raise click.BadParameter("Use 'min_real,min_imag,max_real,max_imag'")
    return bounds


def _build_area(base: ViewArea, bounds, width, height) -> ViewArea:
    min_real, min_imag, max_real, max_imag = bounds or (base.min_real, base.min_imag,
                                                        base.max_real, base.max_imag)
    return ViewArea(min_real, min_imag, max_real, max_imag,
                    width if width is not None else base.pixel_width,
                    height if height is not None else base.pixel_height)


def _fail(ctx, error: Exception) -> None:
    click.echo(f"Error: {error}", err=True)
    if ctx.obj.get('verbose'):
        import traceback
        traceback.print_exc()
    sys.exit(1)


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--config', type=click.Path(exists=True), help='Configuration file path (JSON or YAML)')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--quiet', '-q', is_flag=True, help='Suppress most output')
@click.pass_context
def main(ctx, version, config, verbose, quiet):
    """
    Mandelbrot Generator - tiled, multi-core escape-time computation.
    """
    if quiet:
        logging.basicConfig(level=logging.ERROR)
    elif verbose:
        logging.basicConfig(level=logging.DEBUG,
                            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    else:
        logging.basicConfig(level=logging.WARNING,
                            format='%(levelname)s: %(message)s')

    if version:
        click.echo(f"Mandelbrot Generator v{__version__}")
        click.echo(f"Python: {sys.version.split()[0]}")
        click.echo(f"Numba: {numba_version()}")
        if ctx.invoked_subcommand is None:
            sys.exit(0)

    ctx.ensure_object(dict)
    ctx.obj['config_file'] = config
    ctx.obj['verbose'] = verbose


@main.command()
@click.option('--bounds', type=str, help='Plane bounds: "min_real,min_imag,max_real,max_imag"')
@click.option('--width', '-w', type=int, help='Image width in pixels')
@click.option('--height', '-h', type=int, help='Image height in pixels')
@click.option('--max-iter', type=int, help='Maximum iterations')
@click.option('--escape-radius', type=float, help='Escape radius')
@click.option('--workers', type=int, help='Number of worker threads')
@click.option('--tiling', type=click.Choice(sorted(TILING_STRATEGIES)), help='Tiling strategy')
@click.option('--tile-scale', type=int, help='Tiles per axis for grid tiling')
@click.option('--palette', type=click.Choice(list_palettes()), help='Map iteration counts to colors')
@click.option('--timeout', type=float, help='Cancel the run after this many seconds')
@click.option('--json-output', is_flag=True, help='Print the summary as JSON')
@click.pass_context
def render(ctx, bounds, width, height, max_iter, escape_radius, workers, tiling, tile_scale,
           palette, timeout, json_output):
    """
    Generate one image and report how long it took.
    """
    try:
        settings = ConfigManager().load_settings(
            ctx.obj.get('config_file'),
            max_iterations=max_iter,
            escape_radius=escape_radius,
            pool_size=workers,
            tiling=tiling,
            tile_scale=tile_scale,
            palette=palette,
        )
        area = _build_area(settings.area, _parse_bounds(bounds), width, height)

        with GenerationController(settings) as controller:
            result = controller.generate(area, timeout=timeout)
            run = controller.current_run

        summary = {
            'area': area.to_dict(),
            'tiles': len(run.tiles),
            'workers': controller.scheduler.pool_size,
            'elapsed_seconds': result.elapsed,
            'inside_fraction': result.image.inside_fraction(settings.max_iterations),
            'efficiency': run.report.efficiency,
        }

        if json_output:
            click.echo(json.dumps(summary, indent=2))
        else:
            click.echo(f"Area: {area}")
            click.echo(f"Tiles: {summary['tiles']} on {summary['workers']} workers")
            click.echo(f"Elapsed: {result.elapsed:.3f}s")
            click.echo(f"Inside the set: {summary['inside_fraction'] * 100:.1f}%")

    except (MandelbrotError, OSError) as e:
        _fail(ctx, e)


@main.command()
@click.option('--width', '-w', type=int, default=640, help='Image width in pixels')
@click.option('--height', '-h', type=int, default=480, help='Image height in pixels')
@click.option('--max-iter', type=int, help='Maximum iterations')
@click.option('--scales', type=str, default='1,4,16,32', help='Comma-separated grid scales')
@click.option('--workers', type=str, default='', help='Comma-separated worker counts (default: CPU count)')
@click.pass_context
def benchmark(ctx, width, height, max_iter, scales, workers):
    """
    Compare tiled generation with the single-threaded kernel.
    """
    try:
        settings = ConfigManager().load_settings(ctx.obj.get('config_file'), max_iterations=max_iter)
        base = settings.area
        area = ViewArea(base.min_real, base.min_imag, base.max_real, base.max_imag, width, height)

        try:
            scale_list = [int(s) for s in scales.split(',') if s.strip()]
            pool_list = [int(w) for w in workers.split(',') if w.strip()] or [None]
        except ValueError:
            raise click.BadParameter("scales and workers must be comma-separated integers")

        click.echo(f"Benchmarking {area.pixel_width}x{area.pixel_height}, "
                   f"max_iter={settings.max_iterations}")
        results = benchmark_generation(area, settings, scale_list, pool_list)

        click.echo(f"  Single thread: {results['sequential_time']:.3f}s")
        for run in results['runs']:
            marker = '' if run['identical'] else '  MISMATCH'
            click.echo(f"  {run['tiles']:5d} tiles / {run['workers']:2d} workers: {run['time']:.3f}s "
                       f"speedup {run['speedup']:.2f}x{marker}")

        if not all(run['identical'] for run in results['runs']):
            sys.exit(2)

    except (MandelbrotError, OSError) as e:
        _fail(ctx, e)


@main.command()
@click.option('--output', '-o', type=click.Path(), default='mandelbrot.yaml', help='Output file path')
@click.pass_context
def init_config(ctx, output):
    """
    Create a configuration file holding the default settings.
    """
    try:
        path = ConfigManager().export_config_template(output)
        click.echo(f"Configuration template created: {path}")
    except (MandelbrotError, OSError) as e:
        _fail(ctx, e)


@main.command()
@click.argument('config_file', type=click.Path(exists=True))
@click.pass_context
def validate_config(ctx, config_file):
    """
    Check that a configuration file yields valid settings.
    """
    try:
        settings = ConfigManager().load_settings(config_file, environ={})
    except (MandelbrotError, OSError) as e:
        _fail(ctx, e)
        return

    click.echo(f"Configuration valid: {config_file}")
    for key, value in settings.to_dict().items():
        click.echo(f"  {key}: {value}")


@main.command(name='list-palettes')
def list_palettes_command():
    """List built-in color palettes."""
    for name in list_palettes():
        click.echo(name)


@main.command()
def system_info():
    """Show the execution resources available to the engine."""
    defaults = EngineSettings()
    click.echo(f"Mandelbrot Generator v{__version__}")
    click.echo(f"Python: {platform.python_version()} ({platform.machine()})")
    click.echo(f"Numba: {numba_version()}")
    click.echo(f"Worker threads available: {get_optimal_worker_count()}")
    click.echo(f"Default tiling: {defaults.create_tiling().describe()}")
    click.echo(f"Default max_iterations: {defaults.max_iterations}, escape_radius: {defaults.escape_radius}")


if __name__ == '__main__':
    main()
