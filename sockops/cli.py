# sockops/cli.py - Command-line interface
"""
Command-line interface for the sockops lifecycle manager.
"""

import click
import sys

from sockops.errors import SockopsError
from sockops.utils.logger import setup_logging, get_logger
from sockops.utils.config import Config
from sockops.utils.helpers import check_prerequisites


UNITS = ['sockmap', 'skmsg', 'ktls']

# sockmap owns the map the other units attach to
ENABLE_ORDER = UNITS
DISABLE_ORDER = list(reversed(UNITS))

logger = get_logger(__name__)


def _controller(ctx):
    from sockops.units.controller import SockopsController

    if 'controller' not in ctx.obj:
        ctx.obj['controller'] = SockopsController(ctx.obj['config'])
    return ctx.obj['controller']


def _write_metrics(ctx):
    path = ctx.obj['config'].get('metrics.textfile')
    controller = ctx.obj.get('controller')
    if path and controller is not None:
        try:
            controller.metrics.write_textfile(path)
        except OSError as e:
            logger.warning(f"Failed to write metrics to {path}: {e}")


@click.group()
@click.option('--log-level', default='INFO', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']))
@click.option('--log-file', type=click.Path(), help='Log file path')
@click.option('--config', 'config_file', type=click.Path(exists=True), help='Configuration file')
@click.option('--metrics-textfile', type=click.Path(), help='Write Prometheus metrics to this file on exit')
@click.pass_context
def cli(ctx, log_level, log_file, config_file, metrics_textfile):
    """
    sockops - socket redirection program lifecycle manager

    Compiles, loads and attaches the sockops and sk_msg programs that
    redirect TCP traffic between sockets without a full stack traversal.
    """
    ctx.ensure_object(dict)

    setup_logging(level=log_level, log_file=log_file)

    cfg = Config(config_file)
    if metrics_textfile:
        cfg.set('metrics.textfile', metrics_textfile)

    ctx.obj['config'] = cfg
    ctx.call_on_close(lambda: _write_metrics(ctx))


@cli.command()
@click.argument('unit', type=click.Choice(UNITS + ['all']))
@click.pass_context
def enable(ctx, unit):
    """
    Enable a feature unit.

    Example:
        sockops enable sockmap
        sockops enable all
    """
    controller = _controller(ctx)
    units = ENABLE_ORDER if unit == 'all' else [unit]

    if 'sockmap' in units and not controller.ensure_cgroup_mounted():
        click.echo(f"Error: cgroup2 not available at {controller.mount_gate.cgroup_root}: "
                   f"{controller.mount_gate.error}", err=True)
        sys.exit(1)

    for name in units:
        try:
            controller.enable(name)
        except SockopsError as e:
            click.echo(f"Error: {e}", err=True)
            click.echo(f"Run 'sockops disable {name}' before retrying.", err=True)
            sys.exit(1)
        click.echo(f"{name} enabled")


@cli.command()
@click.argument('unit', type=click.Choice(UNITS + ['all']))
@click.option('--purge-maps', is_flag=True, help='Also remove the kTLS maps (ktls only)')
@click.pass_context
def disable(ctx, unit, purge_maps):
    """
    Disable a feature unit. Safe to run on a disabled or half-enabled unit.

    Example:
        sockops disable skmsg
        sockops disable ktls --purge-maps
    """
    from sockops.exporters.stdout import StdoutExporter

    controller = _controller(ctx)
    exporter = StdoutExporter()
    units = DISABLE_ORDER if unit == 'all' else [unit]

    if purge_maps and 'ktls' not in units:
        click.echo("Warning: --purge-maps only applies to ktls", err=True)

    for name in units:
        if name == 'ktls':
            result = controller.disable(name, purge_maps=purge_maps)
        else:
            result = controller.disable(name)
        exporter.print_result(name, 'disable', result)


@cli.command('mount-cgroup')
@click.argument('path', required=False, default='')
@click.pass_context
def mount_cgroup(ctx, path):
    """
    Check or mount the cgroup2 filesystem (configured root by default).
    """
    controller = _controller(ctx)
    if not controller.ensure_cgroup_mounted(path):
        click.echo(f"Error: {controller.mount_gate.error}", err=True)
        sys.exit(1)
    click.echo(f"cgroup2 mounted at {controller.mount_gate.cgroup_root}")


@cli.command()
@click.option('--no-color', is_flag=True, help='Disable colored output')
@click.pass_context
def status(ctx, no_color):
    """
    Show which units have their pin files in place.
    """
    from sockops.exporters.stdout import StdoutExporter

    StdoutExporter(use_colors=not no_color).print_status(_controller(ctx).status())


@cli.command()
@click.pass_context
def check(ctx):
    """
    Check system prerequisites.

    Verifies:
    - Root privileges
    - Kernel sk_msg support
    - bpftool and clang
    - BPF filesystem
    """
    if check_prerequisites(ctx.obj['config']):
        click.echo("\n✓ All prerequisites met!")
        sys.exit(0)
    else:
        click.echo("\n✗ Some prerequisites are missing")
        sys.exit(1)


@cli.group()
def resolve():
    """
    Look up kernel ids of pinned programs.
    """


@resolve.command('prog')
@click.argument('pin')
@click.pass_context
def resolve_prog(ctx, pin):
    """
    Print the program id of a pinned program.

    Example:
        sockops resolve prog bpf_sockops
    """
    try:
        click.echo(_controller(ctx).primitives.resolver.program_id(pin))
    except SockopsError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@resolve.command('map')
@click.argument('pin')
@click.argument('hint')
@click.pass_context
def resolve_map(ctx, pin, hint):
    """
    Print the id of the first map of PIN whose description contains HINT.

    Example:
        sockops resolve map bpf_sockops sock_ops_map
    """
    try:
        map_id = _controller(ctx).primitives.resolver.map_id(pin, hint)
    except SockopsError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if map_id == 0:
        click.echo(f"No map matching {hint!r}", err=True)
        sys.exit(1)
    click.echo(map_id)


if __name__ == '__main__':
    cli(obj={})
