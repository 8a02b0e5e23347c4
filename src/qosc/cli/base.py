import asyncio
import dataclasses
from typing import Optional

import click

from qosc.config import (
    list_available_configs,
    load_server_config,
    validate_server_config,
)
from qosc.server.client import OscClient
from qosc.server.registry import kill_qosc_servers, list_running_servers
from qosc.server.server import start_server
from qosc.types import CommsError
from qosc.util import (
    DEFAULT_BACKEND,
    DEFAULT_HOST_ADDR,
    DEFAULT_LOGLEVEL,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    format_error_response,
    start_client_log,
)


def print_tree(cmd, prefix="", parent_ctx=None):
    """Print command tree starting from given command."""
    ctx = click.Context(cmd, info_name=cmd.name, parent=parent_ctx)

    # Only print root name if no parent
    if not parent_ctx:
        click.echo(cmd.name)

    for sub in sorted(cmd.list_commands(ctx)):
        sub_cmd = cmd.get_command(ctx, sub)
        click.echo(f"{prefix}└── {sub}")
        if isinstance(sub_cmd, click.Group):
            print_tree(sub_cmd, prefix + "    ", ctx)


def tree_option(f):
    """Add --tree option to command."""

    def callback(ctx, param, value):
        if not value or ctx.resilient_parsing:
            return
        print_tree(ctx.command)
        ctx.exit()

    return click.option(
        "--tree",
        is_flag=True,
        help="Show command tree from this point",
        expose_value=False,
        is_eager=True,
        callback=callback,
    )(f)


def parse_osc_arg(text: str):
    """Command-line token -> OSC argument.

    Integers and floats are converted, "[0,1]" becomes an int list (or a
    float list if any element has a decimal point), anything else stays a
    string.
    """
    text = text.strip()
    if text.startswith("[") and text.endswith("]"):
        inner = [t for t in text[1:-1].split(",") if t.strip()]
        return [parse_osc_arg(t) for t in inner]
    for convert in (int, float):
        try:
            return convert(text)
        except ValueError:
            continue
    return text


@click.group()
@tree_option
def cli():
    """qosc - quantum simulators over Open Sound Control.

    Serves simulator backends to OSC clients over UDP. Each client gets its own
    qubit register, created with /<backend>/init and then driven with gate,
    measure, query and reset messages.
    """
    pass


@cli.command()
@click.option(
    "--config",
    "-c",
    "config_name",
    default=DEFAULT_BACKEND,
    help='Server profile to load (e.g. "gk", "steane") (default: gk)',
)
@click.option("--host-address", "-ha", default=None, help="Override bind address")
@click.option("--port", "-p", default=None, type=int, help="Override UDP port")
@click.option("--backend", "-b", default=None, help="Override backend")
@click.option(
    "--session-timeout",
    "-t",
    default=None,
    type=float,
    help="Override idle session timeout in seconds",
)
@click.option("--seed", "-s", default=None, type=int, help="Override backend seed")
@click.option(
    "--log-to-file/--no-log-to-file",
    "-ltf/",
    default=True,
    help="Enable/disable logging to file (default: enabled)",
)
@click.option(
    "--log-to-stdout/--no-log-to-stdout",
    "-lts/",
    default=True,
    help="Enable/disable console logging (default: enabled)",
)
@click.option(
    "--log-path",
    "-lp",
    default="",
    help="Custom path for log file (default: ~/.qosc/server.log)",
)
@click.option(
    "--clear-prev-log/--no-clear-prev-log",
    "-cl/",
    default=True,
    help="Clear previous log file on startup (default: enabled)",
)
@click.option(
    "--log-level",
    "-ll",
    default=DEFAULT_LOGLEVEL,
    help="Logging level (TRACE, DEBUG, INFO, WARNING, ERROR) (default: INFO)",
)
def server(
    config_name: str,
    host_address: Optional[str],
    port: Optional[int],
    backend: Optional[str],
    session_timeout: Optional[float],
    seed: Optional[int],
    **log_kwargs,
):
    """Start a qosc server.

    Loads the named profile (user ~/.qosc/servers.ini first, then the package
    defaults), applies any overrides given on the command line, and serves until
    interrupted.
    """
    try:
        config = load_server_config(config_name)
    except ValueError as e:
        raise click.ClickException(str(e))

    overrides = {
        "host": host_address,
        "port": port,
        "backend": backend,
        "session_timeout": session_timeout,
        "seed": seed,
    }
    config = dataclasses.replace(
        config, **{k: v for k, v in overrides.items() if v is not None}
    )
    is_valid, msg = validate_server_config(config)
    if not is_valid:
        raise click.ClickException(msg)

    try:
        asyncio.run(start_server(config, **log_kwargs))
    except KeyboardInterrupt:
        click.echo("Server interrupted.")


@cli.command(name="list")
def list_servers():
    """List all registered qosc servers.

    Shows PID, running status, start time, address, backend and profile of each.
    """
    servers = list_running_servers()

    click.echo("\nRunning qosc servers:")
    click.echo("---------------------")

    if not servers:
        click.echo("No servers found")
        click.echo("")
        return

    for server in servers:
        status = "(RUNNING)" if server.get("running", False) else "(NOT RUNNING)"
        click.echo(f"\nPID: {server['pid']} {status}")
        click.echo(f"Started: {server['timestamp']}")
        click.echo(f"Address: udp://{server['host']}:{server['port']}")
        click.echo(f"Backend: {server['backend']}")
        if server.get("config"):
            click.echo(f"Config: {server['config']}")
    click.echo("")


@cli.command()
def kill():
    """Kill all running qosc servers.

    Useful for cleaning up orphaned processes or resolving port conflicts.
    """
    killed = kill_qosc_servers()
    if killed:
        click.echo(f"Killed {killed} qosc server(s)")
    else:
        click.echo("No running qosc servers found")
    click.echo("")


@cli.command()
def configs():
    """List available server profiles."""
    available = list_available_configs()

    click.echo("\nAvailable server configurations:")
    click.echo("--------------------------------")

    if not available:
        click.echo("No server configurations found")
        click.echo("")
        return

    package_configs = [name for name, src in available.items() if src == "package"]
    user_configs = [name for name, src in available.items() if src == "user"]

    if package_configs:
        click.echo("\nPackage defaults:")
        for name in sorted(package_configs):
            click.echo(f"  - {name}")

    if user_configs:
        click.echo("\nUser configurations:")
        for name in sorted(user_configs):
            click.echo(f"  - {name}")
    click.echo("")


@cli.command()
@click.argument("address")
@click.argument("args", nargs=-1)
@click.option("--host-address", "-ha", default=DEFAULT_HOST_ADDR, help="Server address")
@click.option("--port", "-p", default=DEFAULT_PORT, type=int, help="Server port")
@click.option(
    "--timeout",
    "-t",
    default=DEFAULT_TIMEOUT,
    type=float,
    help="Seconds to wait for the reply",
)
@click.option(
    "--verbose", "-v", is_flag=True, default=False, help="Log the exchange to stderr"
)
def send(
    address: str,
    args: tuple,
    host_address: str,
    port: int,
    timeout: float,
    verbose: bool,
):
    """Send one OSC message and print the reply.

    ADDRESS: OSC address, e.g. /gk/init

    ARGS: arguments; ints and floats are converted, [0,1] is a list.

    Each invocation uses a fresh client port, so it is its own client: a
    register created by one `send` is not visible to the next.
    """
    start_client_log(log_to_file=False, log_to_stdout=verbose, log_level="DEBUG")
    osc_args = [parse_osc_arg(a) for a in args]

    async def _send():
        async with OscClient(host_address, port, timeout=timeout) as client:
            return await client.request(address, *osc_args)

    try:
        reply = asyncio.run(_send())
    except CommsError as e:
        raise click.ClickException(str(e))
    except OSError:
        raise click.ClickException(format_error_response())

    shown = [
        f"<blob {list(a)}>" if isinstance(a, bytes) else repr(a) for a in reply.args
    ]
    click.echo(f"{reply.address} {' '.join(shown)}")
    if OscClient.is_error(reply):
        raise SystemExit(1)
