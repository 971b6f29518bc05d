import json
import logging
import signal
import sys
import threading

import click
import jsonschema
from rich.console import Console
from rich.table import Table

from netemrouter import init_logging
from netemrouter.config import get_config, set_config
from netemrouter.configuration import Configuration
from netemrouter.controller import RouterStateController
from netemrouter.errors import DuplicateInterfaceError, ForwardingError
from netemrouter.facility import InMemoryFacility, IpRoute2Facility
from netemrouter.objects import InterfaceState, Results

logger = logging.getLogger(__name__)

STATE_STYLES = {
    InterfaceState.ACTIVE.value: "green",
    InterfaceState.FAILED.value: "red",
    InterfaceState.UNCONFIGURED.value: "blue",
}


def _print_results(results: Results, title: str, console: Console):
    if get_config()["summary"] == "json":
        click.echo(json.dumps(results.to_dict(), indent=2))
        return
    table = Table(title=title)
    table.add_column("Interface")
    table.add_column("Role")
    table.add_column("Virtual target")
    table.add_column("State", justify="center")
    table.add_column("Error")
    for r in results.to_dict():
        style = STATE_STYLES.get(r["state"], "yellow")
        table.add_row(
            r["interface"],
            r["role"],
            r["target"] or "",
            f"[{style}]{r['state']}[/{style}]",
            r["error"] or "",
        )
    console.print(table)


def _wait_for_signal():
    """Block until SIGINT or SIGTERM."""
    stop = threading.Event()

    def _stop(signum, frame):
        logger.info("Received signal %s", signum)
        stop.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)
    while not stop.is_set():
        stop.wait(1)


def _router(ctx) -> RouterStateController:
    conf = ctx.obj["conf"]
    if ctx.obj["dry_run"]:
        facility = InMemoryFacility(devices=[i.name for i in conf.interfaces])
    else:
        facility = IpRoute2Facility()
    try:
        return RouterStateController.from_configuration(conf, facility)
    except DuplicateInterfaceError as err:
        raise click.ClickException(str(err)) from err


@click.group()
@click.option(
    "-c",
    "--config",
    "config_file",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML file listing the interfaces to manage.",
)
@click.option("-v", "--verbose", is_flag=True, help="Debug logs.")
@click.option(
    "--dry-run",
    is_flag=True,
    help="Work on an in-memory host instead of the real one.",
)
@click.option("--json", "as_json", is_flag=True, help="Print the summary as JSON.")
@click.pass_context
def cli(ctx, config_file, verbose, dry_run, as_json):
    """Redirect the ingress traffic of the interfaces to ifb devices."""
    # stdout is kept for the summary
    level = logging.DEBUG if verbose else logging.INFO
    init_logging(level=level, console=Console(stderr=True))
    if as_json:
        set_config(summary="json")
    ctx.ensure_object(dict)
    try:
        ctx.obj["conf"] = Configuration.from_file(config_file)
    except jsonschema.ValidationError as err:
        raise click.ClickException(f"Invalid configuration: {err.message}") from err
    ctx.obj["dry_run"] = dry_run


@cli.command()
@click.option(
    "--hold",
    is_flag=True,
    help="Stay in the foreground once every interface is active.",
)
@click.option(
    "--teardown-on-exit",
    is_flag=True,
    help="With --hold, tear everything down when leaving.",
)
@click.pass_context
def apply(ctx, hold, teardown_on_exit):
    """Provision the virtual targets and the redirections."""
    router = _router(ctx)
    console = Console()
    try:
        results = router.apply()
    except ForwardingError as err:
        raise click.ClickException(f"{err}: {err.cause}") from err
    _print_results(results, "Redirections", console)
    if not results.all_active:
        sys.exit(1)
    if hold:
        _wait_for_signal()
        if teardown_on_exit:
            results = router.teardown()
            _print_results(results, "Teardown", console)
            if results.failed():
                sys.exit(1)


@cli.command()
@click.pass_context
def teardown(ctx):
    """Remove the redirections and the virtual targets."""
    router = _router(ctx)
    results = router.teardown(force=True)
    _print_results(results, "Teardown", Console())
    if results.failed():
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx):
    """Check (without changing anything) what is in place."""
    router = _router(ctx)
    results = router.inspect()
    _print_results(results, "Status", Console())


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
