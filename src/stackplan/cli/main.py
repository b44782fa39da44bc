"""CLI entrypoint for stackplan."""

import json
import logging
import signal
from collections.abc import Iterator
from contextlib import contextmanager
from types import FrameType

import click
import questionary
from rich.table import Table

from stackplan.cli.errors import report_error
from stackplan.cli.ui import console, report
from stackplan.core.graph import DependencyGraph
from stackplan.core.settings import StackPlanSettings, get_settings
from stackplan.core.stack import build_stack
from stackplan.core.state import load_state, save_state
from stackplan.core.synthesizer import Synthesizer
from stackplan.providers import InMemoryProvider, Provider

logger = logging.getLogger(__name__)


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Level for library log messages.",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str) -> None:
    """Plan, deploy and destroy the container service stack.

    Args:
        ctx: Click context for the command invocation.
        log_level: Root logging level.
    """
    logging.basicConfig(level=getattr(logging, log_level.upper()))
    ctx.obj = get_settings()


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the plan as JSON.")
@click.pass_obj
def plan(settings: StackPlanSettings, as_json: bool) -> None:
    """Print the synthesis order of the declared stack."""
    try:
        graph = declare(settings)
        order = graph.topological_order()
    except Exception as exc:  # noqa: BLE001
        report_error(exc)
        raise SystemExit(1) from exc

    if as_json:
        rows = [
            {
                "id": resource_id,
                "kind": str(graph.get(resource_id).kind),
                "depends_on": sorted(graph.dependencies_of(resource_id)),
            }
            for resource_id in order
        ]
        click.echo(json.dumps(rows, indent=2))
        return

    table = Table(title="Synthesis order", show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Resource", style="white", no_wrap=True)
    table.add_column("Kind", style="bright_white", no_wrap=True)
    table.add_column("Depends on", style="white")
    for position, resource_id in enumerate(order, start=1):
        node = graph.get(resource_id)
        dependencies = ", ".join(sorted(graph.dependencies_of(resource_id))) or "-"
        table.add_row(str(position), resource_id, str(node.kind), dependencies)
    console.print(table)


@cli.command()
@click.option(
    "--dry-run",
    is_flag=True,
    help="Synthesize against the in-memory provider without touching AWS.",
)
@click.pass_obj
def deploy(settings: StackPlanSettings, dry_run: bool) -> None:
    """Create every resource of the stack in dependency order."""
    try:
        graph = declare(settings)
        if dry_run:
            outputs = Synthesizer(InMemoryProvider(), settings.retry, report).synthesize(graph)
            console.print(f"[green]Dry run synthesized {len(outputs)} resources.[/green]")
            return

        state = load_state(settings.state_file)
        if state.order:
            console.print(
                f"[yellow]State file {settings.state_file} already records "
                f"{len(state.order)} resources.[/yellow]"
            )
            console.print("[dim]Run `stackplan destroy` before deploying again.[/dim]")
            raise SystemExit(1)

        synthesizer = Synthesizer(aws_provider(settings), settings.retry, report)
        with interrupt_flag() as interrupted:
            outputs = synthesizer.synthesize(
                graph,
                state=state,
                should_continue=lambda: not interrupted[0],
                checkpoint=lambda snapshot: save_state(snapshot, settings.state_file),
            )
    except SystemExit:
        raise
    except Exception as exc:  # noqa: BLE001
        report_error(exc)
        raise SystemExit(1) from exc

    console.print(f"[green]Deployed {len(outputs)} resources.[/green]")
    dns_name = outputs.get("alb", {}).get("dns_name")
    if dns_name:
        console.print(f"Load balancer: http://{dns_name}")


@cli.command()
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt.")
@click.pass_obj
def destroy(settings: StackPlanSettings, yes: bool) -> None:
    """Delete the resources recorded in the state file, newest first."""
    try:
        state = load_state(settings.state_file)
    except Exception as exc:  # noqa: BLE001
        report_error(exc)
        raise SystemExit(1) from exc

    if not state.order:
        console.print("[dim]Nothing to destroy.[/dim]")
        return

    if not yes:
        confirm = questionary.confirm(
            f"Destroy {len(state.order)} resources recorded in {settings.state_file}?",
            default=False,
        ).ask()
        if not confirm:
            console.print("[dim]Destroy cancelled.[/dim]")
            return

    try:
        destroyed = Synthesizer(aws_provider(settings), settings.retry, report).destroy(
            state,
            checkpoint=lambda snapshot: save_state(snapshot, settings.state_file),
        )
    except Exception as exc:  # noqa: BLE001
        save_state(state, settings.state_file)
        report_error(exc)
        raise SystemExit(1) from exc

    save_state(state, settings.state_file)
    console.print(f"[green]Destroyed {len(destroyed)} resources.[/green]")


def declare(settings: StackPlanSettings) -> DependencyGraph:
    """Declare the stack into a fresh graph."""
    graph = DependencyGraph()
    build_stack(graph, settings)
    return graph


def aws_provider(settings: StackPlanSettings) -> Provider:
    """Create the boto3-backed provider for the configured account."""
    from stackplan.providers.aws import AwsProvider, create_session, get_identity

    session = create_session(settings.aws)
    identity = get_identity(session)
    console.print(f"[dim]AWS account {identity['Account']} ({settings.aws.region})[/dim]")
    return AwsProvider(session, settings.service.project_name, report)


@contextmanager
def interrupt_flag() -> Iterator[list[bool]]:
    """Turn Ctrl-C into a flag checked between resources.

    A second Ctrl-C falls through to the default handler.
    """
    interrupted = [False]
    previous = signal.getsignal(signal.SIGINT)

    def handle(signum: int, frame: FrameType | None) -> None:
        interrupted[0] = True
        logger.info("Interrupt received (signal %d)", signum)
        console.print("[yellow]Stopping after the current resource...[/yellow]")
        signal.signal(signal.SIGINT, signal.default_int_handler)

    signal.signal(signal.SIGINT, handle)
    try:
        yield interrupted
    finally:
        signal.signal(signal.SIGINT, previous)


def main() -> None:
    """Run the CLI."""
    cli()
