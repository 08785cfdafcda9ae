"""Main CLI entry point using Typer."""

import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from ..expressions.evaluator import EvaluationOutcome, evaluate_conditions
from ..expressions.library import build_context
from ..models.conditional_ttl import ConditionalTTL
from ..models.status import ReadyReason, TargetSnapshot
from ..utils.logging import setup_logging
from ..utils.timestamps import format_timestamp, parse_timestamp, utcnow
from .config import Config

logger = logging.getLogger(__name__)

# Create Typer app
app = typer.Typer(
    name="cleaner",
    help="Cleaner - conditional TTL deletion controller for Kubernetes",
    add_completion=False,
)

# Create Rich console for output
console = Console()

# Global config
config: Optional[Config] = None

EXIT_MET = 0
EXIT_WAITING = 1
EXIT_ERROR = 2

WAITING_REASONS = (ReadyReason.WAITING_FOR_CONDITIONS, ReadyReason.NOT_EXPIRED)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output except errors"),
    no_color: bool = typer.Option(False, "--no-color", help="Disable colored output"),
):
    """Cleaner - conditional TTL deletion controller for Kubernetes."""
    global config

    try:
        config = Config.load()
    except ValueError as e:
        console.print(f"✗ Invalid configuration: {e}", style="bold red")
        raise typer.Exit(code=EXIT_ERROR)

    log_level = "ERROR" if quiet else ("DEBUG" if verbose else config.log_level)
    setup_logging(level=log_level, verbose=verbose)

    if no_color:
        console.no_color = True


@app.command()
def version():
    """Show version information."""
    import kubernetes

    from .. import __version__

    console.print(f"cleaner version {__version__}")
    console.print(f"Python {sys.version.split()[0]}")
    console.print(f"kubernetes client {kubernetes.__version__}")


@app.command()
def run(
    namespace: Optional[str] = typer.Option(
        None, "--namespace", "-n", help="Namespace to watch (default: all namespaces or $CLEANER_NAMESPACE)"
    ),
):
    """Start the controller."""
    import kopf

    from ..controller import operator  # noqa: F401  (registers the handlers)

    active = config or Config.load()
    watched = namespace or active.namespace
    console.print(f"Starting cleaner controller ({'namespace ' + watched if watched else 'cluster-wide'})")

    kopf.run(
        clusterwide=watched is None,
        namespaces=[watched] if watched else [],
        standalone=True,
        memo=kopf.Memo(config=active),
    )


def load_document(path: Path) -> Dict:
    """Load a YAML or JSON document holding a mapping."""
    with open(path, "r") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain an object")
    return data


def parse_target_files(values: List[str]) -> Dict[str, Path]:
    """Parse repeated NAME=FILE options."""
    files: Dict[str, Path] = {}
    for value in values:
        name, sep, path = value.partition("=")
        if not sep or not name or not path:
            raise ValueError(f"Invalid target '{value}'. Use NAME=FILE")
        files[name.strip()] = Path(path.strip())
    return files


def print_outcome(outcome: EvaluationOutcome, ttl: ConditionalTTL) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("ConditionalTTL", f"{ttl.namespace}/{ttl.name}")
    table.add_row("Status", outcome.status.value)
    table.add_row("Reason", outcome.reason.value)
    table.add_row("Message", outcome.message)
    console.print(table)


@app.command()
def evaluate(
    manifest: Path = typer.Argument(..., help="ConditionalTTL manifest (YAML or JSON)", exists=True, dir_okay=False),
    target: List[str] = typer.Option(
        [], "--target", "-t", help="Snapshot of a target as NAME=FILE (repeatable)"
    ),
    now: Optional[str] = typer.Option(None, "--now", help="Evaluation time (RFC 3339, default: current time)"),
):
    """Evaluate a ConditionalTTL's conditions offline against snapshot files.

    Exit code is 0 when the conditions are met, 1 while waiting and 2 on
    errors.
    """
    try:
        data = load_document(manifest)
        metadata = data.setdefault("metadata", {})
        evaluated_at = parse_timestamp(now) if now else utcnow()
        # a manifest that was never applied has no creation time; treat it as expired
        check_expiry = bool(metadata.get("creationTimestamp"))
        metadata.setdefault("creationTimestamp", format_timestamp(evaluated_at))
        ttl = ConditionalTTL.from_dict(data)
        files = parse_target_files(target)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"✗ Error: {e}", style="bold red")
        raise typer.Exit(code=EXIT_ERROR)

    if check_expiry and not evaluated_at > ttl.expires_at:
        console.print(f"⏳ Not expired: expires at {format_timestamp(ttl.expires_at)}", style="yellow")
        raise typer.Exit(code=EXIT_WAITING)

    snapshots = []
    for spec_target in ttl.spec.targets:
        if not spec_target.include_when_evaluating:
            continue
        path = files.get(spec_target.name)
        if path is None:
            console.print(f"✗ No snapshot given for target '{spec_target.name}'", style="bold red")
            raise typer.Exit(code=EXIT_ERROR)
        try:
            state = load_document(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            console.print(f"✗ Error reading snapshot of '{spec_target.name}': {e}", style="bold red")
            raise typer.Exit(code=EXIT_ERROR)
        snapshots.append(
            TargetSnapshot(
                name=spec_target.name,
                delete=spec_target.delete,
                include_when_evaluating=True,
                state=state,
            )
        )

    outcome = evaluate_conditions(
        ttl.spec.evaluated_target_names(),
        ttl.spec.conditions,
        build_context(snapshots, evaluated_at),
    )
    print_outcome(outcome, ttl)

    if outcome.met:
        console.print("✓ Conditions met", style="green")
        raise typer.Exit(code=EXIT_MET)
    if outcome.reason in WAITING_REASONS:
        raise typer.Exit(code=EXIT_WAITING)
    raise typer.Exit(code=EXIT_ERROR)


def cli_main():
    """Entry point for console script."""
    app()


if __name__ == "__main__":
    cli_main()
