"""
Flow Orchestrator CLI - Main entry point.

Provides commands for:
- Running workflows
- Printing execution plans
- Validating workflow files
- Listing registered node handlers
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click

from .dispatcher import NodeDispatcher
from .errors import ExecutionTimeoutError, ValidationError
from .models import ExecutionOptions, load_workflow
from .observability import setup_logging
from .queue import ExecutionQueue


def _build_dispatcher() -> NodeDispatcher:
    dispatcher = NodeDispatcher()
    dispatcher.register_builtin_handlers()
    dispatcher.discover_entry_points()
    return dispatcher


def _load(workflow_file: str):
    try:
        return load_workflow(workflow_file)
    except Exception as e:
        click.echo(f"Error loading workflow: {e}", err=True)
        sys.exit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("-q", "--quiet", is_flag=True, help="Suppress output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool):
    """Flow Orchestrator - Workflow graph execution."""
    ctx.ensure_object(dict)

    level = None
    if verbose:
        level = "DEBUG"
    elif quiet:
        level = "ERROR"
    setup_logging(level, stream=sys.stderr)

    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet


@cli.command("run")
@click.argument("workflow_file", type=click.Path(exists=True))
@click.option(
    "--input", "-i",
    type=click.Path(exists=True),
    help="Path to input JSON file"
)
@click.option(
    "--output", "-o",
    type=click.Path(),
    help="Path to output JSON file"
)
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True), help="Seconds to wait for the run")
@click.option("--max-tries", type=click.IntRange(min=1), help="Total attempts for the run")
@click.option("--no-retry", is_flag=True, help="Disable whole-run retries")
@click.option("--continue-on-fail", is_flag=True, help="Keep going after a node fails")
@click.option("--max-concurrent", type=click.IntRange(min=1), help="Concurrency limit")
@click.pass_context
def run(
    ctx: click.Context,
    workflow_file: str,
    input: Optional[str],
    output: Optional[str],
    timeout: Optional[float],
    max_tries: Optional[int],
    no_retry: bool,
    continue_on_fail: bool,
    max_concurrent: Optional[int],
):
    """
    Execute a workflow from a JSON or YAML file.

    WORKFLOW_FILE: Path to workflow definition

    Examples:

        # Run a workflow
        flow-orchestrator run ./my-workflow.json

        # With input and output
        flow-orchestrator run ./workflow.json -i input.json -o output.json
    """
    workflow = _load(workflow_file)

    input_data: Dict[str, Any] = {}
    if input:
        with open(input) as f:
            input_data = json.load(f)
        if not isinstance(input_data, dict):
            click.echo("Error: input must be a JSON object", err=True)
            sys.exit(1)

    overrides: Dict[str, Any] = {"continue_on_fail": continue_on_fail}
    if timeout is not None:
        overrides["timeout"] = timeout
    if max_tries is not None:
        overrides["max_tries"] = max_tries
    if no_retry:
        overrides["retry_on_failure"] = False
    options = ExecutionOptions(**overrides)

    quiet = ctx.obj.get("quiet", False)
    if not quiet:
        click.echo(f"Executing workflow: {workflow.name}")
        click.echo(f"Nodes: {len(workflow.nodes)}")

    with ExecutionQueue(dispatcher=_build_dispatcher(), max_concurrent=max_concurrent) as queue:
        try:
            execution = queue.execute_workflow(workflow, input_data, options)
        except ValidationError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        except ExecutionTimeoutError as e:
            click.echo(f"Error: {e}", err=True)
            queue.shutdown(wait=False)
            sys.exit(1)

    # Report
    if not quiet:
        click.echo(f"\nStatus: {execution.status.value}")
        click.echo(f"Duration: {execution.duration_ms or 0:.2f}ms")
        if execution.retry_count:
            click.echo(f"Retries: {execution.retry_count}")
        for node_id in execution.plan:
            node_result = execution.results.get(node_id)
            if node_result is None:
                continue
            status_icon = "✓" if node_result.success else "✗"
            suffix = " (skipped)" if node_result.skipped else ""
            click.echo(f"  {status_icon} {node_result.node_name}{suffix}")

    # Output
    output_data = execution.output_items()
    if output:
        Path(output).write_text(json.dumps(execution.to_dict() | {"output": output_data}, indent=2, default=str))
        if not quiet:
            click.echo(f"\nOutput saved to: {output}")
    elif output_data and not quiet:
        click.echo("\nOutput:")
        click.echo(json.dumps(output_data, indent=2, default=str))

    if execution.is_error:
        click.echo(f"Error: {execution.error}", err=True)
        sys.exit(1)


@cli.command("plan")
@click.argument("workflow_file", type=click.Path(exists=True))
def plan(workflow_file: str):
    """Print the execution order of a workflow."""
    from .planner import plan_workflow

    workflow = _load(workflow_file)
    try:
        order = plan_workflow(workflow)
    except ValidationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for index, node_id in enumerate(order, 1):
        node = workflow.get_node(node_id)
        label = f"{node.name} ({node.type})" if node else node_id
        click.echo(f"{index:3}. {label}")


@cli.command("validate")
@click.argument("workflow_file", type=click.Path(exists=True))
def validate(workflow_file: str):
    """Validate a workflow file."""
    from .validation import validate_workflow

    workflow = _load(workflow_file)
    try:
        order = validate_workflow(workflow, _build_dispatcher())
    except ValidationError as e:
        click.echo("✗ Workflow is invalid:", err=True)
        for error in e.errors:
            click.echo(f"  - {error}", err=True)
        sys.exit(1)

    click.echo(f"✓ Workflow is valid ({len(order)} nodes)")


@cli.command("handlers")
@click.option("--json", "as_json", is_flag=True, help="Print as JSON")
def handlers(as_json: bool):
    """List registered node handlers."""
    definitions = _build_dispatcher().list_handlers()
    if as_json:
        click.echo(json.dumps(definitions, indent=2))
        return

    click.echo(f"Handlers ({len(definitions)}):")
    for definition in definitions:
        description = (definition.get("description") or {}).get("displayName", "")
        click.echo(f"  {definition['type']:45} {description}")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
