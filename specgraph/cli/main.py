"""
SpecGraph CLI - compile feature files, generate step code, diagnose drift.
"""

import logging
import os
import sys

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.markup import escape

from specgraph import __version__
from specgraph.codegen.generator import default_output_name, generate_steps, write_generated
from specgraph.codegen.staleness import check_against_feature
from specgraph.core.config import SpecGraphConfig
from specgraph.core.errors import AmbiguousMatch, SelectorResolutionError, SpecGraphError
from specgraph.graph.builder import GraphBuilder
from specgraph.graph.model import DeterministicInstructions, GraphAuthorship
from specgraph.graph.persistence import GraphStore
from specgraph.layers.resolve.resolver import SelectorResolver
from specgraph.layers.sense.html_snapshot import HtmlDocument
from specgraph.reporters.execution_recorder import ExecutionRecorder

console = Console()

CONFIDENCE_COLORS = {"exact": "green", "high": "green", "medium": "yellow", "low": "red"}


def _fail(error: Exception) -> None:
    console.print(f"[red]Error: {escape(str(error))}[/red]")
    sys.exit(1)


def _read(path: str) -> str:
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def _resolve_graph_id(store: GraphStore, prefix: str) -> str:
    """Expand a unique id prefix to the full graph id."""
    if store.exists(prefix):
        return prefix
    matches = [graph_id for graph_id in store.list_ids() if graph_id.startswith(prefix)]
    if len(matches) == 1:
        return matches[0]
    if matches:
        raise click.BadParameter(f"prefix {prefix!r} matches {len(matches)} graphs", param_hint="GRAPH_ID")
    return prefix


@click.group()
@click.version_option(version=__version__, prog_name="specgraph")
@click.option("--store", "store_dir", default=None, help="Graph store directory (default: $SPECGRAPH_STORE_DIR or ./specgraph_store)")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, store_dir, verbose):
    """SpecGraph - compile Gherkin specifications into action graphs

    Graphs are stored by content hash and turned into pytest-bdd step
    definitions that resolve selectors at run time.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    config = SpecGraphConfig.from_env(store_dir=store_dir)
    ctx.obj = {"config": config, "store": GraphStore(config.store_dir)}


@cli.command("compile")
@click.argument("feature", type=click.Path(exists=True, dir_okay=False))
@click.option("--out", "out_dir", default=None, help="Directory for generated step modules")
@click.option("--authorship", default="human", type=click.Choice(["human", "machine"]),
              help="Who wrote the specification")
@click.option("--generate/--no-generate", default=True, help="Also write step definitions")
@click.pass_context
def compile_feature(ctx, feature, out_dir, authorship, generate):
    """
    Compile every scenario of FEATURE and store the graphs.

    \b
    Examples:

        specgraph compile features/login.feature

        specgraph --store ./graphs compile login.feature --out tests/steps
    """
    config: SpecGraphConfig = ctx.obj["config"]
    store: GraphStore = ctx.obj["store"]
    out_dir = out_dir or config.generated_dir

    try:
        graphs = GraphBuilder().build_feature(_read(feature), authorship=GraphAuthorship(authorship))
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Scenario", style="bold")
        table.add_column("Graph", style="dim")
        table.add_column("Nodes", justify="right")
        table.add_column("Review", justify="right")
        table.add_column("Step module")

        for graph in graphs:
            store.save(graph)
            status = "-"
            if generate:
                path = os.path.join(out_dir, default_output_name(graph))
                written = write_generated(path, generate_steps(graph))
                status = f"{path} ({'written' if written else 'unchanged'})"
            flagged = len(graph.review_nodes)
            table.add_row(
                graph.metadata.scenario_name or "",
                graph.id[:12],
                str(len(graph.nodes)),
                f"[yellow]{flagged}[/yellow]" if flagged else "0",
                status,
            )
    except SpecGraphError as e:
        _fail(e)

    console.print(table)
    console.print(f"[dim]Store: {store.root}[/dim]")


@cli.command()
@click.argument("graph_id")
@click.option("--out", "out_dir", default=None, help="Directory for generated step modules")
@click.pass_context
def generate(ctx, graph_id, out_dir):
    """Write step definitions for a stored graph."""
    config: SpecGraphConfig = ctx.obj["config"]
    store: GraphStore = ctx.obj["store"]
    try:
        graph = store.load_required(_resolve_graph_id(store, graph_id))
    except SpecGraphError as e:
        _fail(e)
    path = os.path.join(out_dir or config.generated_dir, default_output_name(graph))
    written = write_generated(path, generate_steps(graph))
    console.print(f"{path} [dim]({'written' if written else 'unchanged'})[/dim]")


@cli.command()
@click.argument("graph_id")
@click.pass_context
def show(ctx, graph_id):
    """Show the nodes of a stored graph."""
    store: GraphStore = ctx.obj["store"]
    try:
        graph = store.load_required(_resolve_graph_id(store, graph_id))
    except SpecGraphError as e:
        _fail(e)

    meta = graph.metadata
    console.print(Panel.fit(
        f"[bold]{meta.scenario_name or '(unnamed scenario)'}[/bold]\n"
        f"[dim]graph {graph.id}\nspec  {graph.spec_hash}\n"
        f"{meta.authorship.value} · {meta.created_at}[/dim]",
        border_style="blue",
    ))
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Node", style="dim")
    table.add_column("Type", style="green")
    table.add_column("Step")
    table.add_column("Target / value", style="yellow")
    for node in graph.nodes:
        detail = []
        ins = node.instructions
        if node.selector_ref is not None:
            detail.append(", ".join(f"{k}={v}" for k, v in node.selector_ref.hints().items()))
        if isinstance(ins, DeterministicInstructions):
            for label, value in (("selector", ins.selector), ("url", ins.url),
                                 ("env", ins.env_var), ("value", ins.value), ("seconds", ins.seconds)):
                if value is not None and not (label == "value" and ins.env_var):
                    detail.append(f"{label}={value}")
        else:
            detail.append(f"{ins.ref_kind}={ins.key or '?'}")
        step = escape(f"{node.step.keyword} {node.step.text}")
        if node.needs_review:
            step += " [red](review)[/red]"
        table.add_row(node.id, node.type.value, step, escape("; ".join(detail)))
    console.print(table)


@cli.command()
@click.argument("feature", type=click.Path(exists=True, dir_okay=False))
@click.argument("generated", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
def check(feature, generated):
    """Fail if any GENERATED step module is stale relative to FEATURE."""
    spec_text = _read(feature)
    try:
        graphs = GraphBuilder().build_feature(spec_text)
    except SpecGraphError as e:
        _fail(e)

    stale = 0
    for path in generated:
        report = check_against_feature(_read(path), spec_text, graphs)
        if report.fresh:
            console.print(f"[green]fresh[/green]  {path}")
        else:
            stale += 1
            console.print(f"[red]stale[/red]  {path}")
            for reason in report.reasons:
                console.print(f"       [dim]{reason}[/dim]")
    if stale:
        console.print(f"\n[bold red]{stale} stale module(s). Run 'specgraph compile {feature}'.[/bold red]")
        sys.exit(1)


@cli.command()
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False))
@click.option("--text", "text_hint", default=None, help="Visible or accessible text")
@click.option("--role", "role_hint", default=None, help="Accessibility role")
@click.option("--type", "type_hint", default=None, help="Element type (input, button, a, ...)")
@click.option("--structural", "structural_hint", default=None, help="e.g. 'nth=2' or 'name=email'")
@click.option("--selector", "explicit_selector", default=None, help="Explicit CSS selector")
@click.pass_context
def resolve(ctx, snapshot, text_hint, role_hint, type_hint, structural_hint, explicit_selector):
    """Resolve one hint bundle against a saved HTML SNAPSHOT."""
    config: SpecGraphConfig = ctx.obj["config"]
    document = HtmlDocument.from_file(snapshot)
    try:
        resolution = SelectorResolver(config.strategy_order).resolve(
            document,
            explicit_selector=explicit_selector,
            text_hint=text_hint,
            role_hint=role_hint,
            type_hint=type_hint,
            structural_hint=structural_hint,
        )
    except SpecGraphError as e:
        _fail(e)

    color = CONFIDENCE_COLORS[resolution.confidence.value]
    console.print(f"[bold]{escape(resolution.locator)}[/bold]")
    console.print(f"[{color}]{resolution.confidence.value}[/{color}] via {resolution.strategy}")
    element = resolution.element
    console.print(f"[dim]<{element.tag}> {escape(element.text or element.name)}[/dim]")


@cli.command()
@click.argument("graph_id")
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def drift(ctx, graph_id, snapshot):
    """Resolve every targeted node of a stored graph against SNAPSHOT."""
    config: SpecGraphConfig = ctx.obj["config"]
    store: GraphStore = ctx.obj["store"]
    try:
        graph = store.load_required(_resolve_graph_id(store, graph_id))
    except SpecGraphError as e:
        _fail(e)

    document = HtmlDocument.from_file(snapshot)
    resolver = SelectorResolver(config.strategy_order)
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Node", style="dim")
    table.add_column("Step")
    table.add_column("Locator", style="yellow")
    table.add_column("Result")

    failures = 0
    for node in graph.nodes:
        ins = node.instructions
        explicit = ins.selector if isinstance(ins, DeterministicInstructions) else None
        if node.selector_ref is None and not explicit:
            continue
        hints = node.selector_ref.hints() if node.selector_ref is not None else {}
        try:
            resolution = resolver.resolve(
                document, explicit_selector=explicit, node_id=node.id, step_text=node.step.text, **hints
            )
        except SelectorResolutionError as e:
            failures += 1
            counts = ", ".join(f"{a.strategy}={a.candidate_count}" for a in e.attempts if not a.skipped)
            label = "ambiguous" if isinstance(e, AmbiguousMatch) else "unresolved"
            table.add_row(node.id, escape(node.step.text), "-", f"[red]{label}[/red] [dim]{counts}[/dim]")
            continue
        color = CONFIDENCE_COLORS[resolution.confidence.value]
        table.add_row(
            node.id,
            escape(node.step.text),
            escape(resolution.locator),
            f"[{color}]{resolution.confidence.value}[/{color}] via {resolution.strategy}",
        )

    console.print(table)
    if failures:
        console.print(f"[bold red]{failures} node(s) no longer resolve.[/bold red]")
        sys.exit(1)
    console.print("[bold green]All targeted nodes resolve.[/bold green]")


@cli.command()
@click.argument("graph_id")
@click.argument("run_id", required=False)
@click.option("--report-dir", default=None, help="Execution trace directory")
@click.pass_context
def trace(ctx, graph_id, run_id, report_dir):
    """List the runs of a graph, or show one run's node outcomes."""
    config: SpecGraphConfig = ctx.obj["config"]
    report_dir = report_dir or config.report_dir
    graph_dir = os.path.join(report_dir, graph_id)
    if run_id is None:
        runs = []
        if os.path.isdir(graph_dir):
            runs = sorted(n[:-len(".jsonl")] for n in os.listdir(graph_dir) if n.endswith(".jsonl"))
        if not runs:
            console.print(f"[yellow]No runs recorded for {graph_id}[/yellow]")
            return
        for run in runs:
            console.print(run)
        return

    records = ExecutionRecorder(report_dir, run_id).load_run(graph_id)
    if not records:
        console.print(f"[yellow]No records for run {run_id}[/yellow]")
        return
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Node", style="dim")
    table.add_column("Step")
    table.add_column("Outcome")
    table.add_column("Locator", style="yellow")
    table.add_column("ms", justify="right")
    for record in records:
        color = "green" if record.outcome == "success" else "red"
        table.add_row(
            record.node_id,
            escape(record.step_text),
            f"[{color}]{record.outcome}[/{color}]",
            escape(record.locator or "-"),
            str(record.duration_ms),
        )
    console.print(table)


def main():
    cli()


if __name__ == "__main__":
    main()
