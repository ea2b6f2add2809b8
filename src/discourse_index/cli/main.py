"""
Discourse Index CLI - scan notes and inspect the argument graph
"""

from __future__ import annotations

import logging
import sys
from typing import NoReturn

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..errors import DiscourseIndexError
from ..service import DiscourseIndex
from ..settings import DiscourseIndexSettings, settings

console = Console()

_STRENGTH_STYLE = {
    "supported": "green",
    "contested": "yellow",
    "challenged": "magenta",
    "unsupported": "red",
    "unknown": "dim",
}


def _configure_logging(level: str | None = None) -> None:
    level = (level or settings.log_level or "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _fmt(value: float) -> str:
    return f"{value:g}"


def _fail(message: str) -> NoReturn:
    console.print(f"[red]{message}[/red]")
    sys.exit(1)


def get_index(ctx: click.Context) -> DiscourseIndex:
    """Build the index from the group options on first use."""
    obj = ctx.ensure_object(dict)
    if "index" not in obj:
        try:
            obj["index"] = DiscourseIndex.from_settings(obj["settings"])
        except DiscourseIndexError as e:
            raise click.ClickException(str(e)) from e
        ctx.call_on_close(obj["index"].close)
    return obj["index"]


@click.group()
@click.option("--db", "db_path", default=None, help="Index database path")
@click.option("--registry", "registry_path", default=None, help="JSON type registry overrides")
@click.option("--path", "search_paths", multiple=True, help="Directory or file to index (repeatable)")
@click.option("--log-level", default=None, help="Logging level")
@click.pass_context
def cli(ctx, db_path, registry_path, search_paths, log_level):
    """Discourse Index - typed notes as a queryable argument graph"""
    _configure_logging(log_level)
    update: dict = {}
    if db_path:
        update["db_path"] = db_path
    if registry_path:
        update["registry_path"] = registry_path
    if search_paths:
        update["search_paths"] = list(search_paths)
    cfg: DiscourseIndexSettings = settings.model_copy(update=update)
    ctx.ensure_object(dict)["settings"] = cfg


@cli.command()
@click.option("--full", is_flag=True, help="Re-scan every document and rebuild from scratch")
@click.pass_context
def scan(ctx, full):
    """Index documents under the search paths"""
    index = get_index(ctx)
    report = index.full_rebuild() if full else index.smart_rebuild()

    table = Table(title="Full rebuild" if full else "Smart rebuild")
    table.add_column("Scanned", style="green")
    table.add_column("Skipped", style="dim")
    table.add_column("Failed", style="red")
    table.add_column("Purged", style="yellow")
    table.add_column("Nodes", style="cyan")
    table.add_column("Relations", style="cyan")
    table.add_column("Time", style="white")
    table.add_row(
        str(len(report.scanned)),
        str(len(report.skipped)),
        str(len(report.failed)),
        str(len(report.purged)),
        str(report.nodes),
        str(report.relations),
        f"{report.elapsed_ms:.0f} ms",
    )
    console.print(table)
    for reason in report.failed.values():
        console.print(f"[red]✗ {reason}[/red]")


@cli.command()
@click.argument("node_id")
@click.pass_context
def show(ctx, node_id):
    """Show a node with its attributes and relations"""
    index = get_index(ctx)
    analysis = index.analyze_node(node_id)
    if analysis is None:
        _fail(f"No node with id {node_id}")
    node = analysis.node

    header = f"[bold]{node.title}[/bold]\n{node.type} · {node.id}\n{node.file}"
    if node.location.outline:
        header += "\n" + " / ".join(node.location.outline)
    if analysis.badge is not None:
        header += f"\n[cyan]{analysis.badge.attribute}: {_fmt(analysis.badge.value)}[/cyan]"
    console.print(Panel(header, style="bold"))

    if analysis.attributes:
        attrs = Table(title="Attributes")
        attrs.add_column("Attribute", style="magenta")
        attrs.add_column("Value", style="cyan", justify="right")
        for name, value in analysis.attributes.items():
            attrs.add_row(name, _fmt(value))
        console.print(attrs)

    rels = Table(title="Relations")
    rels.add_column("Relation", style="blue")
    rels.add_column("Node", style="white")
    rels.add_column("Type", style="magenta")
    rels.add_column("Note", style="dim", overflow="fold")
    registry = index.registry
    for direction, neighbors in (("out", analysis.relations.outgoing), ("in", analysis.relations.incoming)):
        for nb in neighbors:
            other = nb.relation.target_id if direction == "out" else nb.relation.source_id
            label = registry.relation_label(nb.relation.rel_type, direction)
            if nb.node is None:
                rels.add_row(label, f"[red]{other} (missing)[/red]", "", nb.relation.note or "")
            else:
                rels.add_row(label, f"{nb.node.title} ({other})", nb.node.type, nb.relation.note or "")
    console.print(rels)

    if analysis.gaps:
        console.print("[yellow]Gaps: " + ", ".join(g.value for g in analysis.gaps) + "[/yellow]")
    for a in analysis.answers:
        style = _STRENGTH_STYLE[a.strength.value]
        console.print(f"  [{style}]{a.strength.value:<11}[/{style}] {a.claim.title} ({a.claim.id})")


@cli.command()
@click.argument("text")
@click.option("--type", "node_type", default=None, help="Filter by node type")
@click.pass_context
def find(ctx, text, node_type):
    """Find nodes whose title contains TEXT"""
    index = get_index(ctx)
    nodes = index.find_by_title(text)
    if node_type:
        nodes = [n for n in nodes if n.type == node_type]
    if not nodes:
        console.print("[yellow]No matching nodes[/yellow]")
        return

    table = Table(title=f"Nodes matching '{text}'")
    table.add_column("ID", style="cyan")
    table.add_column("Type", style="magenta", width=10)
    table.add_column("Title", style="white", overflow="fold")
    table.add_column("Document", style="dim", overflow="fold")
    for n in nodes:
        table.add_row(n.id, n.type, n.title, n.file)
    console.print(table)


@cli.command()
@click.argument("claim_id")
@click.pass_context
def gaps(ctx, claim_id):
    """List argument gaps of a claim"""
    index = get_index(ctx)
    if index.get(claim_id) is None:
        _fail(f"No node with id {claim_id}")
    found = index.argument_gaps(claim_id)
    if not found:
        console.print("[green]✓ No gaps[/green]")
        return
    for gap in found:
        console.print(f"[yellow]• {gap.value}[/yellow]")


@cli.command()
@click.argument("question_id")
@click.pass_context
def answers(ctx, question_id):
    """Rank the claims answering a question"""
    index = get_index(ctx)
    if index.get(question_id) is None:
        _fail(f"No node with id {question_id}")
    assessments = index.answer_analysis(question_id)
    if not assessments:
        console.print("[yellow]No answers yet[/yellow]")
        return

    table = Table(title=f"Answers to {question_id}")
    table.add_column("Strength", width=12)
    table.add_column("Claim", style="white", overflow="fold")
    table.add_column("+", style="green", justify="right")
    table.add_column("-", style="red", justify="right")
    table.add_column("Gaps", style="yellow")
    for a in assessments:
        style = _STRENGTH_STYLE[a.strength.value]
        table.add_row(
            f"[{style}]{a.strength.value}[/{style}]",
            f"{a.claim.title} ({a.claim.id})",
            str(a.supporting),
            str(a.opposing),
            ", ".join(g.value for g in a.gaps),
        )
    console.print(table)


@cli.command()
@click.pass_context
def anomalies(ctx):
    """List relations whose endpoint types break the canonical patterns"""
    found = get_index(ctx).find_anomalies()
    if not found:
        console.print("[green]✓ No anomalies[/green]")
        return

    table = Table(title="Anomalies")
    table.add_column("Relation", style="blue")
    table.add_column("Source", style="white")
    table.add_column("Target", style="white")
    table.add_column("Expected", style="dim")
    for a in found:
        src = f"{a.relation.source_id} ({a.source_type})"
        dst = f"{a.relation.target_id} ({a.target_type})"
        if a.source_mismatch:
            src = f"[red]{src}[/red]"
        if a.target_mismatch:
            dst = f"[red]{dst}[/red]"
        expected = f"{'|'.join(sorted(a.expected_sources))} -> {'|'.join(sorted(a.expected_targets))}"
        table.add_row(a.relation.rel_type, src, dst, expected)
    console.print(table)


@cli.command()
@click.pass_context
def validate(ctx):
    """Report dangling relations, orphans and missing documents"""
    issues = get_index(ctx).validate()
    if not issues:
        console.print("[green]✓ Graph is consistent[/green]")
        return

    table = Table(title=f"{len(issues)} issue(s)")
    table.add_column("Kind", style="yellow", width=16)
    table.add_column("Node", style="cyan")
    table.add_column("Message", style="white", overflow="fold")
    for issue in issues:
        table.add_row(issue.kind.value, issue.node_id, issue.message)
    console.print(table)


@cli.command()
@click.pass_context
def stats(ctx):
    """Show index statistics"""
    s = get_index(ctx).stats()
    console.print(
        Panel.fit(
            f"[bold cyan]Nodes: {s.nodes:,}  Relations: {s.relations:,}  Documents: {s.documents:,}[/bold cyan]"
        )
    )

    type_table = Table(title="By Node Type")
    type_table.add_column("Type", style="magenta")
    type_table.add_column("Count", style="cyan", justify="right")
    for name, count in sorted(s.node_types.items()):
        type_table.add_row(name, f"{count:,}")
    console.print(type_table)

    rel_table = Table(title="By Relation Type")
    rel_table.add_column("Relation", style="blue")
    rel_table.add_column("Count", style="cyan", justify="right")
    for name, count in sorted(s.relation_types.items()):
        rel_table.add_row(name, f"{count:,}")
    console.print(rel_table)


@cli.command()
def version():
    """Print the package version"""
    from discourse_index import __version__

    console.print(__version__)


if __name__ == "__main__":
    cli()
