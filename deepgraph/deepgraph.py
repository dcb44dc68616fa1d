#!/usr/bin/env python3
"""deepgraph - iterative LLM-driven knowledge graph reasoning."""

from pathlib import Path

import typer
from rich.console import Console

__version__ = "0.1.0"

app = typer.Typer(
    name="deepgraph",
    help="Grow a concept graph by steering an LLM toward its structural gaps",
    add_completion=False,
)
console = Console()


@app.command("run")
def run_cmd(
    config: str = typer.Option(None, "--config", "-c", help="Configuration file"),
    iterations: int = typer.Option(None, "--iterations", "-i", min=1, help="Number of reasoning iterations (default 10)"),
    domain: str = typer.Option(None, "--domain", help="Domain to explore (overrides reasoner.domain)"),
    model: str = typer.Option(None, "--model", "-m", help="Model identifier (overrides models.reasoner.model)"),
    provider: str = typer.Option(None, "--provider", help="LLM provider: openai, anthropic or mock"),
    delay_ms: int = typer.Option(None, "--delay-ms", min=0, help="Pause between iterations in milliseconds"),
    output: str = typer.Option(None, "--output", "-o", help="Directory for graph_data/ and graph_visualizations/"),
    visualize: bool = typer.Option(None, "--visualize/--no-visualize", help="Write an HTML view per iteration"),
    summary_out: str = typer.Option(None, "--summary-out", help="Also write the final summary to this file"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Reduce output and disable animations"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug output and interaction logs"),
):
    """Run the generate/extract/merge/analyze/compose loop and summarize the result."""
    from deepgraph.commands.graph import run as run_impl
    run_impl(
        config_path=Path(config) if config else None,
        iterations=iterations,
        domain=domain,
        model=model,
        provider=provider,
        delay_ms=delay_ms,
        output_dir=Path(output) if output else None,
        visualize=visualize,
        summary_out=Path(summary_out) if summary_out else None,
        debug=debug,
        quiet=quiet,
    )


@app.command("inspect")
def inspect_cmd(
    path: str = typer.Argument("graph_data", help="Snapshot file, or a directory to take the latest snapshot from"),
    top: int = typer.Option(5, "--top", "-n", min=1, help="Concepts to list per metric"),
    min_vertices: int = typer.Option(2, "--min-vertices", min=1, help="Smallest graph to analyze"),
    json_out: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show centrality and connectivity metrics of a saved snapshot."""
    from deepgraph.commands.graph import inspect as inspect_impl
    inspect_impl(Path(path), top=top, json_out=json_out, min_vertices=min_vertices)


@app.command()
def version():
    """Show deepgraph version."""
    console.print(f"[bold]deepgraph[/bold] v{__version__}")
    console.print("Iterative LLM-driven knowledge graph reasoning")


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
