"""Graph reasoning commands for the deepgraph CLI."""

import json
import signal
import sys
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

import typer
from rich import box
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn
from rich.table import Table

from deepgraph.analysis.analyzer import Analyzer
from deepgraph.analysis.concept_store import ConceptStore
from deepgraph.analysis.debug_logger import DebugLogger
from deepgraph.analysis.reasoner import GraphReasoner
from deepgraph.analysis.snapshots import latest_snapshot, load_snapshot
from deepgraph.llm.token_tracker import get_token_tracker
from deepgraph.utils.config_loader import ConfigurationError
from deepgraph.utils.config_loader import load_config as _load_config

console = Console()
# Progress console writes to stderr; auto-detect TTY so interactive shells
# show progress bars, while non-TTY (pipes, CI) get plain lines.
progress_console = Console(file=sys.stderr)

_COLORS = {
    'start': 'bright_white', 'stats': 'bright_white', 'building': 'bright_cyan',
    'generate': 'bright_magenta', 'extract': 'bright_magenta', 'merge': 'bright_green',
    'metrics': 'bright_blue', 'snapshot': 'bright_green', 'render': 'bright_green',
    'compose': 'bright_yellow', 'warn': 'bright_red', 'error': 'bright_red',
    'early_exit': 'bright_yellow', 'cancelled': 'bright_red', 'summary': 'bright_cyan',
    'complete': 'bright_green',
}


def load_config(config_path: Path | None = None) -> dict:
    """Load configuration, exiting with code 2 when it is unusable."""
    try:
        return _load_config(config_path)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(code=2)


def apply_overrides(
    config: dict,
    *,
    iterations: int | None = None,
    domain: str | None = None,
    model: str | None = None,
    provider: str | None = None,
    delay_ms: int | None = None,
    output_dir: Path | None = None,
    visualize: bool | None = None,
) -> dict:
    """Return a copy of ``config`` with CLI options taking precedence over YAML."""
    cfg = dict(config or {})
    reasoner = dict(cfg.get('reasoner') or {})
    output = dict(cfg.get('output') or {})
    models = dict(cfg.get('models') or {})
    profile = dict(models.get('reasoner') or {})

    if iterations is not None:
        reasoner['max_iterations'] = iterations
    if domain and domain != reasoner.get("domain"):
        reasoner["domain"] = domain
        # Configured categories describe the configured domain
        reasoner["categories"] = []
    if delay_ms is not None:
        reasoner['delay_ms'] = delay_ms
    if model:
        profile['model'] = model
    if provider:
        profile['provider'] = provider
    if output_dir is not None:
        output['snapshots_dir'] = str(output_dir / 'graph_data')
        output['visualizations_dir'] = str(output_dir / 'graph_visualizations')
    if visualize is not None:
        output['visualize'] = visualize

    models['reasoner'] = profile
    cfg['models'] = models
    cfg['reasoner'] = reasoner
    cfg['output'] = output
    return cfg


@contextmanager
def _null_ctx():
    yield None


@contextmanager
def _sigint_cancels(cancel_event: threading.Event):
    """Route Ctrl-C to the cancel event so the run stops cleanly."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = signal.getsignal(signal.SIGINT)

    def _handler(signum, frame):
        if cancel_event.is_set():
            # Second Ctrl-C: give up immediately
            signal.signal(signal.SIGINT, previous)
            raise KeyboardInterrupt
        cancel_event.set()
        progress_console.print("[yellow]Cancelling after the current step (Ctrl-C again to abort)...[/yellow]")

    signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _token_table() -> Table | None:
    summary = get_token_tracker().get_summary()
    if not summary['total_usage']['call_count']:
        return None
    table = Table(title="Token Usage", box=box.SIMPLE_HEAD)
    table.add_column("Stage", style="cyan")
    table.add_column("Calls", justify="right")
    table.add_column("Tokens", justify="right", style="green")
    for stage, agg in summary['by_stage'].items():
        table.add_row(stage, str(agg['call_count']), f"{agg['total_tokens']:,}")
    total = summary['total_usage']
    table.add_row("[bold]total[/bold]", str(total['call_count']), f"[bold]{total['total_tokens']:,}[/bold]")
    return table


def run(
    config_path: Path | None = None,
    iterations: int | None = None,
    domain: str | None = None,
    model: str | None = None,
    provider: str | None = None,
    delay_ms: int | None = None,
    output_dir: Path | None = None,
    visualize: bool | None = None,
    summary_out: Path | None = None,
    debug: bool = False,
    quiet: bool = False,
):
    """Run the iterative graph reasoner and print its summary."""
    config = apply_overrides(
        load_config(config_path),
        iterations=iterations, domain=domain, model=model, provider=provider,
        delay_ms=delay_ms, output_dir=output_dir, visualize=visualize,
    )

    token_tracker = get_token_tracker()
    token_tracker.reset()

    debug_logger = None
    if debug:
        debug_logger = DebugLogger(session_id=f"reasoner_{int(time.time())}")

    try:
        reasoner = GraphReasoner(config, debug=debug, debug_logger=debug_logger)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(code=2)

    settings = reasoner.settings
    console.print(Panel.fit(
        f"[bold bright_cyan]Graph Reasoning[/bold bright_cyan]\n"
        f"Domain: [white]{settings.domain}[/white]\n"
        f"Model: [white]{reasoner.llm.provider_name}:{settings.model}[/white] | "
        f"Iterations: [white]{settings.max_iterations}[/white]",
        box=box.ROUNDED
    ))

    event_log: list[str] = []

    def _panel():
        content = "\n".join(event_log[-12:]) if event_log else "Initializing..."
        return Panel(content, title="[bold cyan]Reasoning Progress[/bold cyan]", border_style="cyan")

    use_live = progress_console.is_terminal and not quiet
    if use_live:
        live_ctx = Live(_panel(), console=progress_console, refresh_per_second=8, transient=True)
        progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=Console(file=sys.stderr),
            transient=True,
        )
    else:
        live_ctx = None
        progress = None

    cancel_event = threading.Event()
    try:
        with (live_ctx or _null_ctx()) as live, (progress or _null_ctx()), _sigint_cancels(cancel_event):
            task = progress.add_task("Iteration 0", total=settings.max_iterations) if progress else None

            def log_line(kind: str, msg: str):
                now = datetime.now().strftime('%H:%M:%S')
                color = _COLORS.get(kind, 'white')
                line = f"[{color}]{now}[/{color}] {msg}"
                event_log.append(line)
                if live is not None:
                    live.update(_panel())
                elif not quiet or kind in ('error', 'warn', 'cancelled'):
                    progress_console.print(line)

            def on_progress(info: dict):
                kind = info.get('status', 'building')
                msg = info.get('message', '')
                if kind == 'summary' and 'summary' in info:
                    # Printed in full after the run
                    msg = "Final summary generated"
                log_line(kind, msg)
                if progress is not None and task is not None:
                    it = info.get('iteration') or 0
                    done = it - 1 if kind == 'building' else it
                    progress.update(task, completed=max(0, min(done, settings.max_iterations)),
                                    description=f"Iteration {it}/{settings.max_iterations}")

            result = reasoner.run(progress_callback=on_progress, cancel_event=cancel_event)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        if debug_logger:
            debug_logger.finalize()
        raise typer.Exit(code=2)

    table = Table(title="Iterations", box=box.SIMPLE_HEAD)
    table.add_column("#", justify="right", style="cyan")
    table.add_column("+Concepts", justify="right", style="green")
    table.add_column("+Relationships", justify="right", style="green")
    table.add_column("Concepts", justify="right")
    table.add_column("Relationships", justify="right")
    table.add_column("Status", style="dim")
    for rec in result.records:
        status = f"[red]{rec.failure} failure[/red]" if rec.failure else "ok"
        if rec.rejected_relationships:
            status += f" ({rec.rejected_relationships} dangling dropped)"
        table.add_row(str(rec.iteration), str(rec.concepts_added), str(rec.relationships_added),
                      str(rec.total_concepts), str(rec.total_relationships), status)
    console.print(table)
    console.print(f"\n  [bold]Total:[/bold] {result.num_concepts} concepts, "
                  f"{result.num_relationships} relationships")
    if result.snapshot_paths:
        console.print(f"  [bold]Snapshots:[/bold] {result.snapshot_paths[-1].parent}")

    usage = _token_table()
    if usage is not None:
        console.print(usage)

    if result.summary:
        console.print(Panel(result.summary, title="[bold]Final Summary[/bold]", border_style="green"))
        if summary_out:
            summary_out.parent.mkdir(parents=True, exist_ok=True)
            summary_out.write_text(result.summary)
            console.print(f"[cyan]Summary saved:[/cyan] {summary_out}")
    elif result.cancelled:
        console.print("[yellow]Run cancelled; summary skipped.[/yellow]")
    else:
        console.print(f"[yellow]No summary produced:[/yellow] {result.summary_error}")

    if debug and debug_logger:
        log_path = debug_logger.finalize(summary={
            'iterations': result.iterations_completed,
            'concepts': result.num_concepts,
            'relationships': result.num_relationships,
            'cancelled': result.cancelled,
        })
        console.print(f"\n[cyan]Debug log saved:[/cyan] {log_path}")

    if result.cancelled:
        raise typer.Exit(code=130)

    console.print(Panel.fit(
        "[green]✓[/green] Graph reasoning complete!",
        box=box.ROUNDED,
        style="green"
    ))
    return result


def inspect(
    path: Path,
    top: int = 5,
    json_out: bool = False,
    min_vertices: int = 2,
):
    """Analyze a saved snapshot (a file, or the latest one in a directory)."""
    if path.is_dir():
        found = latest_snapshot(path)
        if found is None:
            console.print(f"[red]No snapshots found in {path}[/red]")
            raise typer.Exit(1)
        path = found
    if not path.exists():
        console.print(f"[red]Snapshot not found: {path}[/red]")
        raise typer.Exit(1)

    try:
        snapshot = load_snapshot(path)
    except (ValueError, json.JSONDecodeError) as e:
        console.print(f"[red]Could not read snapshot:[/red] {e}")
        raise typer.Exit(1)

    store = ConceptStore()
    store.merge(snapshot.concepts, snapshot.relationships)
    analysis = Analyzer(min_vertices=min_vertices, top_k=top).analyze(store)

    if json_out:
        console.print_json(data={
            'snapshot': str(path),
            'iteration': snapshot.iteration,
            'concepts': len(store),
            'relationships': len(store.relationships),
            'pagerank': analysis.pagerank,
            'betweenness': analysis.betweenness,
            'closeness': analysis.closeness,
            'components': analysis.component_count,
            'largest_component': analysis.largest_component_size,
        })
        return analysis

    console.print(Panel.fit(
        f"[bold bright_cyan]Snapshot[/bold bright_cyan] {path.name}\n"
        f"Iteration: [white]{snapshot.iteration}[/white] | "
        f"Concepts: [white]{len(store)}[/white] | Relationships: [white]{len(store.relationships)}[/white]",
        box=box.ROUNDED
    ))
    if analysis.trivial:
        console.print("[yellow]Graph too small for analysis.[/yellow]")
        return analysis

    concepts = store.concepts
    for title, ranked in (("PageRank", analysis.pagerank),
                          ("Betweenness", analysis.betweenness),
                          ("Closeness", analysis.closeness)):
        table = Table(title=title, box=box.SIMPLE_HEAD)
        table.add_column("Concept", style="cyan")
        table.add_column("Score", justify="right", style="green")
        for cid, score in ranked:
            table.add_row(concepts[cid].name, f"{score:.4f}")
        console.print(table)
    console.print(f"  [bold]Components:[/bold] {analysis.component_count} "
                  f"(largest {analysis.largest_component_size})")
    return analysis
