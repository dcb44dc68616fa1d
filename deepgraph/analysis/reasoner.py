"""Iterative graph reasoner: generate, extract, merge, analyze, snapshot, compose."""

from __future__ import annotations

import copy
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from deepgraph.analysis.analyzer import AnalysisResult, Analyzer
from deepgraph.analysis.composer import PromptComposer, build_seed_prompt
from deepgraph.analysis.concept_store import ConceptStore
from deepgraph.analysis.extractor import Extraction, Extractor
from deepgraph.analysis.snapshots import SnapshotWriter
from deepgraph.llm.client import LLMClient, OracleError
from deepgraph.utils.config_loader import ReasonerSettings
from deepgraph.visualization.graph_viz import generate_iteration_visualization


class ReasonerState(Enum):
    INIT = "init"
    GENERATE = "generate"
    EXTRACT = "extract"
    MERGE = "merge"
    ANALYZE = "analyze"
    SNAPSHOT = "snapshot"
    COMPOSE = "compose"
    SUMMARIZE = "summarize"
    DONE = "done"


@dataclass(frozen=True)
class Exploration:
    """Free-text answer of the GENERATE stage, handed to EXTRACT."""
    iteration: int
    prompt: str
    text: str


@dataclass
class IterationRecord:
    """What one cycle did."""
    iteration: int
    prompt: str
    concepts_added: int = 0
    relationships_added: int = 0
    rejected_relationships: int = 0
    failure: str | None = None  # oracle, parse
    error: str | None = None
    raw_response: str | None = None
    snapshot_path: Path | None = None
    visualization_path: Path | None = None
    total_concepts: int = 0
    total_relationships: int = 0

    @property
    def items_added(self) -> int:
        return self.concepts_added + self.relationships_added


@dataclass
class ReasonerResult:
    summary: str | None
    state: ReasonerState
    iterations_completed: int
    records: list[IterationRecord] = field(default_factory=list)
    snapshot_paths: list[Path] = field(default_factory=list)
    cancelled: bool = False
    stopped_early: bool = False
    num_concepts: int = 0
    num_relationships: int = 0
    summary_error: str | None = None
    duration_seconds: float = 0.0


StopPredicate = Callable[[list[IterationRecord]], bool]


def marginal_growth_stop(min_new: int, patience: int = 1) -> StopPredicate:
    """Stop once ``patience`` consecutive successful cycles each added fewer than ``min_new`` items.

    Failed cycles are skipped rather than counted as low growth.
    """
    def predicate(records: list[IterationRecord]) -> bool:
        successful = [r for r in records if r.failure is None]
        if len(successful) < patience:
            return False
        return all(r.items_added < min_new for r in successful[-patience:])
    return predicate


class GraphReasoner:
    """
    Grows a concept graph by repeatedly querying the oracle.

    Each cycle sends the current directive to the oracle, extracts structured
    candidates from the answer with a second call, merges them into the
    store, analyzes the result, snapshots it and composes the next directive
    from the analysis. After the last cycle one more call produces a summary.

    Oracle and parse failures inside the loop are recovered: the cycle adds
    nothing and the run goes on. Only configuration problems raise, and they
    do so before the first oracle call.
    """

    def __init__(self, config: dict, debug: bool = False, debug_logger=None):
        cfg = copy.copy(config) if isinstance(config, dict) else {}
        self.config = cfg
        self.debug = debug
        self.debug_logger = debug_logger

        # Raises ConfigurationError on invalid settings or missing credentials
        self.settings = ReasonerSettings.from_config(cfg)
        self.llm = LLMClient(cfg, profile="reasoner", debug_logger=debug_logger)
        if debug:
            print(f"[*] Reasoner model: {self.settings.model} ({self.llm.provider_name})")

        self.store = ConceptStore()
        self.extractor = Extractor(self.llm)
        self.analyzer = Analyzer(
            min_vertices=self.settings.min_vertices,
            top_k=self.settings.top_k,
            warn=lambda msg: self._emit("warn", msg),
        )
        self.composer = PromptComposer(self.settings.domain)
        self.snapshot_writer = SnapshotWriter(self.settings.snapshots_dir)

        self.seed_prompt = self.settings.seed_prompt or build_seed_prompt(
            self.settings.domain, self.settings.categories
        )
        self.system_prompt = self.settings.system_prompt or (
            f"You are an expert in {self.settings.domain} and knowledge graph construction. "
            "Your responses should be detailed, accurate, and focused on identifying "
            "key concepts and relationships."
        )

        self.state = ReasonerState.INIT
        self.iteration = 0
        self.last_analysis: AnalysisResult | None = None
        self._progress_callback = None
        self._cancel_event: threading.Event | None = None
        self._unsnapshotted = False

    def _emit(self, status: str, message: str, **kwargs):
        """Emit progress events to callback and optionally print when debug."""
        if self._progress_callback:
            payload = {"status": status, "message": message, "iteration": self.iteration}
            payload.update(kwargs)
            self._progress_callback(payload)
        if self.debug:
            print(f"[{status}] {message}")

    def _log_event(self, event_type: str, message: str, details: dict | None = None):
        if self.debug_logger:
            self.debug_logger.log_event(event_type, message, details)

    def _cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    def _enter(self, state: ReasonerState):
        self.state = state

    def run(
        self,
        progress_callback: Callable[[dict], None] | None = None,
        cancel_event: threading.Event | None = None,
        stop_predicate: StopPredicate | None = None,
    ) -> ReasonerResult:
        """
        Run the full loop and return its outcome.

        Args:
            progress_callback: receives ``{"status", "message", "iteration", ...}`` dicts
            cancel_event: when set, the run stops before its next oracle call
            stop_predicate: evaluated after every cycle; True ends the loop early

        Raises:
            ConfigurationError: credentials rejected during startup validation
            RuntimeError: the reasoner has already finished a run
        """
        if self.state is ReasonerState.DONE:
            raise RuntimeError("GraphReasoner has already completed; create a new instance")
        if self.state is not ReasonerState.INIT:
            raise RuntimeError("GraphReasoner is already running")

        start_time = time.time()
        self._progress_callback = progress_callback
        self._cancel_event = cancel_event
        settings = self.settings

        self._emit("start", f"Graph reasoning on: {settings.domain}")
        self._emit("stats", f"Model: {self.llm.provider_name}:{settings.model}")
        self._emit("stats", f"Max iterations: {settings.max_iterations}")

        if settings.validate_credentials:
            try:
                self.llm.check_credentials()
                self._emit("stats", "Credentials validated")
            except OracleError as e:
                # Only rejected credentials are fatal; those raise ConfigurationError
                self._emit("warn", f"Could not validate credentials: {e}")

        if stop_predicate is None and settings.stop.min_new_items is not None:
            stop_predicate = marginal_growth_stop(settings.stop.min_new_items, settings.stop.patience)

        records: list[IterationRecord] = []
        snapshot_paths: list[Path] = []
        cancelled = False
        stopped_early = False
        completed = 0
        prompt = self.seed_prompt
        delay_seconds = settings.delay_ms / 1000.0

        for k in range(1, settings.max_iterations + 1):
            self.iteration = k
            if self._cancelled():
                cancelled = True
                break
            self._emit("building", f"Iteration {k}/{settings.max_iterations}")
            record = IterationRecord(iteration=k, prompt=prompt)
            records.append(record)

            self._enter(ReasonerState.GENERATE)
            exploration = self._generate(prompt, record)

            extraction = Extraction()
            if exploration is not None:
                if self._cancelled():
                    cancelled = True
                    break
                self._enter(ReasonerState.EXTRACT)
                extraction = self._extract(exploration, record)

            self._enter(ReasonerState.MERGE)
            self._merge(extraction, record)

            self._enter(ReasonerState.ANALYZE)
            analysis = self.analyzer.analyze(self.store)
            self.last_analysis = analysis
            self._report_metrics(analysis)

            self._enter(ReasonerState.SNAPSHOT)
            path = self._snapshot(k, record)
            if path is not None:
                snapshot_paths.append(path)

            self._enter(ReasonerState.COMPOSE)
            if self.store.is_empty():
                prompt = self.seed_prompt
                self._emit("compose", "Graph still empty; reusing seed directive")
            else:
                prompt = self.composer.compose(self.store, analysis)
                self._emit("compose", f"Composed next directive ({len(prompt)} chars)")
            completed += 1

            if stop_predicate is not None and k < settings.max_iterations and stop_predicate(records):
                stopped_early = True
                self._emit("early_exit", f"Growth below threshold; stopping after {k} iterations")
                break

            if k < settings.max_iterations and delay_seconds > 0:
                if self._cancel_event is not None:
                    # Returns early when cancellation is requested
                    self._cancel_event.wait(delay_seconds)
                else:
                    time.sleep(delay_seconds)

        # Cancelled after the last cycle: skip the summary call too
        if not cancelled and self._cancelled():
            cancelled = True

        summary = None
        summary_error = None
        if cancelled:
            self._emit("cancelled", f"Run cancelled during iteration {self.iteration}")
            self._log_event("Cancelled", f"Run cancelled during iteration {self.iteration}")
            if self._unsnapshotted:
                path = self._snapshot(self.iteration, None)
                if path is not None:
                    snapshot_paths.append(path)
        else:
            self._enter(ReasonerState.SUMMARIZE)
            summary, summary_error = self._summarize()

        self._enter(ReasonerState.DONE)
        duration = time.time() - start_time
        self._emit("complete", f"Complete in {duration:.1f}s: "
                               f"{len(self.store)} concepts, {len(self.store.relationships)} relationships")

        return ReasonerResult(
            summary=summary,
            state=self.state,
            iterations_completed=completed,
            records=records,
            snapshot_paths=snapshot_paths,
            cancelled=cancelled,
            stopped_early=stopped_early,
            num_concepts=len(self.store),
            num_relationships=len(self.store.relationships),
            summary_error=summary_error,
            duration_seconds=duration,
        )

    def _generate(self, prompt: str, record: IterationRecord) -> Exploration | None:
        self._emit("generate", "Generating new concepts and relationships...")
        try:
            text = self.llm.raw(system=self.system_prompt, user=prompt, stage="generate")
        except OracleError as e:
            record.failure = "oracle"
            record.error = str(e)
            self._emit("error", f"Oracle call failed: {e}", stage="generate")
            self._log_event("Oracle Failure", str(e), {"iteration": record.iteration, "stage": "generate"})
            return None
        return Exploration(iteration=record.iteration, prompt=prompt, text=text or "")

    def _extract(self, exploration: Exploration, record: IterationRecord) -> Extraction:
        self._emit("extract", "Extracting structured concepts and relationships...")
        extraction = self.extractor.extract(exploration)
        if extraction.failure == "oracle":
            record.failure = "oracle"
            record.error = extraction.error
            self._emit("error", f"Oracle call failed: {extraction.error}", stage="extract")
            self._log_event("Oracle Failure", extraction.error or "",
                            {"iteration": record.iteration, "stage": "extract"})
        elif extraction.failure == "parse":
            record.failure = "parse"
            record.error = extraction.error
            record.raw_response = extraction.raw
            self._emit("error", f"Could not parse extraction: {extraction.error}", stage="extract")
            self._log_event("Parse Failure", extraction.error or "",
                            {"iteration": record.iteration, "raw": extraction.raw})
        return extraction

    def _merge(self, extraction: Extraction, record: IterationRecord):
        rejected_before = len(self.store.rejections)
        added_c, added_r = self.store.merge(extraction.concepts, extraction.relationships)
        record.concepts_added = added_c
        record.relationships_added = added_r
        record.rejected_relationships = len(self.store.rejections) - rejected_before
        record.total_concepts = len(self.store)
        record.total_relationships = len(self.store.relationships)
        self._unsnapshotted = True

        msg = f"Added: {added_c} concepts, {added_r} relationships"
        if record.rejected_relationships:
            msg += f" ({record.rejected_relationships} dangling relationships dropped)"
        self._emit("merge", msg, concepts=record.total_concepts, relationships=record.total_relationships)

    def _report_metrics(self, analysis: AnalysisResult):
        if analysis.trivial:
            self._emit("metrics", f"Graph too small for analysis ({len(self.store)} concepts)")
            return
        concepts = self.store.concepts

        def names(ranked):
            return ", ".join(f"{concepts[cid].name} ({score:.3f})" for cid, score in ranked)

        self._emit("metrics", f"PageRank: {names(analysis.pagerank)}")
        self._emit("metrics", f"Betweenness: {names(analysis.betweenness)}")
        self._emit("metrics", f"Closeness: {names(analysis.closeness)}")
        self._emit("metrics", f"Components: {analysis.component_count} "
                              f"(largest {analysis.largest_component_size})",
                   components=analysis.component_count)

    def _snapshot(self, iteration: int, record: IterationRecord | None) -> Path | None:
        snapshot = self.store.snapshot(iteration)
        try:
            path = self.snapshot_writer.write(snapshot)
        except OSError as e:
            self._emit("error", f"Failed to write snapshot: {e}")
            self._log_event("Snapshot Error", str(e), {"iteration": iteration})
            return None
        self._unsnapshotted = False
        if record is not None:
            record.snapshot_path = path
        self._emit("snapshot", f"Saved graph data for iteration {iteration}", path=str(path))

        if self.settings.visualize:
            try:
                viz = generate_iteration_visualization(
                    snapshot, self.settings.visualizations_dir, title=self.settings.domain
                )
            except OSError as e:
                self._emit("error", f"Failed to render visualization: {e}")
                self._log_event("Render Error", str(e), {"iteration": iteration})
            else:
                if record is not None:
                    record.visualization_path = viz
                self._emit("render", f"Visualization saved to {viz}", path=str(viz))
        return path

    def _summarize(self) -> tuple[str | None, str | None]:
        self._emit("summary", "Generating final summary...")
        try:
            summary = self.llm.raw(
                system=self.system_prompt,
                user=self.composer.compose_summary(self.store),
                stage="summarize",
            )
        except OracleError as e:
            self._emit("error", f"Summary failed: {e}", stage="summarize")
            self._log_event("Oracle Failure", str(e), {"stage": "summarize"})
            return None, str(e)
        self._emit("summary", "Final summary generated", summary=summary)
        return summary, None

    def stats(self) -> dict[str, Any]:
        """Counts for display once a run has finished."""
        return {
            "concepts": len(self.store),
            "relationships": len(self.store.relationships),
            "rejected_relationships": len(self.store.rejections),
            "components": self.last_analysis.component_count if self.last_analysis else 0,
        }
