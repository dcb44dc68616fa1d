"""Structural analysis of the concept graph (centrality and connectivity)."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

import networkx as nx

from deepgraph.analysis.concept_store import ConceptStore

PAGERANK_ALPHA = 0.85
PAGERANK_TOL = 1e-4
PAGERANK_MAX_ITER = 100


@dataclass
class AnalysisResult:
    """Ranked metrics for one analysis pass; ids are concept ids."""
    pagerank: list[tuple[str, float]] = field(default_factory=list)
    betweenness: list[tuple[str, float]] = field(default_factory=list)
    closeness: list[tuple[str, float]] = field(default_factory=list)
    components: list[list[str]] = field(default_factory=list)
    component_count: int = 0
    largest_component_size: int = 0
    trivial: bool = False
    pagerank_converged: bool = True
    full_pagerank: list[tuple[str, float]] = field(default_factory=list, repr=False)

    def top_ids(self, metric: str, n: int) -> list[str]:
        return [cid for cid, _ in getattr(self, metric)[:n]]


def build_digraph(store: ConceptStore) -> nx.DiGraph:
    """Project the store onto a simple directed graph (parallel edges collapsed)."""
    g = nx.DiGraph()
    g.add_nodes_from(store.concepts.keys())
    for rel in store.relationships:
        g.add_edge(rel.source, rel.target)
    return g


def _rank(scores: dict[str, float], order: dict[str, int]) -> list[tuple[str, float]]:
    # Descending score; ties resolved by insertion order
    return sorted(scores.items(), key=lambda kv: (-kv[1], order[kv[0]]))


class Analyzer:
    """
    Computes PageRank, betweenness, closeness and weakly connected components.

    Stores with fewer than ``min_vertices`` concepts yield a trivial result
    without running any metric. The store is never modified.
    """

    def __init__(self, min_vertices: int = 2, top_k: int = 5,
                 warn: Callable[[str], None] | None = None):
        self.min_vertices = min_vertices
        self.top_k = top_k
        self._warn = warn

    def analyze(self, store: ConceptStore) -> AnalysisResult:
        n = len(store)
        if n < self.min_vertices:
            return AnalysisResult(
                components=[list(store.concepts.keys())] if n else [],
                component_count=1 if n else 0,
                largest_component_size=n,
                trivial=True,
            )

        g = build_digraph(store)
        order = {cid: i for i, cid in enumerate(store.concepts.keys())}

        converged = True
        try:
            pr = nx.pagerank(g, alpha=PAGERANK_ALPHA, tol=PAGERANK_TOL, max_iter=PAGERANK_MAX_ITER)
        except nx.PowerIterationFailedConvergence:
            converged = False
            pr = nx.in_degree_centrality(g)
            if self._warn:
                self._warn(f"PageRank did not converge in {PAGERANK_MAX_ITER} iterations; ranking by in-degree")

        betweenness = nx.betweenness_centrality(g)
        closeness = nx.closeness_centrality(g)

        components = [
            sorted(c, key=order.__getitem__)
            for c in nx.weakly_connected_components(g)
        ]
        # Largest first; equal sizes by earliest member
        components.sort(key=lambda c: (-len(c), order[c[0]]))

        full_pr = _rank(pr, order)
        return AnalysisResult(
            pagerank=full_pr[:self.top_k],
            betweenness=_rank(betweenness, order)[:self.top_k],
            closeness=_rank(closeness, order)[:self.top_k],
            components=components,
            component_count=len(components),
            largest_component_size=len(components[0]) if components else 0,
            trivial=False,
            pagerank_converged=converged,
            full_pagerank=full_pr,
        )
