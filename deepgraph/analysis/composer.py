"""Prompt composition: turns graph analysis into the next exploration directive."""

from __future__ import annotations

from deepgraph.analysis.analyzer import AnalysisResult
from deepgraph.analysis.concept_store import Concept, ConceptStore

CENTRAL_COUNT = 3
UNDER_EXPLORED_COUNT = 3
UNDER_EXPLORED_MAX_DEGREE = 2
MAX_BRIDGE_COMPONENTS = 5


def build_seed_prompt(domain: str, categories: list[str] | tuple[str, ...]) -> str:
    """Initial exploration directive for a domain and its concept categories."""
    lines = [
        f"You are an expert in {domain}. Your task is to help me explore and develop "
        f"knowledge about {domain}.",
        "",
    ]
    if categories:
        lines.append(f"Please identify key concepts related to {domain}, including:")
        lines.extend(f"{i}. {c}" for i, c in enumerate(categories, 1))
    else:
        lines.append(f"Please identify key concepts related to {domain}.")
    lines += [
        "",
        "For each concept, provide a brief description. Also identify relationships between these concepts.",
    ]
    return "\n".join(lines)


def _bullet(concept: Concept) -> str:
    return f"- {concept.name}: {concept.description}"


class PromptComposer:
    """
    Builds the next directive from the store and its analysis.

    Output depends only on its inputs: central concepts come from the PageRank
    ranking, under-explored ones are the earliest concepts with degree below 2,
    and disconnected components are named so the oracle can bridge them.
    """

    def __init__(self, domain: str):
        self.domain = domain

    def central_concepts(self, store: ConceptStore, analysis: AnalysisResult) -> list[Concept]:
        concepts = store.concepts
        ids = [cid for cid, _ in analysis.pagerank if cid in concepts][:CENTRAL_COUNT]
        if not ids:
            # Trivial analysis: no ranking, fall back to insertion order
            ids = list(concepts.keys())[:CENTRAL_COUNT]
        return [concepts[cid] for cid in ids]

    def under_explored_concepts(self, store: ConceptStore) -> list[Concept]:
        result = []
        for concept in store.concepts.values():
            if store.degree(concept.id) < UNDER_EXPLORED_MAX_DEGREE:
                result.append(concept)
                if len(result) == UNDER_EXPLORED_COUNT:
                    break
        return result

    def compose(self, store: ConceptStore, analysis: AnalysisResult) -> str:
        central = self.central_concepts(store, analysis)
        under_explored = self.under_explored_concepts(store)

        lines = [
            f"Based on our current knowledge graph about {self.domain}, "
            "I'd like to expand our understanding further.",
            "",
            "Here are some key concepts we've identified:",
        ]
        lines.extend(_bullet(c) for c in central)

        if under_explored:
            lines += ["", "These concepts have fewer connections and might need further exploration:"]
            lines.extend(_bullet(c) for c in under_explored)

        lines += ["", f"We have {analysis.component_count} disconnected components in our graph."]
        if analysis.component_count > 1:
            lines.append("Representative concepts from separate components:")
            for component in analysis.components[:MAX_BRIDGE_COMPONENTS]:
                rep = store.concepts.get(component[0])
                if rep is not None:
                    lines.append(f"- {rep.name} (component of {len(component)} concepts)")
            lines.append(
                "Please propose specific relationships that bridge these disconnected components."
            )

        lines += [
            "",
            "Please help me:",
            "1. Identify new concepts related to these existing ones",
            "2. Explore potential connections between disconnected parts of our knowledge graph",
            "3. Deepen our understanding of the concepts with fewer connections",
            "4. Identify any emerging patterns or potential novel applications",
            "",
            "Focus on being specific and detailed in your descriptions of concepts and relationships.",
        ]
        return "\n".join(lines)

    def compose_summary(self, store: ConceptStore) -> str:
        """Closing synthesis request over every concept and relationship."""
        concepts = store.concepts

        def name_of(cid: str) -> str:
            c = concepts.get(cid)
            return c.name if c else cid

        lines = [
            f"Based on the knowledge graph we've developed about {self.domain}, "
            "please provide a comprehensive summary of the key insights, emerging patterns, and "
            "potential novel applications or research directions.",
            "",
            "Here are the concepts and relationships in our knowledge graph:",
            "",
            "Concepts:",
        ]
        lines.extend(_bullet(c) for c in concepts.values())
        lines += ["", "Relationships:"]
        lines.extend(
            f"- {name_of(r.source)} {r.type} {name_of(r.target)}: {r.description}"
            for r in store.relationships
        )
        return "\n".join(lines)
