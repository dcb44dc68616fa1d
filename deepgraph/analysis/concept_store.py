"""Concept store: the single owned record of concepts and their relationships."""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass
from datetime import datetime
from types import MappingProxyType


class ReferentialError(ValueError):
    """A relationship references a concept id that is not in the store."""

    def __init__(self, relationship: Relationship, missing: list[str]):
        self.relationship = relationship
        self.missing = missing
        super().__init__(
            f"Relationship {relationship.source} -[{relationship.type}]-> {relationship.target} "
            f"references unknown concept(s): {', '.join(missing)}"
        )


@dataclass(frozen=True)
class Concept:
    """A named idea in the domain."""
    id: str
    name: str
    description: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Relationship:
    """Directed, typed link between two concept ids."""
    source: str
    target: str
    type: str
    description: str = ""

    @property
    def key(self) -> tuple[str, str, str]:
        """Identity triple used for deduplication."""
        return (self.source, self.target, self.type)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class IterationSnapshot:
    """Immutable copy of the store taken after an iteration's merge."""
    iteration: int
    timestamp: str
    concepts: tuple[Concept, ...] = ()
    relationships: tuple[Relationship, ...] = ()

    def to_dict(self) -> dict:
        return {
            "iteration": self.iteration,
            "timestamp": self.timestamp,
            "concepts": [c.to_dict() for c in self.concepts],
            "relationships": [r.to_dict() for r in self.relationships],
            "stats": {
                "num_concepts": len(self.concepts),
                "num_relationships": len(self.relationships),
            },
        }


class ConceptStore:
    """
    Insertion-ordered concept graph.

    ``merge`` is the only write path. Concepts are first-write-wins and a
    relationship is accepted only when both endpoints exist and its
    (source, target, type) triple is new, so repeated merges of the same
    batch are no-ops.
    """

    def __init__(self):
        self._concepts: dict[str, Concept] = {}
        self._relationships: list[Relationship] = []
        self._keys: set[tuple[str, str, str]] = set()
        self._lock = threading.Lock()
        self.rejections: list[ReferentialError] = []

    @property
    def concepts(self) -> Mapping[str, Concept]:
        """Read-only view of concepts keyed by id, in insertion order."""
        return MappingProxyType(self._concepts)

    @property
    def relationships(self) -> tuple[Relationship, ...]:
        return tuple(self._relationships)

    def __len__(self) -> int:
        return len(self._concepts)

    def __contains__(self, concept_id: object) -> bool:
        return concept_id in self._concepts

    def is_empty(self) -> bool:
        return not self._concepts

    def validate_relationship(self, relationship: Relationship) -> None:
        """Raise ReferentialError if either endpoint is unknown."""
        missing = [cid for cid in (relationship.source, relationship.target) if cid not in self._concepts]
        if missing:
            # Self-loop on an unknown id reports it once
            raise ReferentialError(relationship, list(dict.fromkeys(missing)))

    def merge(
        self,
        concepts: Iterable[Concept],
        relationships: Iterable[Relationship],
    ) -> tuple[int, int]:
        """
        Fold candidate concepts and relationships into the store.

        Concepts of the batch are inserted before any relationship is checked,
        so a relationship may reference a concept introduced in the same batch.

        Returns:
            (concepts_added, relationships_added)
        """
        added_concepts = 0
        added_relationships = 0
        with self._lock:
            for concept in concepts:
                if concept.id in self._concepts:
                    continue
                self._concepts[concept.id] = concept
                added_concepts += 1

            for rel in relationships:
                try:
                    self.validate_relationship(rel)
                except ReferentialError as e:
                    self.rejections.append(e)
                    continue
                if rel.key in self._keys:
                    continue
                self._keys.add(rel.key)
                self._relationships.append(rel)
                added_relationships += 1
        return added_concepts, added_relationships

    def degree(self, concept_id: str) -> int:
        """In plus out degree over the collapsed directed graph.

        Parallel relationships of different types between the same ordered
        pair count once; a self loop counts as one in and one out.
        """
        pairs = {(r.source, r.target) for r in self._relationships
                 if r.source == concept_id or r.target == concept_id}
        out_deg = sum(1 for s, _ in pairs if s == concept_id)
        in_deg = sum(1 for _, t in pairs if t == concept_id)
        return out_deg + in_deg

    def snapshot(self, iteration: int, timestamp: str | None = None) -> IterationSnapshot:
        """Immutable view of the current contents."""
        with self._lock:
            return IterationSnapshot(
                iteration=iteration,
                timestamp=timestamp or datetime.now().strftime("%Y%m%d_%H%M%S"),
                concepts=tuple(self._concepts.values()),
                relationships=tuple(self._relationships),
            )
