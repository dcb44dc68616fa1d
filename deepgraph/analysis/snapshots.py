"""Per-iteration JSON snapshots of the concept graph."""

from __future__ import annotations

import json
from pathlib import Path

from deepgraph.analysis.concept_store import Concept, IterationSnapshot, Relationship


def snapshot_filename(snapshot: IterationSnapshot) -> str:
    return f"graph_iteration_{snapshot.iteration}_{snapshot.timestamp}.json"


class SnapshotWriter:
    """Writes snapshots atomically to ``graph_iteration_<k>_<timestamp>.json``."""

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)

    def write(self, snapshot: IterationSnapshot) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / snapshot_filename(snapshot)
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w") as f:
            json.dump(snapshot.to_dict(), f, indent=2)
        tmp.replace(path)
        return path


def load_snapshot(path: Path) -> IterationSnapshot:
    """Read a snapshot file back into an IterationSnapshot.

    Raises:
        ValueError: the file is not a snapshot written by SnapshotWriter
    """
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, dict) or "concepts" not in data:
        raise ValueError(f"{path} is not a graph snapshot")
    try:
        return IterationSnapshot(
            iteration=int(data.get("iteration", 0)),
            timestamp=str(data.get("timestamp", "")),
            concepts=tuple(Concept(**c) for c in data.get("concepts") or []),
            relationships=tuple(Relationship(**r) for r in data.get("relationships") or []),
        )
    except TypeError as e:
        raise ValueError(f"{path} has malformed snapshot entries: {e}") from e


def latest_snapshot(directory: Path) -> Path | None:
    """Most recent snapshot in ``directory`` by iteration, then timestamp."""
    def sort_key(p: Path):
        parts = p.stem.split("_")
        # graph_iteration_<k>_<date>_<time>
        try:
            return (int(parts[2]), "_".join(parts[3:]))
        except (IndexError, ValueError):
            return (-1, "")

    candidates = sorted(Path(directory).glob("graph_iteration_*.json"), key=sort_key)
    return candidates[-1] if candidates else None
