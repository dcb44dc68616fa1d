"""Scripted oracle and config builders for reasoner tests."""

import json
from pathlib import Path


def extraction_json(concepts, relationships=()) -> str:
    """Render a parsing-call answer from (id, name[, description]) and (src, dst, type) tuples."""
    payload = {
        "concepts": [
            {"id": c[0], "name": c[1], "description": c[2] if len(c) > 2 else f"About {c[1]}"}
            for c in concepts
        ],
        "relationships": [
            {"source": r[0], "target": r[1], "type": r[2], "description": r[3] if len(r) > 3 else ""}
            for r in relationships
        ],
    }
    return "Here is the structured data:\n" + json.dumps(payload, indent=2) + "\nLet me know if you need more."


class ScriptedOracle:
    """
    Stand-in for a provider ``mock_instance``.

    Generate, extract and summary calls are told apart by their prompts.
    ``extractions`` holds one entry per iteration: a string answer for the
    parsing call, or an exception to raise from it. ``generate_failures``
    lists 1-based iterations whose generate call raises; ``empty_rounds``
    lists those whose generate call answers with blank text.
    """

    def __init__(self, extractions, generate_failures=(), summary="Final synthesis", summary_error=None,
                 empty_rounds=()):
        self.extractions = list(extractions)
        self.generate_failures = set(generate_failures)
        self.empty_rounds = set(empty_rounds)
        self.summary = summary
        self.summary_error = summary_error
        self.generate_prompts: list[str] = []
        self.extract_prompts: list[str] = []
        self.summary_prompts: list[str] = []
        self.calls: list[str] = []
        self.on_call = None

    def raw(self, *, system: str, user: str) -> str:
        if self.on_call is not None:
            self.on_call(self, user)
        if user.startswith("Parse the following text"):
            self.calls.append("extract")
            self.extract_prompts.append(user)
            idx = len(self.extract_prompts) - 1
            answer = self.extractions[idx] if idx < len(self.extractions) else '{"concepts": [], "relationships": []}'
            if isinstance(answer, BaseException):
                raise answer
            return answer
        if "comprehensive summary" in user:
            self.calls.append("summarize")
            self.summary_prompts.append(user)
            if self.summary_error is not None:
                raise self.summary_error
            return self.summary
        self.calls.append("generate")
        self.generate_prompts.append(user)
        if len(self.generate_prompts) in self.generate_failures:
            raise ConnectionError("simulated network failure")
        if len(self.generate_prompts) in self.empty_rounds:
            return "  \n"
        return f"Exploration text for round {len(self.generate_prompts)}"

    def check_credentials(self):
        return None


def make_config(oracle, output_dir: Path, **reasoner) -> dict:
    """Config for a mock-provider run writing into ``output_dir``."""
    section = {"max_iterations": 3, "delay_ms": 0, "domain": "test materials"}
    section.update(reasoner)
    return {
        "models": {"reasoner": {"provider": "mock", "model": "mock", "mock_instance": oracle}},
        "reasoner": section,
        "output": {
            "snapshots_dir": str(Path(output_dir) / "graph_data"),
            "visualizations_dir": str(Path(output_dir) / "graph_visualizations"),
            "visualize": False,
        },
    }
