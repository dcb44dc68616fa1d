"""Token usage tracking for LLM providers."""
import json
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from threading import Lock


@dataclass
class TokenUsage:
    """Token usage for a single oracle call."""
    timestamp: str
    provider: str
    model: str
    input_tokens: int
    output_tokens: int
    total_tokens: int
    stage: str | None = None  # generate, extract, summarize

    def to_dict(self) -> dict:
        return asdict(self)


class TokenTracker:
    """Tracks token usage across all oracle calls of a run."""

    def __init__(self):
        self.usage_history: list[TokenUsage] = []
        self.usage_by_model: dict[str, dict[str, int]] = {}
        self._lock = Lock()
        self._output_file: Path | None = None

    def set_output_file(self, file_path: Path):
        """Mirror the running totals into a JSON file after every call."""
        self._output_file = file_path
        with self._lock:
            self._save_to_file()

    def track_usage(self,
                   provider: str,
                   model: str,
                   input_tokens: int,
                   output_tokens: int,
                   stage: str | None = None):
        """Track token usage for a single oracle call."""
        with self._lock:
            usage = TokenUsage(
                timestamp=datetime.now().isoformat(),
                provider=provider,
                model=model,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
                stage=stage
            )
            self.usage_history.append(usage)

            model_key = f"{provider}:{model}"
            agg = self.usage_by_model.setdefault(model_key, {
                'input_tokens': 0,
                'output_tokens': 0,
                'total_tokens': 0,
                'call_count': 0
            })
            agg['input_tokens'] += input_tokens
            agg['output_tokens'] += output_tokens
            agg['total_tokens'] += input_tokens + output_tokens
            agg['call_count'] += 1

            if self._output_file:
                self._save_to_file()

    def _save_to_file(self):
        """Save current state to file (called within lock)."""
        if not self._output_file:
            return
        with open(self._output_file, 'w') as f:
            json.dump(self._summary_unlocked(), f, indent=2)

    def _summary_unlocked(self) -> dict:
        by_stage: dict[str, dict[str, int]] = {}
        for u in self.usage_history:
            agg = by_stage.setdefault(u.stage or "other", {'total_tokens': 0, 'call_count': 0})
            agg['total_tokens'] += u.total_tokens
            agg['call_count'] += 1
        return {
            'total_usage': {
                'input_tokens': sum(u.input_tokens for u in self.usage_history),
                'output_tokens': sum(u.output_tokens for u in self.usage_history),
                'total_tokens': sum(u.total_tokens for u in self.usage_history),
                'call_count': len(self.usage_history)
            },
            'by_model': {k: dict(v) for k, v in self.usage_by_model.items()},
            'by_stage': by_stage,
            'history': [u.to_dict() for u in self.usage_history]
        }

    def get_summary(self) -> dict:
        """Get summary of token usage."""
        with self._lock:
            return self._summary_unlocked()

    def reset(self):
        """Reset all tracking data."""
        with self._lock:
            self.usage_history.clear()
            self.usage_by_model.clear()
            if self._output_file:
                self._save_to_file()


# Global token tracker instance
_token_tracker = TokenTracker()


def get_token_tracker() -> TokenTracker:
    """Get the global token tracker instance."""
    return _token_tracker
