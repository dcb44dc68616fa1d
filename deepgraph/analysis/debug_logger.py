"""
Debug logger for oracle interactions.
Captures every prompt, response and recovered failure of a run for later inspection.
"""

from __future__ import annotations

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any


class DebugLogger:
    """Logs oracle interactions and pipeline events to a text log plus per-call JSON files."""

    def __init__(self, session_id: str, output_dir: Path | None = None):
        """
        Initialize debug logger.

        Args:
            session_id: Unique identifier for this run
            output_dir: Directory to save debug logs (defaults to $DEEPGRAPH_DEBUG_DIR or ./.deepgraph_debug)
        """
        self.session_id = session_id
        if output_dir is None:
            env_dir = os.environ.get("DEEPGRAPH_DEBUG_DIR")
            output_dir = Path(env_dir) if env_dir else Path.cwd() / ".deepgraph_debug"
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.log_file = self.output_dir / f"debug_{session_id}_{timestamp}.log"
        # One prompt/response per file
        self.interactions_dir = self.output_dir / "interactions"
        self.interactions_dir.mkdir(parents=True, exist_ok=True)

        self._init_log()
        self.interaction_count = 0
        self.event_count = 0

    def _init_log(self):
        header = f"""
================================================================================
DEEPGRAPH DEBUG LOG
Session ID: {self.session_id}
Started: {datetime.now().strftime("%Y-%m-%d %H:%M:%S")}
================================================================================

"""
        with open(self.log_file, 'w') as f:
            f.write(header)

    def log_interaction(
        self,
        system_prompt: str,
        user_prompt: str,
        response: Any,
        duration: float | None = None,
        error: str | None = None,
        profile: str | None = None
    ):
        """
        Log a single oracle interaction.

        Args:
            system_prompt: System prompt sent to the oracle
            user_prompt: User prompt sent to the oracle
            response: Raw response text (None when the call failed)
            duration: Time taken for the interaction
            error: Error message if the interaction failed
            profile: Pipeline stage that issued the call (generate, extract, summarize)
        """
        self.interaction_count += 1
        response_str = response if isinstance(response, str) else json.dumps(response, default=str)

        log_entry = f"""
--------------------------------------------------------------------------------
INTERACTION #{self.interaction_count}{f' [{profile}]' if profile else ''}
Time: {datetime.now().strftime("%Y-%m-%d %H:%M:%S")}
{f'Duration: {duration:.2f}s' if duration else ''}

SYSTEM PROMPT:
{system_prompt}

USER PROMPT:
{user_prompt}

RESPONSE:
{response_str if not error else f'ERROR: {error}'}

"""
        with open(self.log_file, 'a') as f:
            f.write(log_entry)

        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        fname = self.interactions_dir / f"{self.interaction_count:04d}_{ts}.json"
        record = {
            'time': datetime.now().isoformat(),
            'session_id': self.session_id,
            'profile': profile,
            'system': system_prompt,
            'user': user_prompt,
            'response': response,
            'duration_seconds': duration,
            'error': error,
        }
        with open(fname, 'w') as jf:
            json.dump(record, jf, indent=2, default=str)

    def log_event(self, event_type: str, message: str, details: dict | None = None):
        """
        Log a pipeline event (not an oracle interaction).

        Args:
            event_type: Type of event (e.g., "Parse Failure", "Snapshot Error")
            message: Event message
            details: Optional additional details such as the raw response
        """
        self.event_count += 1
        details_str = ""
        if details:
            details_str = f"\nDetails: {json.dumps(details, indent=2, default=str)}"

        event_log = f"""
--------------------------------------------------------------------------------
EVENT: {event_type}
Time: {datetime.now().strftime("%Y-%m-%d %H:%M:%S")}
Message: {message}{details_str}

"""
        with open(self.log_file, 'a') as f:
            f.write(event_log)

    def finalize(self, summary: dict | None = None) -> Path:
        """
        Finalize the debug log with summary statistics.

        Args:
            summary: Optional summary statistics to include
        """
        summary_str = ""
        if summary:
            summary_str = "\nRUN SUMMARY:\n"
            for key, value in summary.items():
                summary_str += f"  {key.replace('_', ' ').title()}: {value}\n"

        footer = f"""
================================================================================
{summary_str}
Completed: {datetime.now().strftime("%Y-%m-%d %H:%M:%S")}
Total Interactions: {self.interaction_count}
Total Events: {self.event_count}
================================================================================
"""
        with open(self.log_file, 'a') as f:
            f.write(footer)

        return self.log_file
