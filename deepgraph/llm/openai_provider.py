"""OpenAI provider implementation."""
from __future__ import annotations

import os
import random
import time
from typing import Any

import openai
from openai import OpenAI

from .base_provider import BaseLLMProvider


class OpenAIProvider(BaseLLMProvider):
    """OpenAI Chat Completions provider."""

    def __init__(
        self,
        config: dict[str, Any],
        model_name: str,
        timeout: int = 120,
        retries: int = 1,
        backoff_min: float = 2.0,
        backoff_max: float = 8.0,
        temperature: float | None = None,
        **kwargs
    ):
        """Initialize OpenAI provider."""
        self.config = config
        self.model_name = model_name
        self.timeout = timeout
        self.retries = max(1, int(retries))
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max
        self.temperature = temperature
        # Verbose logging toggle (suppress request logs by default)
        logging_cfg = config.get("logging", {}) if isinstance(config, dict) else {}
        env_verbose = os.environ.get("DEEPGRAPH_LLM_VERBOSE", "").lower() in {"1","true","yes","on"}
        self.verbose = bool(logging_cfg.get("llm_verbose", False) or env_verbose)
        self._last_token_usage = None

        # Get API key from environment
        api_key_env = config.get("openai", {}).get("api_key_env", "OPENAI_API_KEY")
        api_key = os.environ.get(api_key_env)
        if not api_key:
            raise ValueError(f"API key not found in environment variable: {api_key_env}")

        # The SDK expects base_url to include the "/v1" path
        raw_base_url = os.environ.get("OPENAI_BASE_URL") or config.get("openai", {}).get("base_url")
        base_url = (raw_base_url or "https://api.openai.com/v1").rstrip("/")
        if not base_url.endswith("/v1"):
            base_url = base_url + "/v1"

        self.client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        if self.verbose:
            print(f"[OpenAI Provider] Using base_url: {base_url}")

    def raw(self, *, system: str, user: str) -> str:
        """Make a plain text call."""
        messages = [
            {"role": "system", "content": system},
            {"role": "user", "content": user}
        ]
        if self.verbose:
            request_chars = len(system) + len(user)
            print("\n[OpenAI Request]")
            print(f"  Model: {self.model_name}")
            print(f"  Total prompt: {request_chars:,} chars (~{request_chars//4:,} tokens)")

        params: dict[str, Any] = {"model": self.model_name, "messages": messages}
        if self.temperature is not None:
            params["temperature"] = self.temperature

        last_err = None
        for attempt in range(self.retries):
            try:
                completion = self.client.chat.completions.create(**params)
                if completion.usage:
                    self._last_token_usage = {
                        'input_tokens': completion.usage.prompt_tokens or 0,
                        'output_tokens': completion.usage.completion_tokens or 0,
                        'total_tokens': completion.usage.total_tokens or 0
                    }
                return completion.choices[0].message.content or ""
            except openai.AuthenticationError:
                # Retrying a rejected key never helps
                raise
            except openai.OpenAIError as e:
                last_err = e
                if self.verbose:
                    print(f"  Attempt {attempt + 1} failed: {e}")
                if attempt < self.retries - 1:
                    time.sleep(random.uniform(self.backoff_min, self.backoff_max))

        raise RuntimeError(f"OpenAI raw call failed after {self.retries} attempts: {last_err}")

    def check_credentials(self) -> None:
        """Look up the configured model; raises openai.AuthenticationError on a bad key."""
        self.client.models.retrieve(self.model_name)

    def is_auth_error(self, exc: Exception) -> bool:
        return isinstance(exc, openai.AuthenticationError)

    @property
    def provider_name(self) -> str:
        """Return provider name."""
        return "OpenAI"

    def get_last_token_usage(self) -> dict[str, int] | None:
        """Return token usage from the last call if available."""
        return self._last_token_usage
