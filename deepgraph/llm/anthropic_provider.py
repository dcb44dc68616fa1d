"""
Anthropic Claude provider implementation.
"""

from __future__ import annotations

import os
import time
from typing import Any

import anthropic
from anthropic import Anthropic

from .base_provider import BaseLLMProvider


class AnthropicProvider(BaseLLMProvider):
    """Anthropic Claude LLM provider."""

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        model_name: str = "claude-3-5-sonnet-20241022",
        api_key: str | None = None,
        api_key_env: str | None = None,
        timeout: int = 120,
        retries: int = 1,
        verbose: bool = False,
        max_tokens: int = 4096,
        temperature: float | None = 0.7,
        **kwargs  # Accept additional kwargs for compatibility
    ):
        """
        Initialize Anthropic provider.

        Args:
            config: Full configuration dictionary
            model_name: Model identifier (e.g., claude-3-5-sonnet-20241022)
            api_key: API key (optional if using env var)
            api_key_env: Environment variable name for API key
            timeout: Request timeout in seconds
            retries: Number of attempts per call
            verbose: Enable verbose logging
            max_tokens: Completion budget per call
            temperature: Sampling temperature
        """
        self.config = config or {}
        self.model_name = model_name
        self.timeout = timeout
        self.retries = max(1, int(retries))
        self.verbose = verbose
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._last_token_usage = None

        # Get API key
        if api_key:
            self.api_key = api_key
        elif api_key_env:
            self.api_key = os.getenv(api_key_env)
            if not self.api_key:
                raise ValueError(f"API key not found in environment variable {api_key_env}")
        else:
            raise ValueError("Either api_key or api_key_env must be provided")

        self.client = Anthropic(api_key=self.api_key, timeout=timeout)

    def raw(self, *, system: str, user: str) -> str:
        """Make a raw text call."""
        request_chars = len(system) + len(user)
        if self.verbose:
            print("\n[Anthropic Request]")
            print(f"  Model: {self.model_name}")
            print(f"  Total prompt: {request_chars:,} chars (~{request_chars//4:,} tokens)")

        params: dict[str, Any] = {
            "model": self.model_name,
            "max_tokens": self.max_tokens,
            "system": system,
            "messages": [{"role": "user", "content": user}],
        }
        if self.temperature is not None:
            params["temperature"] = self.temperature

        last_err = None

        for attempt in range(self.retries):
            try:
                start_time = time.time()
                response = self.client.messages.create(**params)

                # Concatenate text blocks; other block types carry no answer text
                response_text = "".join(
                    getattr(block, "text", "") for block in (response.content or [])
                )

                if response.usage:
                    self._last_token_usage = {
                        'input_tokens': response.usage.input_tokens or 0,
                        'output_tokens': response.usage.output_tokens or 0,
                        'total_tokens': (response.usage.input_tokens or 0) + (response.usage.output_tokens or 0)
                    }

                if self.verbose:
                    print("[Anthropic Response]")
                    print(f"  Time: {time.time() - start_time:.2f}s")
                    print(f"  Output: {len(response_text):,} chars")

                return response_text

            except anthropic.AuthenticationError:
                raise
            except anthropic.AnthropicError as e:
                last_err = e
                if self.verbose:
                    print(f"  Attempt {attempt + 1} failed: {e}")

                if attempt < self.retries - 1:
                    wait_time = 2 ** attempt
                    if self.verbose:
                        print(f"  Retrying in {wait_time}s...")
                    time.sleep(wait_time)

        raise RuntimeError(f"Failed after {self.retries} attempts: {last_err}")

    def check_credentials(self) -> None:
        """Look up the configured model; raises anthropic.AuthenticationError on a bad key."""
        self.client.models.retrieve(self.model_name)

    def is_auth_error(self, exc: Exception) -> bool:
        return isinstance(exc, anthropic.AuthenticationError)

    @property
    def provider_name(self) -> str:
        """Return provider name."""
        return "Anthropic"

    def get_last_token_usage(self) -> dict[str, int] | None:
        """Return token usage from the last call if available."""
        return self._last_token_usage
