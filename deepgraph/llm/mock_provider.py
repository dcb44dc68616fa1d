"""Mock LLM provider for testing."""
from __future__ import annotations

import json
from typing import Any

from .base_provider import BaseLLMProvider


class MockProvider(BaseLLMProvider):
    """Mock LLM provider for testing purposes.

    Answers come from, in order of preference: a ``mock_instance`` exposing
    ``raw(system=..., user=...)``, the list given to :meth:`set_responses`,
    or a fixed placeholder. Exceptions placed in the response list are raised.
    """

    def __init__(self, config: dict[str, Any], model_name: str, **kwargs):
        """Initialize mock provider."""
        self.config = config
        self.model_name = model_name
        self.call_count = 0
        self.responses = []
        self.response_index = 0
        self._last_token_usage = None

        # Store mock instance if provided for testing
        self._mock_instance = kwargs.get('mock_instance')

    def set_responses(self, responses):
        """Set predefined responses for testing."""
        self.responses = responses
        self.response_index = 0

    def raw(self, *, system: str, user: str) -> str:
        """Return raw text response."""
        self.call_count += 1

        self._last_token_usage = {
            'input_tokens': (len(system) + len(user)) // 4,
            'output_tokens': 50,
            'total_tokens': (len(system) + len(user)) // 4 + 50
        }

        if self._mock_instance is not None and hasattr(self._mock_instance, 'raw'):
            return self._mock_instance.raw(system=system, user=user)

        if self.responses and self.response_index < len(self.responses):
            response = self.responses[self.response_index]
            self.response_index += 1

            if isinstance(response, BaseException):
                raise response
            if isinstance(response, str):
                return response
            elif isinstance(response, dict):
                return json.dumps(response)
            else:
                return str(response)

        return "Mock response for testing"

    def check_credentials(self) -> None:
        if self._mock_instance is not None and hasattr(self._mock_instance, 'check_credentials'):
            self._mock_instance.check_credentials()

    def is_auth_error(self, exc: Exception) -> bool:
        return isinstance(exc, PermissionError)

    @property
    def provider_name(self) -> str:
        """Return provider name."""
        return "mock"

    def get_last_token_usage(self) -> dict[str, int] | None:
        """Return mock token usage."""
        return self._last_token_usage
