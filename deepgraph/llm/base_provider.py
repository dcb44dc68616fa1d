"""Base provider interface for LLM clients."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class BaseLLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    def __init__(self, config: dict[str, Any], model_name: str, **kwargs):
        """Initialize the provider with configuration."""
        pass

    @abstractmethod
    def raw(self, *, system: str, user: str) -> str:
        """
        Make a plain text call.

        Args:
            system: System prompt
            user: User prompt

        Returns:
            Raw text response
        """
        pass

    @abstractmethod
    def check_credentials(self) -> None:
        """
        Perform a cheap authenticated request.

        Raises the provider SDK's own exception when the key is rejected.
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name for logging."""
        pass

    def is_auth_error(self, exc: Exception) -> bool:
        """Return whether an exception raised by this provider means bad credentials."""
        return False

    def get_last_token_usage(self) -> dict[str, int] | None:
        """Return token usage from the last call if available.

        Returns:
            Dict with 'input_tokens', 'output_tokens', 'total_tokens' or None
        """
        return None
