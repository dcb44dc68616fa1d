"""Unified LLM client that supports multiple providers."""
from __future__ import annotations

import os
import time
from typing import Any

from deepgraph.utils.config_loader import ConfigurationError

from .anthropic_provider import AnthropicProvider
from .mock_provider import MockProvider
from .openai_provider import OpenAIProvider
from .token_tracker import get_token_tracker


class OracleError(RuntimeError):
    """A failed oracle call (network, timeout, quota, rejected credentials)."""

    def __init__(self, message: str, *, auth: bool = False):
        super().__init__(message)
        self.auth = auth


class UnifiedLLMClient:
    """
    Unified LLM client that can work with multiple providers.

    Every provider failure surfaces as OracleError so callers handle a single
    exception type regardless of the SDK underneath.
    """

    def __init__(self, cfg: dict[str, Any], profile: str = "reasoner", debug_logger=None):
        """
        Initialize unified LLM client with config and profile.

        Available providers: openai, anthropic, mock

        Args:
            cfg: Configuration dictionary
            profile: Model profile to use (key under ``models``)
            debug_logger: Optional DebugLogger instance for logging interactions

        Raises:
            ConfigurationError: unknown provider or missing credentials
        """
        self.cfg = cfg
        self.profile = profile
        self.debug_logger = debug_logger

        models_cfg = cfg.get("models", {}) if isinstance(cfg, dict) else {}
        model_config = models_cfg.get(profile) or {}
        self.model = model_config.get("model", "gpt-4o")

        # Default to openai, the original oracle
        provider_name = str(model_config.get("provider", "openai")).lower()

        timeout_cfg = cfg.get("timeouts", {})
        retry_cfg = cfg.get("retries", {})

        common_kwargs = {
            "config": cfg,
            "model_name": self.model,
            "timeout": timeout_cfg.get("request_seconds", 120),
            "retries": retry_cfg.get("max_attempts", 1),
            "backoff_min": retry_cfg.get("backoff_min_seconds", 2),
            "backoff_max": retry_cfg.get("backoff_max_seconds", 8),
        }

        logging_cfg = cfg.get("logging", {}) if isinstance(cfg, dict) else {}
        env_verbose = os.environ.get("DEEPGRAPH_LLM_VERBOSE", "").lower() in {"1","true","yes","on"}
        llm_verbose = bool(logging_cfg.get("llm_verbose", False) or env_verbose)

        try:
            if provider_name == "openai":
                self.provider = OpenAIProvider(
                    **common_kwargs,
                    temperature=model_config.get("temperature"),
                )
            elif provider_name == "anthropic":
                self.provider = AnthropicProvider(
                    **common_kwargs,
                    api_key_env=cfg.get("anthropic", {}).get("api_key_env", "ANTHROPIC_API_KEY"),
                    verbose=llm_verbose,
                    max_tokens=model_config.get("max_tokens", 4096),
                    temperature=model_config.get("temperature", 0.7),
                )
            elif provider_name == "mock":
                self.provider = MockProvider(
                    **common_kwargs,
                    mock_instance=model_config.get("mock_instance")
                )
            else:
                raise ConfigurationError(f"Unknown provider: {provider_name}")
        except ValueError as e:
            # Missing API key is a startup failure, not an oracle failure
            raise ConfigurationError(str(e)) from e

        if llm_verbose:
            print(f"[*] Initialized {self.provider.provider_name} provider with model: {self.model}")

    def raw(self, *, system: str, user: str, stage: str | None = None) -> str:
        """
        Plain text call.

        Delegates to the underlying provider and wraps any failure in OracleError.
        """
        start_time = time.time()
        error = None
        response = None

        try:
            response = self.provider.raw(system=system, user=user)

            token_usage = self.provider.get_last_token_usage()
            if token_usage:
                get_token_tracker().track_usage(
                    provider=self.provider.provider_name,
                    model=self.model,
                    input_tokens=token_usage.get('input_tokens', 0),
                    output_tokens=token_usage.get('output_tokens', 0),
                    stage=stage
                )

            return response
        except Exception as e:
            error = str(e)
            raise OracleError(
                f"{self.provider.provider_name} call failed: {e}",
                auth=self.provider.is_auth_error(e),
            ) from e
        finally:
            if self.debug_logger:
                self.debug_logger.log_interaction(
                    system_prompt=system,
                    user_prompt=user,
                    response=response,
                    duration=time.time() - start_time,
                    error=error,
                    profile=stage or self.profile
                )

    def check_credentials(self) -> None:
        """
        Validate credentials with a cheap request.

        Raises:
            ConfigurationError: the provider rejected the credentials
            OracleError: any other failure (network, quota); callers may proceed
        """
        try:
            self.provider.check_credentials()
        except Exception as e:
            if self.provider.is_auth_error(e):
                raise ConfigurationError(
                    f"{self.provider.provider_name} rejected the configured credentials: {e}"
                ) from e
            raise OracleError(f"Credential check failed: {e}") from e

    @property
    def provider_name(self) -> str:
        """Get the name of the current provider."""
        return self.provider.provider_name


LLMClient = UnifiedLLMClient
