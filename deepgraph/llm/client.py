"""LLM client entry point - re-exports the unified client and its error type."""
from __future__ import annotations

from .unified_client import OracleError, UnifiedLLMClient as LLMClient

__all__ = ['LLMClient', 'OracleError']
