"""
Centralized configuration loading and validation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


class ConfigurationError(Exception):
    """Invalid or incomplete configuration; raised before a run starts."""


DEFAULT_DOMAIN = "self-healing composite materials"

DEFAULT_CATEGORIES = [
    "Materials components (e.g., polymer matrices, reinforcement materials, healing agents)",
    "Mechanisms of self-healing",
    "Sensing and activation methods",
    "Applications and use cases",
]

CREDENTIALED_PROVIDERS = ("openai", "anthropic")


def load_config(config_path: Path | None = None) -> dict[str, Any]:
    """
    Load configuration from YAML file.

    Priority order:
    1. Explicitly provided config_path
    2. DEEPGRAPH_CONFIG environment variable
    3. config.yaml in current directory
    4. config.yaml in the deepgraph package directory
    5. config.example.yaml in the deepgraph package directory
    6. Empty dict as fallback

    An explicit path that does not exist raises ConfigurationError.
    """
    if config_path is not None:
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")
        return _read_yaml(config_path)

    if os.environ.get('DEEPGRAPH_CONFIG'):
        env_config = Path(os.environ['DEEPGRAPH_CONFIG'])
        if env_config.exists():
            return _read_yaml(env_config)

    cwd_config = Path.cwd() / "config.yaml"
    if cwd_config.exists():
        return _read_yaml(cwd_config)

    package_dir = Path(__file__).parent.parent
    for name in ("config.yaml", "config.example.yaml"):
        candidate = package_dir / name
        if candidate.exists():
            return _read_yaml(candidate)

    # Commands still run with built-in defaults
    return {}


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse config file {path}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping at the top level")
    return data


def _as_int(section: dict, key: str, default: int, minimum: int) -> int:
    value = section.get(key, default)
    # bool is an int subclass; "true" is never a valid count
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"reasoner.{key} must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(f"reasoner.{key} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class StopSettings:
    """Optional early-exit rule; disabled when min_new_items is None."""
    min_new_items: int | None = None
    patience: int = 1


@dataclass(frozen=True)
class ReasonerSettings:
    """Validated view of the ``reasoner`` and ``output`` config sections."""
    model: str = "gpt-4o"
    provider: str = "openai"
    max_iterations: int = 10
    domain: str = DEFAULT_DOMAIN
    categories: tuple[str, ...] = tuple(DEFAULT_CATEGORIES)
    seed_prompt: str | None = None
    system_prompt: str | None = None
    delay_ms: int = 1000
    min_vertices: int = 2
    top_k: int = 5
    validate_credentials: bool = False
    stop: StopSettings = field(default_factory=StopSettings)
    snapshots_dir: Path = Path("graph_data")
    visualizations_dir: Path = Path("graph_visualizations")
    visualize: bool = True

    @classmethod
    def from_config(cls, config: dict[str, Any], profile: str = "reasoner") -> ReasonerSettings:
        """Build settings from a loaded config dict, raising ConfigurationError on bad values."""
        if not isinstance(config, dict):
            raise ConfigurationError("Configuration must be a mapping")
        section = config.get("reasoner") or {}
        output = config.get("output") or {}
        model_cfg = (config.get("models") or {}).get(profile) or {}
        if not isinstance(section, dict) or not isinstance(output, dict) or not isinstance(model_cfg, dict):
            raise ConfigurationError("Config sections 'reasoner', 'output' and 'models' must be mappings")

        max_iterations = _as_int(section, "max_iterations", cls.max_iterations, 1)
        delay_ms = _as_int(section, "delay_ms", cls.delay_ms, 0)
        min_vertices = _as_int(section, "min_vertices", cls.min_vertices, 1)
        top_k = _as_int(section, "top_k", cls.top_k, 3)

        domain = str(section.get("domain") or DEFAULT_DOMAIN).strip()
        if not domain:
            raise ConfigurationError("reasoner.domain must not be empty")

        categories = section.get("categories", DEFAULT_CATEGORIES)
        if not isinstance(categories, list) or not all(isinstance(c, str) for c in categories):
            raise ConfigurationError("reasoner.categories must be a list of strings")

        stop_cfg = section.get("stop") or {}
        if not isinstance(stop_cfg, dict):
            raise ConfigurationError("reasoner.stop must be a mapping")
        stop = StopSettings()
        if stop_cfg.get("min_new_items") is not None:
            stop = StopSettings(
                min_new_items=_as_int(stop_cfg, "min_new_items", 1, 0),
                patience=_as_int(stop_cfg, "patience", 1, 1),
            )

        provider = str(model_cfg.get("provider", cls.provider)).lower()
        # Unset: real providers check their key before the first cycle
        validate = section.get("validate_credentials")
        if validate is None:
            validate = provider in CREDENTIALED_PROVIDERS

        model = model_cfg.get("model") or cls.model
        return cls(
            model=str(model),
            provider=provider,
            max_iterations=max_iterations,
            domain=domain,
            categories=tuple(categories),
            seed_prompt=section.get("seed_prompt") or None,
            system_prompt=section.get("system_prompt") or None,
            delay_ms=delay_ms,
            min_vertices=min_vertices,
            top_k=top_k,
            validate_credentials=bool(validate),
            stop=stop,
            snapshots_dir=Path(output.get("snapshots_dir") or cls.snapshots_dir),
            visualizations_dir=Path(output.get("visualizations_dir") or cls.visualizations_dir),
            visualize=bool(output.get("visualize", True)),
        )
