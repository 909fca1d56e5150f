"""Agent scanner - builds the Capability Registry from agents.yaml.

Responsibilities:
1. Read agent descriptors from agents.yaml
2. Dynamically import worker factory functions
3. Register descriptors and worker candidates in a CapabilityRegistry
"""

from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml

from orchestrationCore.config.project_root import resolve_config_path
from orchestrationCore.config.settings import DispatchSettings, get_settings
from orchestrationCore.utils.errors import ConfigurationError

from .registry import CapabilityRegistry
from .schema import AgentDescriptor

LOGGER = logging.getLogger(__name__)


def import_factory(factory_path: str) -> Callable:
    """Dynamically import a worker factory.

    Args:
        factory_path: "module.path:callable"

    Returns:
        The factory function or class

    Raises:
        ConfigurationError: Malformed path, missing module or attribute

    Examples:
        >>> factory = import_factory("orchestrationCore.agents.builtin:build_tutor_worker")
        >>> worker = factory()
    """
    try:
        module_path, attr_name = factory_path.split(":")
        module = importlib.import_module(module_path)
        return getattr(module, attr_name)
    except (ValueError, ImportError, AttributeError) as e:
        LOGGER.error(f"Failed to import worker factory '{factory_path}': {e}")
        raise ConfigurationError(f"Invalid worker factory '{factory_path}': {e}") from e


def load_agents_config(config_path: Path) -> Dict[str, Any]:
    """Load and parse agents.yaml (missing file → empty config)."""
    if not config_path.exists():
        LOGGER.warning(f"Agents config not found: {config_path}")
        return {}

    with open(config_path, "r", encoding="utf-8") as f:
        try:
            config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Malformed agents config {config_path}: {e}") from e

    LOGGER.info(f"Loaded agents configuration from {config_path}")
    return config


def parse_descriptor(agent_type: str, config: Dict[str, Any], defaults: DispatchSettings) -> AgentDescriptor:
    """Build an AgentDescriptor from one YAML entry."""
    try:
        return AgentDescriptor(
            agent_type=agent_type,
            max_concurrency=int(config.get("max_concurrency", defaults.max_concurrency)),
            timeout=float(config.get("timeout", defaults.step_timeout)),
            generative=bool(config.get("generative", True)),
            description=config.get("description", ""),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid descriptor for agent type '{agent_type}': {e}") from e


def scan_agents_from_config(
    config_path: Optional[str | Path] = None,
    registry: Optional[CapabilityRegistry] = None,
    settings: Optional[DispatchSettings] = None,
) -> CapabilityRegistry:
    """Register every enabled agent type from agents.yaml.

    Args:
        config_path: Path to agents.yaml (default: bundled config, or
            ORCH_AGENTS_CONFIG)
        registry: Registry to populate (default: a new one)
        settings: Dispatch defaults for fields the YAML leaves out

    Returns:
        The populated CapabilityRegistry
    """
    settings = settings or get_settings().dispatch
    registry = registry or CapabilityRegistry.from_settings(settings)
    path = resolve_config_path(config_path or settings.agents_config, "agents.yaml")
    config = load_agents_config(path)

    for agent_type, agent_config in (config.get("agents") or {}).items():
        agent_config = agent_config or {}
        if not agent_config.get("enabled", True):
            LOGGER.info(f"Agent type {agent_type} disabled in config, skipping")
            continue

        registry.register_agent(parse_descriptor(agent_type, agent_config, settings))

        for worker_config in agent_config.get("workers") or []:
            factory = import_factory(worker_config["factory_path"])
            try:
                worker = factory()
            except Exception as e:
                raise ConfigurationError(
                    f"Worker factory '{worker_config['factory_path']}' failed: {e}"
                ) from e
            registry.register(agent_type, worker)

        if not registry.is_registered(agent_type):
            LOGGER.warning(f"Agent type {agent_type} is enabled but has no workers")

    stats = registry.get_stats()
    LOGGER.info(f"Capability registry loaded: {stats['agent_types']} agent types")
    return registry


__all__ = ["import_factory", "load_agents_config", "parse_descriptor", "scan_agents_from_config"]
