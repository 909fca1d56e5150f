"""Application assembly for the orchestration core.

Builds a ready-to-use Supervisor by:
1. Loading settings
2. Configuring tracing for the LLM-backed workers
3. Scanning agents.yaml into a CapabilityRegistry
4. Loading the intent table into a PlanBuilder
5. Wiring the Validator and (optionally) an intent classifier
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Optional

from orchestrationCore.agents.interfaces import IntentClassifier
from orchestrationCore.agents.registry import CapabilityRegistry
from orchestrationCore.agents.scanner import scan_agents_from_config
from orchestrationCore.config.settings import ObservabilitySettings, Settings, get_settings
from orchestrationCore.execution.validator import Validator
from orchestrationCore.planning.builder import PlanBuilder, StepSelector

from .supervisor import Supervisor

LOGGER = logging.getLogger(__name__)


def configure_tracing(settings: ObservabilitySettings) -> None:
    """Configure environment variables for LangSmith tracing."""

    if settings.langsmith_project:
        os.environ["LANGCHAIN_PROJECT"] = settings.langsmith_project
    if settings.langsmith_api_key:
        os.environ["LANGCHAIN_API_KEY"] = settings.langsmith_api_key
    if settings.tracing_enabled:
        os.environ["LANGCHAIN_TRACING_V2"] = "true"


def build_supervisor(
    registry: Optional[CapabilityRegistry] = None,
    *,
    settings: Optional[Settings] = None,
    agents_config: Optional[str | Path] = None,
    intents_config: Optional[str | Path] = None,
    classifier: Optional[IntentClassifier] = None,
    selectors: Optional[Iterable[StepSelector]] = None,
) -> Supervisor:
    """Build a Supervisor from settings and YAML configuration.

    Args:
        registry: Pre-populated registry (skips agents.yaml scanning)
        settings: Settings instance (default: cached get_settings())
        agents_config: Override path for agents.yaml
        intents_config: Override path for intents.yaml
        classifier: Intent classifier for requests that carry raw text only
        selectors: Step selectors (default: builder defaults)

    Returns:
        Supervisor ready to process requests
    """
    # ========== Step 1: Settings & tracing ==========
    settings = settings or get_settings()
    configure_tracing(settings.observability)

    # ========== Step 2: Capability registry ==========
    if registry is None:
        registry = scan_agents_from_config(agents_config, settings=settings.dispatch)

    # ========== Step 3: Plan builder ==========
    builder = PlanBuilder.from_config(
        registry,
        intents_config or settings.dispatch.intents_config,
        selectors=selectors,
    )

    # ========== Step 4: Supervisor ==========
    supervisor = Supervisor(
        registry,
        builder,
        classifier=classifier,
        validator=Validator.from_settings(registry, settings.validation),
        settings=settings,
    )

    LOGGER.info("[Orchestration App] Supervisor built successfully")
    LOGGER.info(f"[Orchestration App] Agent types: {registry.agent_types()}")
    return supervisor


__all__ = ["build_supervisor", "configure_tracing"]
