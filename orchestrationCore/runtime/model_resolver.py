"""Default model resolver wiring using environment-derived settings.

This module converts Pydantic settings into actual model instances for the
built-in LLM workers. It builds a ModelResolver function that creates
ChatOpenAI instances on demand.

Key Functions:
    - resolve_model_configs(): Extract model configs from settings
    - build_model_resolver(): Create a resolver function that returns model instances

The resolver pattern allows lazy instantiation of models and supports dependency
injection for testing.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional, TypedDict

from langchain_openai import ChatOpenAI

from orchestrationCore.agents.interfaces import ModelResolver
from orchestrationCore.config.settings import Settings


class ModelConfig(TypedDict):
    id: str
    api_key: Optional[str]
    base_url: Optional[str]
    temperature: float


def resolve_model_configs(settings: Settings) -> Dict[str, ModelConfig]:
    """Build normalized model configs (id + credentials) from settings.

    Args:
        settings: Application settings loaded from .env

    Returns:
        Dict mapping slot names ("chat", "code") to ModelConfig dicts
    """
    models = settings.models
    return {
        "chat": {
            "id": models.chat,
            "api_key": models.chat_api_key,
            "base_url": models.chat_base_url,
            "temperature": models.temperature,
        },
        "code": {
            "id": models.code,
            "api_key": models.code_api_key,
            "base_url": models.code_base_url,
            "temperature": models.temperature,
        },
    }


def _chat_kwargs(config: ModelConfig) -> Dict[str, object]:
    if not config["api_key"]:
        raise RuntimeError(f"Missing API key for model {config['id']}; configure it in .env")
    kwargs: Dict[str, object] = {
        "model": config["id"],
        "api_key": config["api_key"],
        "temperature": config["temperature"],
    }
    if config["base_url"]:
        kwargs["base_url"] = config["base_url"]
    return kwargs


def build_model_resolver(model_configs: Dict[str, ModelConfig]) -> ModelResolver:
    """Construct a resolver that returns ChatOpenAI-compatible clients.

    Accepts either a slot name ("chat", "code") or a configured model id.
    Models are only created when requested.

    Raises:
        KeyError: If the requested slot / model id is not configured
        RuntimeError: If the API key is missing for the requested model

    Example:
        >>> resolver = build_model_resolver(resolve_model_configs(settings))
        >>> chat_model = resolver("code")
    """
    catalog: Dict[str, Callable[[], ChatOpenAI]] = {}
    for slot, config in model_configs.items():
        factory = lambda cfg=config: ChatOpenAI(**_chat_kwargs(cfg))
        catalog[slot] = factory
        catalog.setdefault(config["id"], factory)

    def resolver(model_id: str):
        if model_id not in catalog:
            raise KeyError(f"Model {model_id} is not configured")
        return catalog[model_id]()

    return resolver


__all__ = ["ModelConfig", "resolve_model_configs", "build_model_resolver"]
