"""LLM-backed planner, coder and tutor workers.

Referenced from config/agents.yaml. Each factory builds a
``prompt | model | parser`` chain through the model resolver; the model
itself (an OpenAI-compatible endpoint) stays outside the core.
"""

from __future__ import annotations

from langchain_core.output_parsers import JsonOutputParser, StrOutputParser
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder

from orchestrationCore.config.settings import Settings, get_settings
from orchestrationCore.runtime.model_resolver import build_model_resolver, resolve_model_configs

from .workers import RunnableWorker

PLANNER_SYSTEM_PROMPT = """You are the planning agent of a coding assistant.
Design the architecture for the user's project request.

Respond with JSON only, in this shape:
{{"summary": "<one paragraph>",
  "architecture": {{"components": [{{"name": "<name>", "category": "frontend|backend|database|infrastructure", "responsibility": "<text>"}}]}}}}

Reply in language: {language}"""

CODER_SYSTEM_PROMPT = """You are the coding agent of a coding assistant.
Write the source files that fulfil the request. Outputs of earlier steps
(architecture, diagnosis) are given as upstream context.

Respond with JSON only, in this shape:
{{"files": [{{"path": "<relative path>", "language": "<python|javascript|json|...>", "content": "<file content>"}}],
  "notes": "<short explanation>"}}"""

TUTOR_SYSTEM_PROMPT = """You are the tutor agent of a coding assistant.
Explain clearly and concisely, with short code snippets where useful.
Reply in language: {language}"""

HUMAN_TEMPLATE = "Request:\n{request}\n\nUpstream results:\n{upstream}"


def _prompt(system_prompt: str) -> ChatPromptTemplate:
    return ChatPromptTemplate.from_messages([
        ("system", system_prompt),
        MessagesPlaceholder("history"),
        ("human", HUMAN_TEMPLATE),
    ])


def build_planner_worker(settings: Settings | None = None) -> RunnableWorker:
    settings = settings or get_settings()
    resolver = build_model_resolver(resolve_model_configs(settings))
    chain = _prompt(PLANNER_SYSTEM_PROMPT) | resolver("chat") | JsonOutputParser()
    return RunnableWorker("llm-planner", chain)


def build_coder_worker(settings: Settings | None = None) -> RunnableWorker:
    settings = settings or get_settings()
    resolver = build_model_resolver(resolve_model_configs(settings))
    chain = _prompt(CODER_SYSTEM_PROMPT) | resolver("code") | JsonOutputParser()
    return RunnableWorker("llm-coder", chain)


def build_tutor_worker(settings: Settings | None = None) -> RunnableWorker:
    settings = settings or get_settings()
    resolver = build_model_resolver(resolve_model_configs(settings))
    chain = _prompt(TUTOR_SYSTEM_PROMPT) | resolver("chat") | StrOutputParser()
    return RunnableWorker("llm-tutor", chain)


__all__ = ["build_planner_worker", "build_coder_worker", "build_tutor_worker"]
