"""Orchestration core - CLI entrypoint.

Runs a single request through the Supervisor and prints the response::

    orchestration-core create_project --slot name=todo-app --slot 'stack=["react","fastapi"]'
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

# Add project root to path to support direct execution
if __name__ == "__main__":
    project_root = Path(__file__).parent.parent
    sys.path.insert(0, str(project_root))

from orchestrationCore.config.settings import get_settings
from orchestrationCore.execution.log import ExecutionLog
from orchestrationCore.planning.schema import ExecutionPlan, Intent
from orchestrationCore.runtime.app import build_supervisor
from orchestrationCore.runtime.supervisor import UserRequest
from orchestrationCore.utils.errors import ConfigurationError
from orchestrationCore.utils.logging_utils import setup_logging


def parse_slot(raw: str) -> tuple[str, Any]:
    """``key=value``; the value is parsed as JSON when possible."""
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"slot must look like key=value (got {raw!r})")
    try:
        return key, json.loads(value)
    except json.JSONDecodeError:
        return key, value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="orchestration-core",
        description="Run one request through the multi-agent orchestration core.",
    )
    parser.add_argument("intent", nargs="?", help="Intent type, e.g. create_project (omit to classify --text)")
    parser.add_argument("--text", default="", help="Raw user text")
    parser.add_argument("--slot", action="append", default=[], type=parse_slot, metavar="KEY=VALUE",
                        help="Intent slot; may be repeated")
    parser.add_argument("--confidence", type=float, default=1.0)
    parser.add_argument("--user-id", default="cli-user")
    parser.add_argument("--project-id", default=None)
    parser.add_argument("--language", default="en")
    parser.add_argument("--agents-config", default=None, help="Path to agents.yaml")
    parser.add_argument("--intents-config", default=None, help="Path to intents.yaml")
    parser.add_argument("--quiet", action="store_true", help="Do not stream execution log entries")
    return parser


async def _follow(log: ExecutionLog) -> None:
    async for entry in log.subscribe():
        detail = f" {dict(entry.detail)}" if entry.detail else ""
        print(f"[{entry.sequence:03d}] {entry.step_id} {entry.event.value}{detail}", file=sys.stderr)


async def async_main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logger = setup_logging(
        level=getattr(logging, settings.observability.log_level.upper(), logging.INFO),
        log_dir=settings.observability.log_dir,
        detail_max_length=settings.observability.log_detail_max_length,
    )

    try:
        supervisor = build_supervisor(
            settings=settings,
            agents_config=args.agents_config,
            intents_config=args.intents_config,
        )
    except ConfigurationError as e:
        logger.error(f"Fatal error during startup: {e}", exc_info=True)
        print(f"\n❌ 启动失败: {e.user_message}")
        return 2

    slots: Dict[str, Any] = dict(args.slot)
    intent = Intent(type=args.intent, confidence=args.confidence, slots=slots) if args.intent else None
    request = UserRequest(
        user_id=args.user_id,
        intent=intent,
        text=args.text,
        project_id=args.project_id,
        language=args.language,
    )

    followers: List[asyncio.Task] = []

    def on_plan_started(plan: ExecutionPlan, log: ExecutionLog) -> None:
        logger.info(f"Plan {plan.id} started with {len(plan.steps)} steps")
        if not args.quiet:
            followers.append(asyncio.create_task(_follow(log)))

    try:
        response = await supervisor.process_user_request(request, on_plan_started=on_plan_started)
        await asyncio.gather(*followers)
    finally:
        await supervisor.close()

    print(json.dumps(response.to_dict(), ensure_ascii=False, indent=2, default=str))
    return 0 if response.ok else 1


def main() -> None:
    """Synchronous wrapper for async_main."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
