"""Smoke tests for quick validation.

Smoke tests are fast, critical-path tests that verify the system's basic functionality.
Run these before commits to catch obvious breakage.
"""

import logging

import pytest
import yaml

from orchestrationCore.agents.registry import CapabilityRegistry
from orchestrationCore.agents.scanner import import_factory, scan_agents_from_config
from orchestrationCore.config.project_root import get_package_root, resolve_config_path
from orchestrationCore.config.settings import DispatchSettings, get_settings
from orchestrationCore.main import build_parser, parse_slot
from orchestrationCore.planning.builder import PlanBuilder
from orchestrationCore.planning.schema import IntentType
from orchestrationCore.utils.errors import ConfigurationError
from orchestrationCore.utils.logging_utils import setup_logging


class TestBasicSetup:
    """验证基础设置和配置"""

    def test_settings_load(self):
        """测试配置加载"""
        settings = get_settings()
        assert settings is not None
        assert settings.recovery.max_retries >= 0
        assert settings.dispatch.step_timeout > 0

    def test_settings_defaults_by_field_name(self):
        dispatch = DispatchSettings(step_timeout=30, max_concurrency=8)
        assert (dispatch.step_timeout, dispatch.max_concurrency) == (30.0, 8)

    def test_package_root_accessible(self):
        """测试包路径可访问"""
        root = get_package_root()
        assert (root / "config").is_dir()

    def test_setup_logging_writes_log_file(self, tmp_path):
        logger = setup_logging(level=logging.WARNING, log_dir=tmp_path)
        logger.warning("smoke")

        try:
            assert list(tmp_path.glob("orchestration_*.log"))
            assert logger.propagate is False
        finally:
            for handler in logger.handlers:
                handler.close()
            logger.handlers = []
            logger.propagate = True


class TestConfigFiles:
    """验证配置文件存在且可解析"""

    def test_agents_config_exists(self):
        """测试 agents.yaml 存在"""
        config = yaml.safe_load(resolve_config_path(None, "agents.yaml").read_text(encoding="utf-8"))
        assert {"planner", "coder", "tutor", "deployment"} <= set(config["agents"])

    def test_intents_config_covers_every_intent(self):
        """测试 intents.yaml 覆盖所有意图"""
        registry = CapabilityRegistry()
        builder = PlanBuilder.from_config(registry)
        assert {t.value for t in IntentType} <= set(builder.intent_table)
        assert builder.fallback == ["tutor"]


class TestScanner:
    """验证 agents.yaml 扫描"""

    def test_failing_factory_is_a_configuration_error(self, tmp_path):
        config = tmp_path / "agents.yaml"
        config.write_text(
            "agents:\n"
            "  tutor:\n"
            "    workers:\n"
            "      - factory_path: conftest:ChunkingWorker\n",
            encoding="utf-8",
        )

        with pytest.raises(ConfigurationError):
            # ChunkingWorker needs constructor arguments
            scan_agents_from_config(config, settings=DispatchSettings())

    def test_scan_with_working_factory(self, tmp_path):
        config = tmp_path / "agents.yaml"
        config.write_text(
            "agents:\n"
            "  tutor:\n"
            "    timeout: 7\n"
            "    max_concurrency: 3\n"
            "    description: Explains things\n"
            "    workers:\n"
            "      - factory_path: smoke_factories:build_tutor\n"
            "  coder:\n"
            "    enabled: false\n"
            "    workers:\n"
            "      - factory_path: does.not.exist:factory\n",
            encoding="utf-8",
        )

        registry = scan_agents_from_config(config, settings=DispatchSettings())

        assert registry.agent_types() == ["tutor"]
        descriptor = registry.descriptor("tutor")
        assert (descriptor.timeout, descriptor.max_concurrency) == (7.0, 3)

    def test_import_factory_errors(self):
        with pytest.raises(ConfigurationError):
            import_factory("no_colon_here")
        with pytest.raises(ConfigurationError):
            import_factory("orchestrationCore.agents.builtin:missing")


class TestCli:
    """验证命令行参数解析"""

    def test_parse_slot(self):
        assert parse_slot("name=todo") == ("name", "todo")
        assert parse_slot("independent=true") == ("independent", True)
        assert parse_slot('stack=["react","fastapi"]') == ("stack", ["react", "fastapi"])

    def test_parser(self):
        args = build_parser().parse_args(["create_project", "--slot", "name=todo", "--quiet"])
        assert args.intent == "create_project"
        assert args.slot == [("name", "todo")]
        assert args.quiet
