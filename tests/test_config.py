"""配置、错误与日志测试."""

import logging

import pytest

from ai_commands.config import PipelineConfig, Settings
from ai_commands.errors import (
    BudgetConfigurationError,
    ConfigurationError,
    ContentPolicyError,
    ContextLengthError,
    PipelineStage,
    UpstreamUnavailableError,
)
from ai_commands import setup_logging, setup_logging_from_settings
from ai_commands.prompt.budget import ExhaustedPolicy


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        s = Settings(_env_file=None)
        assert s.match_threshold == 0.78
        assert s.min_content_length == 50
        assert s.match_limit == 10
        assert s.context_token_cap == 1500
        assert s.budget_exhausted_policy == ExhaustedPolicy.PROCEED
        assert s.max_completion_tokens is None

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        monkeypatch.setenv("BUDGET_EXHAUSTED_POLICY", "fail")
        monkeypatch.setenv("MAX_COMPLETION_TOKENS", "512")
        monkeypatch.setenv("CONTEXT_TOKEN_CAP", "")
        s = Settings(_env_file=None)
        assert s.openai_api_key == "sk-env"
        assert s.budget_exhausted_policy == ExhaustedPolicy.FAIL
        assert s.max_completion_tokens == 512
        assert s.context_token_cap == 1500

    def test_pipeline_config_from_settings(self):
        s = Settings(
            _env_file=None,
            retrieval_model="gpt-4o",
            max_completion_tokens=700,
            match_threshold=0.5,
            match_limit=3,
            budget_exhausted_policy="fail",
        )
        config = PipelineConfig.from_settings(s)
        assert config.retrieval_model == "gpt-4o"
        assert config.retrieval.similarity_threshold == 0.5
        assert config.retrieval.limit == 3
        assert config.max_completion_tokens == 700
        budget = config.budget_for(700)
        assert budget.reserved_completion_tokens == 700
        assert budget.exhausted_policy == ExhaustedPolicy.FAIL

    def test_pipeline_config_frozen(self):
        config = PipelineConfig()
        with pytest.raises(AttributeError):
            config.retrieval_model = "other"


class TestErrors:
    def test_content_policy_details(self):
        error = ContentPolicyError({"violence", "hate"}, message_index=2)
        assert error.to_dict() == {
            "error": True,
            "code": "content_policy",
            "message": "Flagged content",
            "details": {"flagged": True, "categories": ["hate", "violence"], "message_index": 2},
        }

    def test_upstream_stage_coerced(self):
        error = UpstreamUnavailableError("embedding", "Failed to create embedding for query")
        assert error.stage is PipelineStage.EMBEDDING
        assert error.to_dict()["details"]["stage"] == "embedding"

    def test_context_length_message(self):
        error = ContextLengthError()
        assert "too long" in str(error)
        assert "details" not in error.to_dict()

    def test_budget_configuration_is_configuration_error(self):
        assert issubclass(BudgetConfigurationError, ConfigurationError)


class TestLogging:
    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_file_logging(self, tmp_path):
        root = setup_logging(log_dir=tmp_path, log_level="DEBUG", log_to_console=False)
        logging.getLogger("ai_commands.test").error("[Test] boom")
        for handler in root.handlers:
            handler.flush()

        assert "[Test] boom" in (tmp_path / "ai-commands.log").read_text(encoding="utf-8")
        assert "[Test] boom" in (tmp_path / "error.log").read_text(encoding="utf-8")
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_error_log_only_errors(self, tmp_path):
        root = setup_logging(log_dir=tmp_path, log_level="DEBUG", log_to_console=False)
        logging.getLogger("ai_commands.test").info("[Test] routine")
        for handler in root.handlers:
            handler.flush()

        assert "[Test] routine" in (tmp_path / "ai-commands.log").read_text(encoding="utf-8")
        error_log = tmp_path / "error.log"
        assert not error_log.exists() or "[Test] routine" not in error_log.read_text(encoding="utf-8")

    def test_setup_from_settings(self, tmp_path):
        settings = Settings(
            _env_file=None,
            project_root=tmp_path,
            log_dir="var/log",
            log_file_prefix="pipeline",
            log_level="WARNING",
            log_to_console=False,
            log_to_file=True,
        )
        root = setup_logging_from_settings(settings)
        logging.getLogger("ai_commands.test").info("[Test] below threshold")
        logging.getLogger("ai_commands.test").warning("[Test] budget exhausted")
        for handler in root.handlers:
            handler.flush()

        assert root.level == logging.WARNING
        main_log = (tmp_path / "var" / "log" / "pipeline.log").read_text(encoding="utf-8")
        assert "[Test] budget exhausted" in main_log
        assert "[Test] below threshold" not in main_log

    def test_console_only(self):
        settings = Settings(_env_file=None, log_to_console=True, log_to_file=False)
        root = setup_logging_from_settings(settings)
        assert [type(h).__name__ for h in root.handlers] == ["ColoredConsoleHandler"]
