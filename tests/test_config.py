import json
import logging

import pytest

from query_agent.config import ModelSettings, QuerySettings, get_settings
from query_agent.logging_config import JsonFormatter, configure_logging


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("AI_MODEL", "LLM_MODEL", "AI_PROVIDER", "AI_API_KEY", "LLM_API_KEY", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


class TestSettings:
    def test_defaults(self, clean_env):
        models = ModelSettings()
        query = QuerySettings()

        assert models.provider == "ollama"
        assert models.name_for_purpose("text2sql") == "sqlcoder7b"
        assert query.max_result_rows == 1000
        assert query.crud_permissions["Delete"] == "hr:admin"

    def test_environment_prefixes(self, clean_env):
        clean_env.setenv("AI_PROVIDER", "openai")
        clean_env.setenv("TEXT2SQL_MAX_RESULT_ROWS", "50")

        assert ModelSettings().provider == "openai"
        assert QuerySettings().max_result_rows == 50

    def test_legacy_llm_variables(self, clean_env):
        clean_env.setenv("LLM_MODEL", "llama3")
        clean_env.setenv("LLM_API_KEY", "secret")

        settings = ModelSettings(router_model=None)

        assert settings.api_key == "secret"
        assert settings.name_for_purpose("router") == "llama3"

    def test_get_settings_is_cached(self, clean_env):
        clean_env.setenv("AGENT_HISTORY_LIMIT", "7")

        settings = get_settings()

        assert settings.history_limit == 7
        assert get_settings() is settings


class TestLogging:
    def test_json_formatter(self):
        record = logging.LogRecord("query_agent.router", logging.INFO, __file__, 1, "路由到 %s", ("chat",), None)

        payload = json.loads(JsonFormatter().format(record))

        assert payload["logger"] == "query_agent.router"
        assert payload["level"] == "INFO"
        assert payload["message"] == "路由到 chat"

    def test_configure_logging(self):
        root = logging.getLogger()
        previous_level, previous_handlers = root.level, list(root.handlers)
        try:
            configure_logging("debug", "json")

            assert root.level == logging.DEBUG
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
        finally:
            root.handlers[:] = previous_handlers
            root.setLevel(previous_level)
