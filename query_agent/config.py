"""
Configuration management for the query agent.

Settings are read from environment variables and an optional `.env` file.
List and mapping values are given as JSON in the environment, for example
`TEXT2SQL_ALLOWED_ENTITIES='["Employee","LeaveRequest"]'`.
"""

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ALLOWED_ENTITIES = [
    "Employee",
    "AttendanceRecord",
    "LeaveRequest",
    "LeaveBalance",
    "LeaveType",
    "PayrollRecord",
    "OrganizationUnit",
    "Position",
]

DEFAULT_BLOCKED_KEYWORDS = [
    "exec",
    "execute",
    "xp_",
    "sp_",
    "sys.",
    "information_schema",
    "--",
    "/*",
    "*/",
    ";--",
    "drop",
    "truncate",
    "alter",
]

DEFAULT_SENSITIVE_FIELDS = {
    "Employee": ["IdCardNumber", "PersonalEmail"],
    "PayrollRecord": ["*"],
    "Position": ["SalaryRangeMin", "SalaryRangeMax"],
}

DEFAULT_CRUD_PERMISSIONS = {
    "Insert": "hr:write",
    "Update": "hr:write",
    "Delete": "hr:admin",
}


class ModelSettings(BaseSettings):
    """Language model providers, per-purpose models and call resilience."""

    model_config = SettingsConfigDict(
        env_prefix="AI_", env_file=".env", extra="ignore", populate_by_name=True
    )

    provider: str = "ollama"
    # LLM_* names are accepted for compatibility with existing deployments
    api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AI_API_KEY", "LLM_API_KEY", "OPENAI_API_KEY"),
    )
    endpoint: str = Field(
        default="http://localhost:11434",
        validation_alias=AliasChoices("AI_ENDPOINT", "LLM_BASE_URL"),
    )
    model: str = Field(default="qwen3:4b", validation_alias=AliasChoices("AI_MODEL", "LLM_MODEL"))
    chat_model: Optional[str] = "qwen3:4b"
    text2sql_model: Optional[str] = "sqlcoder7b"
    router_model: Optional[str] = "qwen3:4b"

    heuristic_route_threshold: float = 0.75
    heuristic_ignore_threshold: float = 0.25
    context_messages_for_disambiguation: int = 6

    timeout_seconds: float = 60
    retry_count: int = 1
    retry_backoff_ms: int = 250
    offline_delay_seconds: float = 0.25
    temperature: float = 0.0

    def name_for_purpose(self, purpose: str) -> str:
        by_purpose = {
            "chat": self.chat_model,
            "text2sql": self.text2sql_model,
            "router": self.router_model,
        }
        return by_purpose.get(purpose) or self.model


class QuerySettings(BaseSettings):
    """Safety limits for translated structured queries."""

    model_config = SettingsConfigDict(env_prefix="TEXT2SQL_", env_file=".env", extra="ignore")

    enabled: bool = True
    enable_crud: bool = True
    max_join_tables: int = 5
    max_filters: int = 20
    max_result_rows: int = 1000
    default_result_rows: int = 100
    query_timeout_seconds: int = 30
    max_complexity_score: int = 50
    include_generated_query_in_response: bool = False

    allowed_entities: List[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_ENTITIES))
    blocked_keywords: List[str] = Field(default_factory=lambda: list(DEFAULT_BLOCKED_KEYWORDS))
    sensitive_fields: Dict[str, List[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_SENSITIVE_FIELDS.items()}
    )
    crud_permissions: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_CRUD_PERMISSIONS)
    )


class AgentSettings(BaseModel):
    """Everything the agent needs, grouped by concern."""

    models: ModelSettings = Field(default_factory=ModelSettings)
    query: QuerySettings = Field(default_factory=QuerySettings)
    history_limit: int = 20
    log_level: str = "INFO"
    log_format: str = "text"


class RuntimeSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AGENT_", env_file=".env", extra="ignore")

    history_limit: int = 20
    log_level: str = "INFO"
    log_format: str = "text"


@lru_cache
def get_settings() -> AgentSettings:
    """Load settings once per process."""
    runtime = RuntimeSettings()
    return AgentSettings(
        models=ModelSettings(),
        query=QuerySettings(),
        history_limit=runtime.history_limit,
        log_level=runtime.log_level,
        log_format=runtime.log_format,
    )
