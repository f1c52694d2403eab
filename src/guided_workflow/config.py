"""Configuration for the workflow interpreter host.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

The workflow definition itself is not configuration: it is a versioned
document loaded once from `WORKFLOW_PATH` and validated at startup.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class WorkflowSettings(BaseSettings):
    """Settings for the CLI and REST host.

    Environment variables:
    - WORKFLOW_PATH
    - KNOWLEDGE_DIR              (optional)
    - GUIDANCE_BASE_URL          (optional)
    - GUIDANCE_TIMEOUT_SECONDS   (optional)
    - SESSION_STATE_PATH         (optional)
    - LOG_LEVEL                  (optional)
    - WORKFLOW_CORS_ORIGINS      (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `WorkflowSettings(_env_file=path_to_env)`.
    """

    workflow_path: Path = Field(
        default=Path("workflows/export_batteries_MY_to_HK_v1.yaml"),
        validation_alias="WORKFLOW_PATH",
        description="Workflow definition (YAML) loaded once at startup",
    )

    knowledge_dir: Path | None = Field(
        default=None,
        validation_alias="KNOWLEDGE_DIR",
        description="Directory of markdown/text guidance documents served locally",
    )
    guidance_base_url: str = Field(
        default="",
        validation_alias="GUIDANCE_BASE_URL",
        description=(
            "Base URL of a remote knowledge API. Takes precedence over KNOWLEDGE_DIR "
            "for step guidance when both are set."
        ),
    )
    guidance_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        validation_alias="GUIDANCE_TIMEOUT_SECONDS",
        description="Upper bound for a single guidance lookup; on timeout the turn has no help text",
    )

    session_state_path: Path = Field(
        default=Path("agent_state/sessions"),
        validation_alias="SESSION_STATE_PATH",
        description="Directory where per-session state is persisted",
    )

    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    cors_origins: str = Field(
        default="http://localhost:5173,http://127.0.0.1:5173",
        validation_alias="WORKFLOW_CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins.",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _check_log_level(self) -> WorkflowSettings:
        if self.log_level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported LOG_LEVEL: {self.log_level}")
        return self

    def parsed_cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]
