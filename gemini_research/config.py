"""gemini-research configuration — loaded from .env via pydantic-settings."""

from pydantic import Field
from pydantic_settings import BaseSettings


class ResearchSettings(BaseSettings):
    """All gemini-research configuration. Reads from .env file and environment variables."""

    # --- Gemini API ---
    gemini_api_key: str = Field(
        default="",
        description="API key for the Gemini API (sent as x-goog-api-key)",
    )
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Gemini API base URL",
    )
    research_agent: str = Field(
        default="deep-research-pro-preview-12-2025",
        description="Deep Research agent used for background interactions",
    )
    refine_model: str = Field(
        default="gemini-3-pro-preview",
        description="Thinking model used for the optional refinement pass",
    )

    # --- Timeouts ---
    request_timeout: float = Field(default=30.0, description="Per-call HTTP timeout (seconds)")
    generate_timeout: float = Field(
        default=300.0,
        description="Timeout for the single-shot refinement call (seconds)",
    )
    poll_interval: float = Field(default=10.0, description="Seconds between status polls")
    max_research_minutes: float = Field(
        default=60.0,
        description="Cumulative polling deadline per job (minutes)",
    )

    # --- Registry / API ---
    default_list_limit: int = Field(default=20, description="Jobs returned by list endpoints")
    api_host: str = Field(default="127.0.0.1", description="Bind host for `gemini-research serve`")
    api_port: int = Field(default=3000, description="Bind port for `gemini-research serve`")

    # --- Logging ---
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(
        default="console",
        description="Log format: 'console' for dev, 'json' for production",
    )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def deadline_seconds(self) -> float:
        return self.max_research_minutes * 60


# Shared instance
settings = ResearchSettings()
