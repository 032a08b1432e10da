"""Configuration management for cellflow."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CellFlowConfig(BaseSettings):
    """Application configuration loaded from environment variables.

    Environment variables should be prefixed with CELLFLOW_
    Example: CELLFLOW_ANTHROPIC_API_KEY=sk-ant-...

    Attributes:
        anthropic_api_key: API key for Claude
        model: Claude model used to execute cells
        max_tokens: Maximum tokens per cell response
        default_timeout_ms: Timeout for cells that do not set their own
        chars_per_token: Divisor used to estimate tokens when the provider reports none
        cost_per_token: Nominal cost per estimated token
        strict_dependencies: Reject dependencies on unknown cells before a run
        strict_placeholders: Fail a cell whose content has unresolved placeholders
        store_dir: Directory for the JSON file store
        log_level: Logging level for the CLI
    """

    # API Configuration
    anthropic_api_key: str = Field(
        default="",
        description="Anthropic API key for Claude",
    )
    model: str = Field(
        default="claude-sonnet-4-5-20250929",
        description="Claude model used to execute cells",
    )
    max_tokens: int = Field(
        default=4000,
        ge=1,
        description="Maximum tokens per cell response",
    )

    # Execution Configuration
    default_timeout_ms: int = Field(
        default=60000,
        ge=1,
        description="Timeout for cells that do not set their own",
    )
    chars_per_token: int = Field(
        default=4,
        ge=1,
        description="Characters per token when estimating usage",
    )
    cost_per_token: float = Field(
        default=0.000001,
        ge=0,
        description="Nominal cost per estimated token",
    )
    strict_dependencies: bool = Field(
        default=False,
        description="Treat dependencies on unknown cells as configuration errors",
    )
    strict_placeholders: bool = Field(
        default=False,
        description="Fail cells whose content references missing outputs",
    )

    # Storage / Output Configuration
    store_dir: str = Field(
        default="notebooks",
        description="Directory for the JSON file store",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CELLFLOW_",
        case_sensitive=False,
        extra="ignore",
    )


# Global config instance (lazy-loaded)
_config: CellFlowConfig | None = None


def get_config() -> CellFlowConfig:
    """Get or create the global configuration instance.

    Returns:
        CellFlowConfig: The configuration object
    """
    global _config
    if _config is None:
        _config = CellFlowConfig()
    return _config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _config
    _config = None
