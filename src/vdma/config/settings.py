"""Configuration management using Pydantic Settings."""

from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Directories
    output_dir: Path = Field(Path("output"))

    # Logging
    log_level: str = Field("INFO")
    log_format: str = Field("json", pattern="^(json|text)$")

    # Pooling
    alpha: float = Field(0.05, gt=0.0, lt=1.0, description="Two-sided significance level for CIs")
    continuity_increment: float = Field(0.5, gt=0.0, description="Added to zero-cell 2x2 tables")
    min_studies: int = Field(2, ge=1, description="Minimum eligible studies per outcome/variant")

    # Batch execution
    max_workers: int = Field(1, ge=1, le=64)

    # Publication bias and figures
    egger_min_studies: int = Field(10, ge=3)
    figure_dpi: int = Field(300, ge=50)

    @field_validator("output_dir")
    @classmethod
    def _expand_dir(cls, v: Path) -> Path:
        return v.expanduser()


# Instantiate global settings
settings = Settings()
