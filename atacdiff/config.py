"""
Configuration settings for atacdiff.

Defaults can be overridden with ``ATACDIFF_*`` environment variables or a
``.env`` file in the working directory.
"""

from pathlib import Path
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pipeline settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ATACDIFF_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Peak merging
    max_gap: int = Field(default=500, ge=0)
    standard_chroms_only: bool = True

    # Annotation / proximity
    tss_distance: int = Field(default=1000, ge=0)
    tss_upstream: int = Field(default=3000, ge=0)
    tss_downstream: int = Field(default=3000, ge=0)

    # Differential analysis
    treatment_condition: str = "treatment"
    control_condition: str = "normal"
    fdr_threshold: float = Field(default=0.05, gt=0, le=1)
    lfc_threshold: float = Field(default=0.0, ge=0)
    n_cpus: Optional[int] = None

    # Signal-to-noise sample groups (positional indices); default: by condition
    s2n_group1: Optional[List[int]] = None
    s2n_group2: Optional[List[int]] = None

    # Output
    results_dir: Path = Path("results")
    log_level: str = "INFO"


def get_settings(**overrides) -> Settings:
    """Settings with explicit overrides (``None`` values are ignored)."""
    return Settings(**{k: v for k, v in overrides.items() if v is not None})
