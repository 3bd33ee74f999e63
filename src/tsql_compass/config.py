"""Configuration management for compass.

Environment settings come from the process environment and an optional .env
file (python-dotenv). Assessment tuning (weights, group ranking, report
options) lives in an optional YAML file validated with pydantic.
"""
from __future__ import annotations
import os
from pathlib import Path
from typing import Literal

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from tsql_compass.errors import ConfigurationError
from tsql_compass.status import Status

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        self.report_root = os.getenv("COMPASS_REPORT_ROOT", str(Path.home() / "CompassReports"))
        self.target_version = os.getenv("COMPASS_TARGET_VERSION", "1.0")
        self.config_path = os.getenv("COMPASS_CONFIG", "")
        self.log_level = os.getenv("COMPASS_LOG_LEVEL", "INFO").upper()

        # Export bulk load
        self.database_url = os.getenv("DATABASE_URL", "")


settings = Settings()


class ReportOptions(BaseModel):
    """What to include in a generated report."""
    xref: list[Literal["feature", "object"]] = Field(
        default_factory=lambda: ["feature", "object"],
        description="Cross-reference sections to generate"
    )
    statuses: list[str] = Field(
        default_factory=lambda: ["attention"],
        description="Statuses listed in cross-references: 'attention', 'all', or status names"
    )
    show_batch_nr: bool = Field(False, description="Show batch numbers in the feature x-ref")
    apps_count: bool = Field(True, description="Show per-application counts in the summary")
    detail: bool = Field(False, description="Append item detail to items in cross-references")
    filter: str = Field("", description="Regex; only items matching it are reported")
    max_line_nrs_in_list: int = Field(10, ge=1, description="Line numbers shown before '(+N more)'")
    html: bool = Field(True, description="Also write an HTML report")

    @field_validator("statuses")
    @classmethod
    def validate_statuses(cls, v: list[str]) -> list[str]:
        for name in v:
            if name.lower() in ("attention", "all"):
                continue
            try:
                Status.from_name(name)
            except ValueError:
                raise ValueError(f"Unknown status '{name}'")
        return v

    def xref_statuses(self) -> set[Status]:
        result: set[Status] = set()
        for name in self.statuses:
            if name.lower() == "all":
                result.update(s for s in Status if s.is_reported)
            elif name.lower() == "attention":
                result.update(s for s in Status if s.is_attention)
            else:
                result.add(Status.from_name(name))
        return result


class CompassConfig(BaseModel):
    """Complete assessment configuration."""
    target_version: str = Field("1.0", description="Version of the target engine being assessed")
    report_root: str = Field("~/CompassReports", description="Directory holding all reports")
    weights: dict[str, int] = Field(
        default_factory=dict,
        description="Feature group -> weight used instead of the status weight"
    )
    group_sort: dict[str, int] = Field(
        default_factory=dict,
        description="Feature group -> rank (0-999) for ordering groups in reports"
    )
    report: ReportOptions = Field(default_factory=ReportOptions)
    sort_buffer_keys: int = Field(200_000, ge=1, description="Distinct keys kept in memory before spilling")
    rules_path: str | None = Field(None, description="Replacement rule table (YAML)")

    @field_validator("weights")
    @classmethod
    def validate_weights(cls, v: dict[str, int]) -> dict[str, int]:
        for group, weight in v.items():
            if weight < 0 or weight > 1000:
                raise ValueError(f"weight for '{group}' must be between 0 and 1000")
        return v

    @field_validator("group_sort")
    @classmethod
    def validate_group_sort(cls, v: dict[str, int]) -> dict[str, int]:
        for group, rank in v.items():
            if rank < 0 or rank > 999:
                raise ValueError(f"group_sort for '{group}' must be between 0 and 999")
        return v

    @classmethod
    def from_yaml(cls, path: str | Path) -> CompassConfig:
        """Load configuration from YAML file.

        Raises:
            ConfigurationError: If the file is missing, empty or invalid
        """
        config_path = Path(path)

        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        with open(config_path, 'r') as f:
            data = yaml.safe_load(f)

        if not data:
            raise ConfigurationError(f"Empty configuration file: {config_path}")

        try:
            return cls.model_validate(data)
        except Exception as e:
            raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e


def load_config(config_path: str | Path | None = None) -> CompassConfig:
    """Load configuration from an explicit file, COMPASS_CONFIG, or defaults.

    Environment settings fill in the target version and report root when
    no file is given.
    """
    path = config_path or settings.config_path
    if path:
        return CompassConfig.from_yaml(path)
    return CompassConfig(
        target_version=settings.target_version,
        report_root=settings.report_root,
    )
