"""
Configuration models for graphgate.

Configuration is loaded from the ``[graphgate]`` section of a TOML file:

    [graphgate]
    result_limit = 100
    graphql_path = "/api/graphql"

    [graphgate.permissions.readonly-scope.Widget]
    get = "all"

    [graphgate.permissions]
    admin = ["*"]
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from graphgate.core.fetch_plan import DEFAULT_RESULT_LIMIT
from graphgate.core.permissions import PermissionTable
from graphgate.logging import get_logger

logger = get_logger("config")

CONFIG_SECTION = "graphgate"


class GraphGateConfig(BaseModel):
    """Complete graphgate configuration."""

    result_limit: int = Field(
        default=DEFAULT_RESULT_LIMIT,
        ge=1,
        description="Default and maximum number of rows a list query returns",
    )
    graphql_path: str = "/graphql"
    enable_graphiql: bool = True
    mask_internal_errors: bool = True
    log_dir: Path = Path(".graphgate/logs")
    log_level: str = "INFO"
    permissions: PermissionTable | None = Field(
        default=None,
        description="Scope permission table; permission checking is off when absent",
    )

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("graphql_path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("graphql_path must start with '/'")
        return v.rstrip("/") or "/"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level '{v}'")
        return level


# =============================================================================
# Configuration Loading
# =============================================================================


def load_config(toml_path: Path | str) -> GraphGateConfig:
    """
    Load configuration from a TOML file.

    Args:
        toml_path: Path to the TOML file

    Returns:
        GraphGateConfig with values from the file, or defaults when the file
        or its ``[graphgate]`` section is missing

    Raises:
        tomllib.TOMLDecodeError: The file is not valid TOML
        pydantic.ValidationError: The section holds invalid values
    """
    toml_path = Path(toml_path)
    if not toml_path.exists():
        logger.debug("No config file at %s; using defaults", toml_path)
        return GraphGateConfig()

    with open(toml_path, "rb") as f:
        data = tomllib.load(f)

    section = data.get(CONFIG_SECTION, {})
    if not section:
        return GraphGateConfig()

    return GraphGateConfig.model_validate(section)
