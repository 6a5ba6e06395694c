"""Application configuration."""

import os
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from reqgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


def find_env_file() -> Optional[Path]:
    """Find .env file in the package directory or the repository root."""
    current_dir = os.path.dirname(os.path.abspath(__file__))

    possible_paths = [
        os.path.join(current_dir, ".env"),
        os.path.join(os.path.dirname(current_dir), ".env"),
        os.path.join(os.path.dirname(os.path.dirname(current_dir)), ".env"),
    ]

    for path_str in possible_paths:
        if os.path.exists(path_str):
            path = Path(path_str)
            LOGGER.info(f"Found .env file at: {path}")
            return path

    LOGGER.debug("No .env file found, using environment only")
    return None


ENV_FILE = find_env_file()

_SETTINGS_CONFIG = SettingsConfigDict(
    env_file=str(ENV_FILE) if ENV_FILE else None,
    env_file_encoding="utf-8",
    case_sensitive=False,
    extra="ignore",
    env_prefix="",
)


class Neo4jSettings(BaseSettings):
    """Neo4j connection settings."""
    uri: str = Field(default="neo4j://localhost:7687", validation_alias="NEO4J_URI")
    username: str = Field(default="neo4j", validation_alias="NEO4J_USERNAME")
    password: str = Field(default="password", validation_alias="NEO4J_PASSWORD")
    database: str = Field(default="neo4j", validation_alias="NEO4J_DATABASE")
    encrypted: bool = Field(default=False, validation_alias="NEO4J_ENCRYPTED")

    model_config = _SETTINGS_CONFIG


class WorkspaceSettings(BaseSettings):
    """Markdown workspace settings."""
    root: str = Field(default="./workspace", validation_alias="WORKSPACE_ROOT")
    default_tenant: str = Field(default="default", validation_alias="DEFAULT_TENANT")

    model_config = _SETTINGS_CONFIG


class PaginationSettings(BaseSettings):
    """List paging limits."""
    default_limit: int = Field(default=100, validation_alias="LIST_DEFAULT_LIMIT")
    max_limit: int = Field(default=1000, validation_alias="LIST_MAX_LIMIT")
    suggest_default_limit: int = Field(default=3, validation_alias="SUGGEST_DEFAULT_LIMIT")

    model_config = _SETTINGS_CONFIG


class ArchitectureSettings(BaseSettings):
    """Defaults applied to new diagram placements."""
    default_block_width: int = Field(default=220, validation_alias="ARCH_DEFAULT_BLOCK_WIDTH")
    default_block_height: int = Field(default=140, validation_alias="ARCH_DEFAULT_BLOCK_HEIGHT")

    model_config = _SETTINGS_CONFIG


class Settings(BaseSettings):
    """Unified application settings with nested models."""

    app_name: str = Field(default="reqgraph", validation_alias="APP_NAME")
    app_version: str = "0.1.0"
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    neo4j: Neo4jSettings = Field(default_factory=lambda: Neo4jSettings())
    workspace: WorkspaceSettings = Field(default_factory=lambda: WorkspaceSettings())
    pagination: PaginationSettings = Field(default_factory=lambda: PaginationSettings())
    architecture: ArchitectureSettings = Field(default_factory=lambda: ArchitectureSettings())

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def workspace_root(self) -> str:
        return self.workspace.root

    @property
    def default_tenant(self) -> str:
        return self.workspace.default_tenant


settings = Settings()

LOGGER.info(f"Settings initialized with environment: {settings.environment}")
