"""
scoped-fs configuration.

Configuration is read from a YAML or JSON file, or from environment
variables with the ``SCOPED_FS_`` prefix.
"""

import json
import os
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from scoped_fs.filesystem.config import FileSystemAccessConfig

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ScopedFsSettings(BaseSettings):
    """
    Settings read from the environment.

    List values are plain strings: directories are separated by
    ``os.pathsep`` and excluded names by commas.

    Environment variables:
        SCOPED_FS_ALLOWED_DIRECTORIES - Allowed directories (e.g. /workspace:/data)
        SCOPED_FS_FILE_READ_LINE_LIMIT - Default lines per read
        SCOPED_FS_MAX_SEARCH_RESULTS - Result cap for searches
        SCOPED_FS_MAX_SEARCH_DEPTH - Depth cap for filename searches
        SCOPED_FS_SEARCH_TIMEOUT_SECONDS - Content search timeout
        SCOPED_FS_FIND_TIMEOUT_SECONDS - Filename search timeout
        SCOPED_FS_SEARCH_EXCLUDE_DIRECTORIES - Names skipped by content search
        SCOPED_FS_FIND_EXCLUDE_DIRECTORIES - Names skipped by filename search
        SCOPED_FS_RIPGREP_PATH - rg executable
        SCOPED_FS_FOLLOW_SYMLINKS - Descend into symlinked directories
        SCOPED_FS_LOG_LEVEL - Log level
    """

    model_config = SettingsConfigDict(env_prefix="SCOPED_FS_", extra="ignore")

    allowed_directories: str = ""
    file_read_line_limit: Optional[int] = None
    max_search_results: Optional[int] = None
    max_search_depth: Optional[int] = None
    search_timeout_seconds: Optional[float] = None
    find_timeout_seconds: Optional[float] = None
    search_exclude_directories: Optional[str] = None
    find_exclude_directories: Optional[str] = None
    ripgrep_path: Optional[str] = None
    follow_symlinks: Optional[bool] = None
    log_level: str = "INFO"

    def filesystem_options(self) -> dict[str, Any]:
        """Options for FileSystemAccessConfig, leaving unset values at their defaults."""
        options: dict[str, Any] = {
            "allowed_directories": [
                d for d in self.allowed_directories.split(os.pathsep) if d.strip()
            ],
        }
        for name in (
            "file_read_line_limit",
            "max_search_results",
            "max_search_depth",
            "search_timeout_seconds",
            "find_timeout_seconds",
            "search_exclude_directories",
            "find_exclude_directories",
            "ripgrep_path",
            "follow_symlinks",
        ):
            value = getattr(self, name)
            if value is not None:
                options[name] = value
        return options


class ScopedFsConfig(BaseModel):
    """
    Complete scoped-fs configuration.

    Example:
        ```python
        config = ScopedFsConfig(
            filesystem=FileSystemAccessConfig(allowed_directories=["/workspace"]),
            log_level="DEBUG",
        )

        # Load from file
        config = ScopedFsConfig.from_file("~/.scoped-fs/config.yaml")
        ```
    """

    model_config = {"extra": "forbid"}

    filesystem: FileSystemAccessConfig = Field(
        default_factory=FileSystemAccessConfig,
        description="Filesystem access restrictions and limits",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ScopedFsConfig":
        """
        Load configuration from a YAML or JSON file.

        File format (YAML):
            ```yaml
            filesystem:
              allowed_directories:
                - ~/projects
                - /workspace
              file_read_line_limit: 500
              search_timeout_seconds: 20
            log_level: INFO
            ```

        Args:
            path: Path to configuration file

        Returns:
            Loaded ScopedFsConfig instance

        Raises:
            FileNotFoundError: If the config file doesn't exist
        """
        path = Path(path).expanduser().resolve()

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        content = path.read_text()

        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content)
        elif path.suffix == ".json":
            data = json.loads(content)
        else:
            # Try YAML first, then JSON
            try:
                data = yaml.safe_load(content)
            except yaml.YAMLError:
                data = json.loads(content)

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: dict) -> "ScopedFsConfig":
        """Create configuration from a dictionary."""
        return cls(**data)

    @classmethod
    def from_env(cls, settings: Optional[ScopedFsSettings] = None) -> "ScopedFsConfig":
        """
        Load configuration from ``SCOPED_FS_*`` environment variables.

        Args:
            settings: Pre-loaded settings (read from the environment if omitted)
        """
        settings = settings or ScopedFsSettings()
        return cls(
            filesystem=FileSystemAccessConfig(**settings.filesystem_options()),
            log_level=settings.log_level,
        )

    def to_dict(self) -> dict:
        """Export configuration to a plain dictionary."""
        return self.model_dump(mode="json")

    def save(self, path: Union[str, Path], format: str = "yaml") -> None:
        """
        Save configuration to a file.

        Args:
            path: Output file path
            format: Output format ('yaml' or 'json')
        """
        path = Path(path).expanduser().resolve()
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self.to_dict()

        if format == "yaml":
            content = yaml.dump(data, default_flow_style=False, sort_keys=False)
        else:
            content = json.dumps(data, indent=2)

        path.write_text(content)


def load_config(path: Optional[Union[str, Path]] = None) -> ScopedFsConfig:
    """
    Load configuration from ``path``, or from the environment when no path is given.

    Allowed directories from ``SCOPED_FS_ALLOWED_DIRECTORIES`` are added to
    the ones listed in the file.
    """
    if path is None:
        return ScopedFsConfig.from_env()

    config = ScopedFsConfig.from_file(path)
    extra = ScopedFsSettings().filesystem_options()["allowed_directories"]
    if extra:
        directories = [str(d) for d in config.filesystem.allowed_directories] + extra
        config.filesystem = config.filesystem.model_copy(
            update={"allowed_directories": FileSystemAccessConfig(
                allowed_directories=directories
            ).allowed_directories}
        )
    return config
