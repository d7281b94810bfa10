"""
Configuration for scoped filesystem access.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from scoped_fs.filesystem.types import CasePolicy


class FileSystemAccessConfig(BaseModel):
    """
    Configuration for agent filesystem access restrictions.

    Defines which directories may be read and searched, how large files
    are read by line windows, and the limits applied to searches.
    """

    allowed_directories: list[Path] = Field(
        default_factory=list,
        description="Whitelisted directories (expanded to absolute paths). Empty denies everything.",
    )

    case_policy: Optional[CasePolicy] = Field(
        default=None,
        description="Path comparison policy (None = platform default)",
    )

    follow_symlinks: bool = Field(
        default=False,
        description="Descend into symlinked directories during searches (re-checked against the allow-list)",
    )

    # Reads
    file_read_line_limit: int = Field(
        default=1000,
        ge=1,
        description="Default number of lines returned when no length is given",
    )

    max_file_size_bytes: int = Field(
        default=10_000_000,  # 10 MB
        ge=0,
        description="Maximum bytes returned for images and base64-encoded binary files",
    )

    large_file_threshold_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=0,
        description="Files above this size use chunked tail reads and estimated seeks",
    )

    line_count_limit_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=0,
        description="Total line counts are only computed below this size",
    )

    small_tail_threshold: int = Field(
        default=100,
        ge=1,
        description="Tail reads up to this many lines read backwards from EOF on large files",
    )

    deep_offset_threshold: int = Field(
        default=1000,
        ge=0,
        description="Forward reads past this line on large files seek to an estimated byte position",
    )

    sample_size_bytes: int = Field(
        default=10_000,
        ge=1,
        description="Bytes sampled to estimate the average line length",
    )

    chunk_size_bytes: int = Field(
        default=8192,
        ge=1,
        description="Chunk size for reverse tail reads",
    )

    path_validation_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Timeout for path admission (seconds)",
    )

    read_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single file read (seconds)",
    )

    # Searches
    max_search_results: int = Field(
        default=1000,
        ge=1,
        le=100_000,
        description="Maximum number of search results to return",
    )

    max_search_depth: int = Field(
        default=10,
        ge=0,
        description="Default depth limit for filename searches",
    )

    search_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300.0,
        description="Timeout for content searches (seconds)",
    )

    find_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=300.0,
        description="Timeout for filename searches (seconds)",
    )

    search_exclude_directories: list[str] = Field(
        default_factory=lambda: ["node_modules", ".git", "dist"],
        description="Directory names skipped by content searches",
    )

    find_exclude_directories: list[str] = Field(
        default_factory=lambda: ["node_modules", ".git", "dist", ".cache", "tmp"],
        description="Directory names skipped by filename searches",
    )

    ripgrep_path: Optional[str] = Field(
        default=None,
        description="Path to the rg executable (None = look up 'rg' on PATH)",
    )

    ripgrep_probe_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Timeout for the ripgrep availability check (seconds)",
    )

    kill_grace_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Delay between SIGTERM and SIGKILL when stopping a search process",
    )

    @field_validator("allowed_directories", mode="before")
    @classmethod
    def expand_directories(cls, v):
        """Expand ~ and make every directory absolute."""
        if not v:
            return []
        if isinstance(v, (str, Path)):
            v = [v]
        return [Path(os.path.abspath(os.path.expanduser(str(p)))) for p in v]

    @field_validator("search_exclude_directories", "find_exclude_directories", mode="before")
    @classmethod
    def split_directory_names(cls, v):
        """Accept a comma separated string as well as a list."""
        if isinstance(v, str):
            return [name.strip() for name in v.split(",") if name.strip()]
        return v

    @property
    def effective_case_policy(self) -> CasePolicy:
        return self.case_policy or CasePolicy.for_platform()

    def __repr__(self) -> str:
        """Short representation."""
        return (
            f"FileSystemAccessConfig("
            f"allowed_dirs={len(self.allowed_directories)}, "
            f"line_limit={self.file_read_line_limit}, "
            f"max_results={self.max_search_results})"
        )
