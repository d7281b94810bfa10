"""
Data types shared by the scoped filesystem components.

Defines path admission decisions, read windows and results, search
queries and match records, and the engine availability states.
"""

import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Optional, Union

from pydantic import BaseModel, Field, field_validator


class CasePolicy(str, Enum):
    """How path and name comparisons treat letter case."""

    SENSITIVE = "sensitive"
    """Compare paths byte for byte (most Linux filesystems)."""

    INSENSITIVE = "insensitive"
    """Fold case before comparing (Windows, default macOS volumes)."""

    @classmethod
    def for_platform(cls, platform: Optional[str] = None) -> "CasePolicy":
        """Return the comparison policy for a ``sys.platform`` value."""
        platform = platform or sys.platform
        if platform.startswith("win") or platform == "darwin":
            return cls.INSENSITIVE
        return cls.SENSITIVE

    def fold(self, value: str) -> str:
        """Normalize a string for comparison under this policy."""
        if self is CasePolicy.INSENSITIVE:
            return value.casefold()
        return value


class DenialReason(str, Enum):
    """Why a path was refused admission."""

    TRAVERSAL = "traversal"
    """The path contains a parent-directory (``..``) segment."""

    OUTSIDE_ALLOWED_DIRECTORIES = "outside_allowed_directories"
    """The path is not equal to or nested under any allowed directory."""

    SYMLINK_ESCAPE = "symlink_escape"
    """The path (or its nearest existing ancestor) resolves outside the allowed set."""


@dataclass(frozen=True)
class PathDecision:
    """
    Outcome of admitting a path.

    ``path`` is the canonical (symlink-resolved) path when the target
    exists, otherwise the normalized absolute path.
    """

    allowed: bool
    requested: str
    path: str
    exists: bool = False
    reason: Optional[DenialReason] = None
    message: str = ""
    allowed_directories: tuple[str, ...] = ()

    @classmethod
    def admit(
        cls,
        requested: str,
        path: str,
        exists: bool,
        allowed_directories: tuple[str, ...] = (),
    ) -> "PathDecision":
        return cls(
            allowed=True,
            requested=requested,
            path=path,
            exists=exists,
            message="Path is allowed",
            allowed_directories=allowed_directories,
        )

    @classmethod
    def deny(
        cls,
        requested: str,
        path: str,
        reason: DenialReason,
        message: str,
        allowed_directories: tuple[str, ...] = (),
    ) -> "PathDecision":
        return cls(
            allowed=False,
            requested=requested,
            path=path,
            reason=reason,
            message=message,
            allowed_directories=allowed_directories,
        )


@dataclass(frozen=True)
class ReadWindow:
    """
    A logical line window into a file.

    ``offset >= 0`` starts at that 0-based line; ``offset < 0`` asks for
    the last ``abs(offset)`` lines. ``length`` caps forward reads.
    """

    offset: int = 0
    length: Optional[int] = None

    @property
    def is_tail(self) -> bool:
        return self.offset < 0

    @property
    def tail_count(self) -> int:
        return abs(self.offset)


class ReadStrategy(str, Enum):
    """How a read was performed; window reads report one of the first four."""

    REVERSE_CHUNKS = "reverse_chunks"
    RING_BUFFER = "ring_buffer"
    FORWARD = "forward"
    ESTIMATED = "estimated"
    BINARY = "binary"
    IMAGE = "image"


@dataclass
class WindowRead:
    """Lines returned for a window, without terminators."""

    lines: list[str]
    offset: int
    strategy: ReadStrategy
    total_lines: Optional[int] = None
    approximate: bool = False
    """True when the start line was estimated from an average line length."""


@dataclass
class FileReadResult:
    """Read result handed to the protocol layer."""

    content: str
    mime_type: str
    is_image: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "mimeType": self.mime_type,
            "isImage": self.is_image,
        }


class SearchQuery(BaseModel):
    """Parameters for a content search."""

    root: Union[str, Path] = Field(description="Directory to search in")
    pattern: str = Field(min_length=1, description="Regular expression to search for")
    file_pattern: Optional[str] = Field(
        default=None,
        description="Glob matched against file names, e.g. '*.py'",
    )
    ignore_case: bool = Field(default=True, description="Case-insensitive matching")
    max_results: int = Field(default=1000, ge=1, description="Maximum match records")
    max_depth: Optional[int] = Field(
        default=None,
        ge=0,
        description="Maximum directory depth below root (None = unlimited)",
    )
    exclude_dirs: list[str] = Field(
        default_factory=lambda: ["node_modules", ".git", "dist"],
        description="Directory names never descended into",
    )
    context_lines: int = Field(default=0, ge=0, description="Context lines before/after a match")
    timeout_seconds: float = Field(default=30.0, gt=0, description="Wall-clock limit")
    include_hidden: bool = Field(default=False, description="Search dot-files and dot-directories")

    @field_validator("root", mode="before")
    @classmethod
    def stringify_root(cls, v):
        """Keep the root as a plain string for the path gate."""
        return str(v)


@dataclass(frozen=True)
class SearchMatch:
    """One matching (or context) line, identical in shape for every engine."""

    file: str
    line: int
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"file": self.file, "line": self.line, "match": self.text}

    def __repr__(self) -> str:
        return f"{self.file}:{self.line}: {self.text}"


@dataclass
class SearchOutcome:
    """Matches from a content search plus how they were obtained."""

    matches: list[SearchMatch] = field(default_factory=list)
    partial: bool = False
    """True when the deadline expired before the search finished."""
    engine: str = "native"

    def __iter__(self) -> Iterator[SearchMatch]:
        return iter(self.matches)

    def __len__(self) -> int:
        return len(self.matches)


@dataclass
class NameSearchOutcome:
    """Paths found by a filename search."""

    paths: list[str] = field(default_factory=list)
    partial: bool = False

    def __iter__(self) -> Iterator[str]:
        return iter(self.paths)

    def __len__(self) -> int:
        return len(self.paths)


class EngineAvailability(str, Enum):
    """Memoized state of the external search engine."""

    UNKNOWN = "unknown"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
