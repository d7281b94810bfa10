"""
scoped-fs - scoped file access and search for sandboxed agents.

This package gives an agent read and search access to a fixed set of
allowed directories: path admission, line-window reads of large files,
and content/filename search with ripgrep or a native fallback.
"""

__version__ = "0.1.0"

from scoped_fs.filesystem import (
    ContentSearchEngine,
    FileSystemAccessConfig,
    FileSystemError,
    FilenameTreeWalker,
    LLMFileSystemTools,
    PathDeniedError,
    PathGate,
    ReadWindow,
    RestrictedFileReader,
    SearchQuery,
)

from scoped_fs.settings import (
    ScopedFsConfig,
    ScopedFsSettings,
    load_config,
)

__all__ = [
    # Version
    "__version__",
    # Filesystem
    "ContentSearchEngine",
    "FileSystemAccessConfig",
    "FileSystemError",
    "FilenameTreeWalker",
    "LLMFileSystemTools",
    "PathDeniedError",
    "PathGate",
    "ReadWindow",
    "RestrictedFileReader",
    "SearchQuery",
    # Settings
    "ScopedFsConfig",
    "ScopedFsSettings",
    "load_config",
]
