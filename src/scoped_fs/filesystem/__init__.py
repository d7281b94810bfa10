"""
Scoped filesystem access for sandboxed agents.

Path admission against allowed directories, line-window file reads and
content/filename searches, all bounded by deadlines.
"""

from scoped_fs.filesystem.cancellation import CancellationToken
from scoped_fs.filesystem.config import FileSystemAccessConfig
from scoped_fs.filesystem.exceptions import (
    BinaryContentError,
    FileAccessDeniedError,
    FileSizeLimitExceededError,
    FileSystemError,
    InvalidPathError,
    PathDeniedError,
    PathValidationTimeoutError,
    ReadTimeoutError,
    SearchError,
    SearchTimeoutError,
)
from scoped_fs.filesystem.finder import FilenameTreeWalker
from scoped_fs.filesystem.gate import PathGate
from scoped_fs.filesystem.mime import ExtensionMimeClassifier, MimeClassifier
from scoped_fs.filesystem.probe import EngineAvailabilityProbe
from scoped_fs.filesystem.reader import RestrictedFileReader
from scoped_fs.filesystem.search import (
    ContentSearchEngine,
    EngineUnavailable,
    NativeSearchBackend,
    RipgrepBackend,
    SearchBackend,
)
from scoped_fs.filesystem.telemetry import (
    LoggingTelemetry,
    RecordingTelemetry,
    TelemetrySink,
)
from scoped_fs.filesystem.tools import LLMFileSystemTools
from scoped_fs.filesystem.types import (
    CasePolicy,
    DenialReason,
    EngineAvailability,
    FileReadResult,
    NameSearchOutcome,
    PathDecision,
    ReadStrategy,
    ReadWindow,
    SearchMatch,
    SearchOutcome,
    SearchQuery,
    WindowRead,
)

__all__ = [
    # Config
    "FileSystemAccessConfig",
    # Types
    "CasePolicy",
    "DenialReason",
    "EngineAvailability",
    "FileReadResult",
    "NameSearchOutcome",
    "PathDecision",
    "ReadStrategy",
    "ReadWindow",
    "SearchMatch",
    "SearchOutcome",
    "SearchQuery",
    "WindowRead",
    # Exceptions
    "BinaryContentError",
    "FileAccessDeniedError",
    "FileSizeLimitExceededError",
    "FileSystemError",
    "InvalidPathError",
    "PathDeniedError",
    "PathValidationTimeoutError",
    "ReadTimeoutError",
    "SearchError",
    "SearchTimeoutError",
    # Components
    "CancellationToken",
    "ContentSearchEngine",
    "EngineAvailabilityProbe",
    "EngineUnavailable",
    "ExtensionMimeClassifier",
    "FilenameTreeWalker",
    "LLMFileSystemTools",
    "LoggingTelemetry",
    "MimeClassifier",
    "NativeSearchBackend",
    "PathGate",
    "RecordingTelemetry",
    "RestrictedFileReader",
    "RipgrepBackend",
    "SearchBackend",
    "TelemetrySink",
]
