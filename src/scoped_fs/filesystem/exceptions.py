"""
Exceptions for scoped filesystem operations.
"""

from typing import Optional, Sequence


class FileSystemError(Exception):
    """Base exception for filesystem operations."""

    pass


class PathDeniedError(FileSystemError):
    """Raised when a path is refused by the path gate."""

    def __init__(
        self,
        path: str,
        reason: str = "Access denied",
        allowed_directories: Optional[Sequence[str]] = None,
    ):
        self.path = path
        self.reason = reason
        self.allowed_directories = list(allowed_directories or [])
        message = f"{reason}: {path}"
        if self.allowed_directories:
            message += (
                ". Must be within one of these directories: "
                + ", ".join(self.allowed_directories)
            )
        super().__init__(message)


# Older name kept for call sites that catch the generic access error.
FileAccessDeniedError = PathDeniedError


class PathValidationTimeoutError(FileSystemError):
    """Raised when admitting a path takes longer than the validation timeout."""

    def __init__(self, path: str, timeout: float):
        self.path = path
        self.timeout = timeout
        super().__init__(
            f"Path validation timed out after {timeout}s for path: {path}"
        )


class FileSizeLimitExceededError(FileSystemError):
    """Raised when a file exceeds the size limit."""

    def __init__(self, path: str, size: int, limit: int):
        self.path = path
        self.size = size
        self.limit = limit
        super().__init__(f"File too large ({size} bytes > {limit} bytes): {path}")


class InvalidPathError(FileSystemError):
    """Raised when a path is invalid or has the wrong type."""

    def __init__(self, path: str, reason: str = "Invalid path"):
        self.path = path
        self.reason = reason
        super().__init__(f"{reason}: {path}")


class ReadTimeoutError(FileSystemError):
    """Raised when a file read does not finish in time. No partial content is returned."""

    def __init__(self, path: str, timeout: float):
        self.path = path
        self.timeout = timeout
        super().__init__(f"Read file operation timed out after {timeout}s: {path}")


class BinaryContentError(FileSystemError):
    """Raised when text is required but the file cannot be decoded as text."""

    def __init__(self, path: str, reason: str = "Cannot read binary file as text"):
        self.path = path
        self.reason = reason
        super().__init__(f"{reason}: {path}")


class SearchError(FileSystemError):
    """Raised when a search operation fails."""

    pass


class SearchTimeoutError(SearchError):
    """Raised when a search timed out before finding anything."""

    def __init__(self, timeout: float, what: str = "Search"):
        self.timeout = timeout
        super().__init__(
            f"{what} operation timed out after {timeout}s with no results. Try:\n"
            f"- Reducing search scope with a smaller max depth\n"
            f"- Adding more excluded directories\n"
            f"- Increasing the timeout"
        )
