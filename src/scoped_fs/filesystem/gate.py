"""
Path admission against an allow-list of directories.

Every read and search goes through PathGate before touching the disk.
The gate normalizes the requested path, rejects traversal sequences,
checks containment with a separator-qualified prefix match, and returns
the symlink-resolved path so later operations act on the real target.
"""

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import Optional, Sequence, Union

from scoped_fs.filesystem.config import FileSystemAccessConfig
from scoped_fs.filesystem.exceptions import (
    InvalidPathError,
    PathDeniedError,
    PathValidationTimeoutError,
)
from scoped_fs.filesystem.telemetry import TelemetrySink, capture
from scoped_fs.filesystem.types import CasePolicy, DenialReason, PathDecision

logger = logging.getLogger(__name__)

_SEGMENT_SPLIT = re.compile(r"[\\/]+")


class PathGate:
    """
    Admits or denies paths against a set of allowed directories.

    An empty allow-list denies every path.

    Usage:
        gate = PathGate(["/workspace"], case_policy=CasePolicy.SENSITIVE)

        decision = await gate.admit("/workspace/src/main.py")
        if decision.allowed:
            open(decision.path)

        # Or raise PathDeniedError on denial:
        real_path = await gate.require("/workspace/src/main.py")
    """

    def __init__(
        self,
        allowed_directories: Sequence[Union[str, Path]],
        case_policy: Optional[CasePolicy] = None,
        timeout_seconds: float = 10.0,
        telemetry: Optional[TelemetrySink] = None,
    ):
        """
        Initialize the gate.

        Args:
            allowed_directories: Directories that may be accessed
            case_policy: Comparison policy (default: platform policy)
            timeout_seconds: Limit for a single admission
            telemetry: Optional sink for denial/timeout events
        """
        self.case_policy = case_policy or CasePolicy.for_platform()
        self.timeout_seconds = timeout_seconds
        self.telemetry = telemetry

        self._roots: list[str] = []
        self._real_roots: list[str] = []
        for directory in allowed_directories:
            normalized = self.normalize(str(directory))
            if normalized not in self._roots:
                self._roots.append(normalized)
            real = os.path.realpath(normalized)
            if real not in self._real_roots:
                self._real_roots.append(real)

    @classmethod
    def from_config(
        cls, config: FileSystemAccessConfig, telemetry: Optional[TelemetrySink] = None
    ) -> "PathGate":
        return cls(
            config.allowed_directories,
            case_policy=config.effective_case_policy,
            timeout_seconds=config.path_validation_timeout_seconds,
            telemetry=telemetry,
        )

    @property
    def allowed_directories(self) -> tuple[str, ...]:
        return tuple(self._roots)

    @staticmethod
    def normalize(requested: str) -> str:
        """Expand ``~``, collapse separators and make the path absolute."""
        path = requested.strip()
        if os.sep == "\\":
            path = re.sub(r"\\+", r"\\", path)
        path = os.path.expanduser(path)
        return os.path.normpath(os.path.abspath(path))

    @staticmethod
    def has_traversal(path: str) -> bool:
        """True if any path segment is ``..``."""
        return ".." in _SEGMENT_SPLIT.split(path)

    def is_within(self, path: str, directory: str) -> bool:
        """Equality or separator-qualified prefix match under the case policy."""
        path = self.case_policy.fold(path)
        directory = self.case_policy.fold(directory)
        if path == directory:
            return True
        prefix = directory if directory.endswith(os.sep) else directory + os.sep
        return path.startswith(prefix)

    def is_allowed(self, path: str) -> bool:
        """Check a normalized or resolved path against the allowed directories."""
        return any(self.is_within(path, root) for root in self._roots) or any(
            self.is_within(path, root) for root in self._real_roots
        )

    def evaluate(self, requested: Union[str, Path]) -> PathDecision:
        """
        Admit or deny a path synchronously.

        Args:
            requested: Path as given by the caller

        Returns:
            PathDecision with the canonical path when allowed

        Raises:
            InvalidPathError: If the path is empty or not a string
        """
        if not isinstance(requested, (str, os.PathLike)) or not str(requested).strip():
            raise InvalidPathError(str(requested), "Invalid file path provided")

        requested = os.fspath(requested)
        checked = self.allowed_directories

        if self.has_traversal(requested):
            return PathDecision.deny(
                requested,
                requested,
                DenialReason.TRAVERSAL,
                "Path contains directory traversal sequences (..)",
                checked,
            )

        normalized = self.normalize(requested)
        if self.has_traversal(normalized):
            return PathDecision.deny(
                requested,
                normalized,
                DenialReason.TRAVERSAL,
                "Path contains directory traversal sequences (..)",
                checked,
            )

        if not self._roots:
            return PathDecision.deny(
                requested,
                normalized,
                DenialReason.OUTSIDE_ALLOWED_DIRECTORIES,
                "Path not allowed, no allowed directories are configured",
                checked,
            )

        if not self.is_allowed(normalized):
            return PathDecision.deny(
                requested,
                normalized,
                DenialReason.OUTSIDE_ALLOWED_DIRECTORIES,
                "Path not allowed",
                checked,
            )

        if os.path.exists(normalized):
            try:
                real = os.path.realpath(normalized, strict=True)
            except (OSError, RuntimeError) as e:
                logger.debug(f"Cannot resolve {normalized}, treating as new path: {e}")
                real = None
            if real is not None:
                if not self.is_allowed(real):
                    return self._escape(requested, real, checked)
                return PathDecision.admit(requested, real, True, checked)

        if os.path.islink(normalized):
            # Dangling link: its eventual target must stay inside too.
            target = os.path.realpath(normalized)
            if not self.is_allowed(target):
                return self._escape(requested, target, checked)

        ancestor = self._nearest_existing_ancestor(normalized)
        if ancestor is not None and self.is_allowed(ancestor):
            real_ancestor = os.path.realpath(ancestor)
            if not self.is_allowed(real_ancestor):
                return self._escape(requested, real_ancestor, checked)

        return PathDecision.admit(requested, normalized, False, checked)

    async def admit(self, requested: Union[str, Path]) -> PathDecision:
        """
        Admit or deny a path under the validation timeout.

        Filesystem checks run in a worker thread so a stalled mount
        cannot block the event loop past the timeout.

        Raises:
            PathValidationTimeoutError: If validation does not finish in time
            InvalidPathError: If the path is empty or not a string
        """
        try:
            decision = await asyncio.wait_for(
                asyncio.to_thread(self.evaluate, requested),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Path validation timed out after {self.timeout_seconds}s: {requested}"
            )
            capture(
                self.telemetry,
                "path_validation_timeout",
                timeout_seconds=self.timeout_seconds,
            )
            raise PathValidationTimeoutError(str(requested), self.timeout_seconds)

        if not decision.allowed:
            logger.warning(
                f"Path access denied: {requested} ({decision.reason.value})"
            )
            capture(
                self.telemetry,
                "path_validation_error",
                reason=decision.reason.value,
                allowed_dirs_count=len(self._roots),
            )
        return decision

    async def require(self, requested: Union[str, Path]) -> str:
        """
        Admit a path or raise.

        Returns:
            The canonical path

        Raises:
            PathDeniedError: If the path is denied
            PathValidationTimeoutError: If validation times out
        """
        decision = await self.admit(requested)
        if not decision.allowed:
            raise PathDeniedError(
                decision.requested, decision.message, decision.allowed_directories
            )
        return decision.path

    def _escape(
        self, requested: str, resolved: str, checked: tuple[str, ...]
    ) -> PathDecision:
        return PathDecision.deny(
            requested,
            resolved,
            DenialReason.SYMLINK_ESCAPE,
            f"Path resolves to {resolved}, outside the allowed directories",
            checked,
        )

    @staticmethod
    def _nearest_existing_ancestor(path: str) -> Optional[str]:
        current = path
        while True:
            parent = os.path.dirname(current)
            if parent == current:
                return None
            if os.path.exists(parent):
                return parent
            current = parent

    def __repr__(self) -> str:
        return (
            f"PathGate(allowed_dirs={len(self._roots)}, "
            f"case_policy={self.case_policy.value})"
        )
