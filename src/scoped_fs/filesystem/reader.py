"""
Line-window file reader for safe agent access to files.

Files are read by logical line windows. The read strategy depends on
the file size and the sign of the requested offset, so that tail reads
and deep reads into very large files stay bounded in memory and time.
"""

import asyncio
import base64
import io
import logging
import os
import re
import stat
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, Union

from scoped_fs.filesystem.cancellation import CancellationToken
from scoped_fs.filesystem.config import FileSystemAccessConfig
from scoped_fs.filesystem.exceptions import (
    BinaryContentError,
    FileSizeLimitExceededError,
    FileSystemError,
    InvalidPathError,
    ReadTimeoutError,
)
from scoped_fs.filesystem.gate import PathGate
from scoped_fs.filesystem.mime import ExtensionMimeClassifier, MimeClassifier
from scoped_fs.filesystem.telemetry import LoggingTelemetry, TelemetrySink, capture
from scoped_fs.filesystem.types import (
    FileReadResult,
    ReadStrategy,
    ReadWindow,
    WindowRead,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

_LINE_BREAK_BYTES = re.compile(rb"\r\n|\n|\r")
_LINES_WITH_ENDINGS = re.compile(r"[^\r\n]*(?:\r\n|\n|\r)|[^\r\n]+\Z")

# Lines between deadline checks in streaming loops.
_CHECK_EVERY = 1000


def strip_line_ending(line: str) -> str:
    """Remove exactly one trailing ``\\r\\n``, ``\\n`` or ``\\r``."""
    if line.endswith("\r\n"):
        return line[:-2]
    if line.endswith(("\n", "\r")):
        return line[:-1]
    return line


def split_lines_preserving_endings(content: str) -> list[str]:
    """Split text into lines, each keeping its original terminator."""
    return _LINES_WITH_ENDINGS.findall(content)


def split_lines(content: str) -> list[str]:
    """Split text into lines without terminators (a final terminator adds no empty line)."""
    return [strip_line_ending(line) for line in split_lines_preserving_endings(content)]


def _split_line_bytes(data: bytes) -> list[bytes]:
    parts = _LINE_BREAK_BYTES.split(data)
    if parts and parts[-1] == b"":
        parts.pop()
    return parts


def format_status_message(
    read_lines: int,
    offset: int,
    total_lines: Optional[int] = None,
    approximate: bool = False,
) -> str:
    """Build the status line shown above display-mode content."""
    if offset < 0:
        if total_lines is not None:
            return f"[Reading last {read_lines} lines (total: {total_lines} lines)]"
        return f"[Reading last {read_lines} lines]"

    if offset == 0:
        start = "from start"
    elif approximate:
        start = f"from approximately line {offset}"
    else:
        start = f"from line {offset}"

    if total_lines is not None:
        remaining = max(0, total_lines - (offset + read_lines))
        return (
            f"[Reading {read_lines} lines {start} "
            f"(total: {total_lines} lines, {remaining} remaining)]"
        )
    return f"[Reading {read_lines} lines {start}]"


class RestrictedFileReader:
    """
    Secure file reader with path admission and line windows.

    Only reads files admitted by the PathGate. Text is returned by line
    window; undecodable files degrade to base64 content; images are
    always returned whole as base64.

    Usage:
        config = FileSystemAccessConfig(allowed_directories=[Path("/workspace")])
        reader = RestrictedFileReader(config)

        result = await reader.read_file("/workspace/app.log", offset=-20)
        print(result.content)

        # Exact bytes for edit operations
        text = await reader.read_file_internal("/workspace/main.py")
    """

    def __init__(
        self,
        config: FileSystemAccessConfig,
        gate: Optional[PathGate] = None,
        mime: Optional[MimeClassifier] = None,
        telemetry: Optional[TelemetrySink] = None,
    ):
        """
        Initialize the file reader.

        Args:
            config: Filesystem access configuration
            gate: Path gate (built from config if omitted)
            mime: MIME classifier (extension based if omitted)
            telemetry: Event sink (debug log if omitted)
        """
        self.config = config
        self.telemetry = telemetry or LoggingTelemetry()
        self.gate = gate or PathGate.from_config(config, telemetry=self.telemetry)
        self.mime = mime or ExtensionMimeClassifier()

    # Public API

    async def read_window(
        self, path: PathLike, window: Optional[ReadWindow] = None
    ) -> WindowRead:
        """
        Read a window of lines from a text file.

        Args:
            path: File to read
            window: Offset/length window (default: first ``file_read_line_limit`` lines)

        Returns:
            WindowRead with the lines, the strategy used and the total line count when known

        Raises:
            PathDeniedError: If the path is not admitted
            BinaryContentError: If the file is not valid UTF-8 text
            ReadTimeoutError: If the read takes longer than the read timeout
        """
        window = window or ReadWindow()
        real_path = await self._admit_file(path)
        try:
            return await self._run_with_timeout(
                real_path, lambda token: self._read_window_sync(real_path, window, token)
            )
        except UnicodeDecodeError:
            raise BinaryContentError(real_path)

    async def read_file(
        self, path: PathLike, offset: int = 0, length: Optional[int] = None
    ) -> FileReadResult:
        """
        Read a file for display.

        Text files get a status line followed by the requested lines.
        Images are returned whole as base64. Files that fail to decode
        as UTF-8 are returned as base64 text instead of raising.

        Args:
            path: File to read
            offset: First line (0-based), or negative for the last ``-offset`` lines
            length: Maximum lines (default: ``file_read_line_limit``)

        Returns:
            FileReadResult with content, MIME type and image flag

        Raises:
            PathDeniedError: If the path is not admitted
            FileNotFoundError: If the file doesn't exist
            FileSizeLimitExceededError: If an image is larger than the size limit
            ReadTimeoutError: If the read takes longer than the read timeout
        """
        if length is None:
            length = self.config.file_read_line_limit

        real_path = await self._admit_file(path)
        extension = Path(real_path).suffix.lower()

        try:
            file_size = os.path.getsize(real_path)
            capture(
                self.telemetry,
                "read_file",
                file_extension=extension,
                offset=offset,
                length=length,
                file_size=file_size,
            )
        except OSError as e:
            logger.warning(f"Cannot stat {real_path}: {e}")
            capture(self.telemetry, "read_file_error", error=str(e), file_extension=extension)

        mime_type, is_image = self.mime.classify(real_path)

        if is_image:
            return await self._run_with_timeout(
                real_path, lambda token: self._read_image_sync(real_path, mime_type)
            )

        window = ReadWindow(offset=offset, length=length)
        return await self._run_with_timeout(
            real_path,
            lambda token: self._read_display_sync(real_path, window, mime_type, token),
        )

    async def read_file_internal(
        self, path: PathLike, offset: int = 0, length: Optional[int] = None
    ) -> str:
        """
        Read file content exactly, preserving original line endings.

        Mixed ``\\n`` / ``\\r\\n`` endings round-trip unchanged. Never
        estimates positions and adds no status line.

        Args:
            path: File to read
            offset: First line (0-based), or negative for the last ``-offset`` lines
            length: Maximum lines (None = through end of file)

        Returns:
            The selected content, terminators attached

        Raises:
            BinaryContentError: If the file is an image or not valid UTF-8
        """
        real_path = await self._admit_file(path)

        _, is_image = self.mime.classify(real_path)
        if is_image:
            raise BinaryContentError(
                real_path, "Cannot read image files as text for internal operations"
            )

        try:
            return await self._run_with_timeout(
                real_path,
                lambda token: self._read_internal_sync(real_path, offset, length),
            )
        except UnicodeDecodeError:
            raise BinaryContentError(real_path)

    async def read_multiple_files(self, paths: list[PathLike]) -> list[dict[str, Any]]:
        """
        Read several files concurrently.

        Failures are reported per file and never raised.

        Returns:
            One dict per path: ``{path, content, mimeType, isImage}`` or ``{path, error}``
        """

        async def read_one(path: PathLike) -> dict[str, Any]:
            try:
                result = await self.read_file(path)
                return {"path": str(path), **result.to_dict()}
            except (FileSystemError, OSError) as e:
                logger.warning(f"Skipping file {path}: {e}")
                return {"path": str(path), "error": str(e)}

        return list(await asyncio.gather(*(read_one(p) for p in paths)))

    async def get_file_info(self, path: PathLike) -> dict[str, Any]:
        """
        Get metadata for a file or directory.

        Text files below the line count limit also report ``lineCount``,
        ``lastLine`` (0-based) and ``appendPosition``.
        """
        real_path = await self.gate.require(path)
        return await asyncio.to_thread(self._file_info_sync, real_path)

    async def list_directory(self, path: PathLike) -> list[str]:
        """
        List a directory as ``[DIR] name`` / ``[FILE] name`` entries.

        Raises:
            PathDeniedError: If the path is not admitted
            InvalidPathError: If the path is not a directory
        """
        real_path = await self.gate.require(path)
        if not os.path.isdir(real_path):
            raise InvalidPathError(real_path, "Path is not a directory")

        def scan() -> list[str]:
            with os.scandir(real_path) as entries:
                return [
                    f"{'[DIR]' if entry.is_dir() else '[FILE]'} {entry.name}"
                    for entry in sorted(entries, key=lambda e: e.name)
                ]

        listing = await asyncio.to_thread(scan)
        logger.debug(f"Listed {len(listing)} entries in {real_path}")
        return listing

    async def check_access(self, path: PathLike) -> tuple[bool, str]:
        """
        Check if a file can be read without reading it.

        Returns:
            Tuple of (can_access, reason)
        """
        try:
            decision = await self.gate.admit(path)
        except FileSystemError as e:
            return False, str(e)

        if not decision.allowed:
            return False, decision.message
        if not decision.exists:
            return False, "File not found"
        if not os.path.isfile(decision.path):
            return False, "Path is not a regular file"
        return True, "Access allowed"

    def select_strategy(self, file_size: int, window: ReadWindow) -> ReadStrategy:
        """Pick the read algorithm for a file size and window."""
        config = self.config
        if window.is_tail:
            if (
                file_size > config.large_file_threshold_bytes
                and window.tail_count <= config.small_tail_threshold
            ):
                return ReadStrategy.REVERSE_CHUNKS
            return ReadStrategy.RING_BUFFER

        if file_size < config.large_file_threshold_bytes or window.offset == 0:
            return ReadStrategy.FORWARD
        if window.offset > config.deep_offset_threshold:
            return ReadStrategy.ESTIMATED
        return ReadStrategy.FORWARD

    # Admission and timeouts

    async def _admit_file(self, path: PathLike) -> str:
        real_path = await self.gate.require(path)
        if not os.path.exists(real_path):
            raise FileNotFoundError(f"File not found: {real_path}")
        if not os.path.isfile(real_path):
            raise InvalidPathError(real_path, "Path is not a regular file")
        return real_path

    async def _run_with_timeout(
        self, path: str, work: Callable[[CancellationToken], Any]
    ) -> Any:
        timeout = self.config.read_timeout_seconds
        token = CancellationToken(timeout)
        try:
            return await asyncio.wait_for(asyncio.to_thread(work, token), timeout=timeout)
        except asyncio.TimeoutError:
            token.cancel()
            logger.error(f"Read timed out after {timeout}s: {path}")
            capture(self.telemetry, "read_file_timeout", timeout_seconds=timeout)
            raise ReadTimeoutError(path, timeout)

    def _check(self, token: CancellationToken, path: str) -> None:
        if token.cancelled:
            raise ReadTimeoutError(path, self.config.read_timeout_seconds)

    # Synchronous read paths (run in a worker thread)

    def _read_window_sync(
        self, path: str, window: ReadWindow, token: CancellationToken
    ) -> WindowRead:
        file_size = os.path.getsize(path)
        length = window.length if window.length is not None else self.config.file_read_line_limit
        strategy = self.select_strategy(file_size, window)
        approximate = False

        if strategy is ReadStrategy.REVERSE_CHUNKS:
            lines = self._read_tail_reverse(path, window.tail_count, token)
        elif strategy is ReadStrategy.RING_BUFFER:
            lines = self._read_tail_ring_buffer(path, window.tail_count, token)
        elif strategy is ReadStrategy.ESTIMATED:
            lines, approximate = self._read_estimated(path, window.offset, length, token)
            if not approximate:
                strategy = ReadStrategy.FORWARD
        else:
            lines = self._read_forward(path, window.offset, length, token)

        total_lines = self._count_lines(path, file_size, token)
        logger.debug(
            f"Read {len(lines)} lines from {path} using {strategy.value} "
            f"({file_size} bytes)"
        )
        return WindowRead(
            lines=lines,
            offset=window.offset,
            strategy=strategy,
            total_lines=total_lines,
            approximate=approximate,
        )

    def _read_display_sync(
        self, path: str, window: ReadWindow, mime_type: str, token: CancellationToken
    ) -> FileReadResult:
        try:
            result = self._read_window_sync(path, window, token)
        except UnicodeDecodeError as e:
            logger.info(f"{path} is not UTF-8 text ({e.reason}), returning base64")
            capture(
                self.telemetry,
                "read_file_binary_fallback",
                file_extension=Path(path).suffix.lower(),
            )
            return self._read_binary_sync(path)

        status = format_status_message(
            len(result.lines), window.offset, result.total_lines, result.approximate
        )
        content = f"{status}\n\n" + "\n".join(result.lines)
        return FileReadResult(content=content, mime_type=mime_type, is_image=False)

    def _read_binary_sync(self, path: str) -> FileReadResult:
        limit = self.config.max_file_size_bytes
        file_size = os.path.getsize(path)
        with open(path, "rb") as fh:
            data = fh.read(limit)

        if file_size > limit:
            header = (
                f"Binary file content (base64 encoded, first {limit} of "
                f"{file_size} bytes):"
            )
        else:
            header = "Binary file content (base64 encoded):"
        encoded = base64.b64encode(data).decode("ascii")
        logger.debug(
            f"Read {len(data)} bytes from {path} using {ReadStrategy.BINARY.value}"
        )
        return FileReadResult(
            content=f"{header}\n{encoded}", mime_type="text/plain", is_image=False
        )

    def _read_image_sync(self, path: str, mime_type: str) -> FileReadResult:
        file_size = os.path.getsize(path)
        if file_size > self.config.max_file_size_bytes:
            logger.warning(
                f"Image too large: {path} ({file_size} bytes > "
                f"{self.config.max_file_size_bytes} bytes)"
            )
            raise FileSizeLimitExceededError(
                path, file_size, self.config.max_file_size_bytes
            )
        with open(path, "rb") as fh:
            encoded = base64.b64encode(fh.read()).decode("ascii")
        logger.debug(f"Read {file_size} bytes from {path} using {ReadStrategy.IMAGE.value}")
        return FileReadResult(content=encoded, mime_type=mime_type, is_image=True)

    def _read_internal_sync(
        self, path: str, offset: int, length: Optional[int]
    ) -> str:
        with open(path, "r", encoding="utf-8", newline="") as fh:
            content = fh.read()

        if offset == 0 and length is None:
            return content

        lines = split_lines_preserving_endings(content)
        if offset == 0 and length >= len(lines):
            return content
        if offset < 0:
            return "".join(lines[offset:])
        end = None if length is None else offset + length
        return "".join(lines[offset:end])

    def _read_forward(
        self, path: str, offset: int, length: int, token: CancellationToken
    ) -> list[str]:
        result: list[str] = []
        if length <= 0:
            return result

        with open(path, "r", encoding="utf-8", newline="") as fh:
            for number, line in enumerate(fh):
                if number % _CHECK_EVERY == 0:
                    self._check(token, path)
                if number < offset:
                    continue
                result.append(strip_line_ending(line))
                if len(result) >= length:
                    break
        return result

    def _read_tail_ring_buffer(
        self, path: str, count: int, token: CancellationToken
    ) -> list[str]:
        ring: deque[str] = deque(maxlen=count)
        with open(path, "r", encoding="utf-8", newline="") as fh:
            for number, line in enumerate(fh):
                if number % _CHECK_EVERY == 0:
                    self._check(token, path)
                ring.append(strip_line_ending(line))
        return list(ring)

    def _read_tail_reverse(
        self, path: str, count: int, token: CancellationToken
    ) -> list[str]:
        chunk_size = self.config.chunk_size_bytes
        with open(path, "rb") as fh:
            position = fh.seek(0, os.SEEK_END)
            buffer = b""
            while position > 0:
                self._check(token, path)
                read_size = min(chunk_size, position)
                position -= read_size
                fh.seek(position)
                buffer = fh.read(read_size) + buffer

                segments = _split_line_bytes(buffer)
                # The first segment may start mid-line until we reach the start of file.
                complete = segments if position == 0 else segments[1:]
                if len(complete) >= count:
                    break

        segments = _split_line_bytes(buffer)
        if position > 0:
            segments = segments[1:]
        return [segment.decode("utf-8") for segment in segments[-count:]]

    def _read_estimated(
        self, path: str, offset: int, length: int, token: CancellationToken
    ) -> tuple[list[str], bool]:
        with open(path, "rb") as fh:
            sample = fh.read(self.config.sample_size_bytes)
        sample_lines = len(_LINE_BREAK_BYTES.findall(sample))

        # No line break in the sample: nothing to estimate from.
        if sample_lines == 0:
            return self._read_forward(path, offset, length, token), False

        average_line_length = len(sample) / sample_lines
        file_size = os.path.getsize(path)
        start = min(int(offset * average_line_length), file_size)

        result: list[str] = []
        with open(path, "rb") as raw:
            raw.seek(start)
            if start > 0:
                raw.readline()  # possibly partial line
            with io.TextIOWrapper(raw, encoding="utf-8", newline="") as fh:
                for number, line in enumerate(fh):
                    if number % _CHECK_EVERY == 0:
                        self._check(token, path)
                    if len(result) >= length:
                        break
                    result.append(strip_line_ending(line))
        return result, True

    def _count_lines(
        self, path: str, file_size: int, token: CancellationToken
    ) -> Optional[int]:
        """Count lines for files below the line count limit, else None."""
        if file_size >= self.config.line_count_limit_bytes:
            return None
        try:
            count = 0
            with open(path, "r", encoding="utf-8", errors="replace", newline="") as fh:
                for count, _ in enumerate(fh, start=1):
                    if count % _CHECK_EVERY == 0 and token.cancelled:
                        return None
            return count
        except OSError as e:
            logger.debug(f"Cannot count lines in {path}: {e}")
            return None

    def _file_info_sync(self, path: str) -> dict[str, Any]:
        stats = os.stat(path)
        info: dict[str, Any] = {
            "size": stats.st_size,
            "created": datetime.fromtimestamp(
                getattr(stats, "st_birthtime", stats.st_ctime)
            ).isoformat(),
            "modified": datetime.fromtimestamp(stats.st_mtime).isoformat(),
            "accessed": datetime.fromtimestamp(stats.st_atime).isoformat(),
            "isDirectory": stat.S_ISDIR(stats.st_mode),
            "isFile": stat.S_ISREG(stats.st_mode),
            "permissions": oct(stats.st_mode)[-3:],
        }

        if info["isFile"] and stats.st_size < self.config.line_count_limit_bytes:
            _, is_image = self.mime.classify(path)
            if not is_image:
                try:
                    with open(path, "r", encoding="utf-8", newline="") as fh:
                        line_count = sum(1 for _ in fh)
                    info["lineCount"] = line_count
                    info["lastLine"] = line_count - 1
                    info["appendPosition"] = line_count
                except (OSError, UnicodeDecodeError) as e:
                    logger.debug(f"Skipping line count for {path}: {e}")

        return info
