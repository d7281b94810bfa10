"""
Availability check for the external ripgrep engine.

The check runs at most once per probe instance. Concurrent callers
share the same in-flight check instead of spawning their own.
"""

import asyncio
import logging
import shutil
from typing import ClassVar, Optional

from scoped_fs.filesystem.cancellation import terminate_process
from scoped_fs.filesystem.config import FileSystemAccessConfig
from scoped_fs.filesystem.telemetry import TelemetrySink, capture
from scoped_fs.filesystem.types import EngineAvailability

logger = logging.getLogger(__name__)


class EngineAvailabilityProbe:
    """
    Memoized ripgrep availability check.

    Usage:
        probe = EngineAvailabilityProbe()
        if await probe.is_available():
            ...  # spawn rg
    """

    _shared: ClassVar[Optional["EngineAvailabilityProbe"]] = None

    def __init__(
        self,
        executable: Optional[str] = None,
        timeout_seconds: float = 2.0,
        telemetry: Optional[TelemetrySink] = None,
    ):
        self.executable = executable or "rg"
        self.timeout_seconds = timeout_seconds
        self.telemetry = telemetry
        self.state = EngineAvailability.UNKNOWN
        self._pending: Optional[asyncio.Task] = None

    @classmethod
    def from_config(
        cls, config: FileSystemAccessConfig, telemetry: Optional[TelemetrySink] = None
    ) -> "EngineAvailabilityProbe":
        return cls(
            executable=config.ripgrep_path,
            timeout_seconds=config.ripgrep_probe_timeout_seconds,
            telemetry=telemetry,
        )

    @classmethod
    def shared(cls) -> "EngineAvailabilityProbe":
        """Process-wide probe for the ``rg`` found on PATH."""
        if cls._shared is None:
            cls._shared = cls()
        return cls._shared

    def reset(self) -> None:
        """Forget the memoized result so the next call probes again."""
        self.state = EngineAvailability.UNKNOWN
        self._pending = None

    def mark_unavailable(self) -> None:
        """Record that the engine failed at run time."""
        self.state = EngineAvailability.UNAVAILABLE

    async def is_available(self) -> bool:
        """Return True if ripgrep can be spawned; probes once, then memoizes."""
        if self.state is not EngineAvailability.UNKNOWN:
            return self.state is EngineAvailability.AVAILABLE

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._resolve())
        return await asyncio.shield(self._pending)

    async def _resolve(self) -> bool:
        try:
            available = await self._run_probe()
        except (OSError, asyncio.TimeoutError) as e:
            logger.info(f"ripgrep not usable ({self.executable}): {e}")
            available = False

        # A reset() while this probe was in flight discards its result.
        if asyncio.current_task() is not self._pending:
            return available

        self.state = (
            EngineAvailability.AVAILABLE if available else EngineAvailability.UNAVAILABLE
        )
        if available:
            logger.debug(f"ripgrep available: {self.executable}")
        else:
            capture(self.telemetry, "ripgrep_unavailable", executable=self.executable)
        return available

    async def _run_probe(self) -> bool:
        """Spawn ``rg --version`` and report whether it exited cleanly."""
        executable = shutil.which(self.executable)
        if executable is None:
            return False

        proc = await asyncio.create_subprocess_exec(
            executable,
            "--version",
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        try:
            returncode = await asyncio.wait_for(proc.wait(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(f"ripgrep probe timed out after {self.timeout_seconds}s")
            await terminate_process(proc)
            return False
        return returncode == 0

    def __repr__(self) -> str:
        return f"EngineAvailabilityProbe(executable={self.executable!r}, state={self.state.value})"
