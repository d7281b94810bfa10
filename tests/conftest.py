"""
Shared fixtures for scoped-fs tests.
"""

import os
import tempfile
from pathlib import Path

import pytest

from scoped_fs.filesystem import (
    CasePolicy,
    EngineAvailabilityProbe,
    FileSystemAccessConfig,
    RecordingTelemetry,
)


@pytest.fixture
def temp_dir():
    """Create a temporary directory (symlinks resolved) for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(os.path.realpath(tmpdir))


@pytest.fixture
def workspace(temp_dir):
    """An allowed directory inside the temporary directory."""
    path = temp_dir / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def outside(temp_dir):
    """A sibling directory that is not allowed."""
    path = temp_dir / "outside"
    path.mkdir()
    (path / "secret.txt").write_text("top secret\n")
    return path


@pytest.fixture
def config(workspace):
    """Create a test filesystem configuration."""
    return FileSystemAccessConfig(
        allowed_directories=[workspace],
        case_policy=CasePolicy.SENSITIVE,
        max_search_results=50,
        search_timeout_seconds=5.0,
        find_timeout_seconds=5.0,
    )


@pytest.fixture
def telemetry():
    """Telemetry sink that records events."""
    return RecordingTelemetry()


@pytest.fixture
def native_probe():
    """Probe that reports ripgrep as unavailable without spawning anything."""
    probe = EngineAvailabilityProbe()
    probe.mark_unavailable()
    return probe
