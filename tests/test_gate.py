"""
Tests for path admission.
"""

import asyncio
import os
import sys
import time

import pytest

from scoped_fs.filesystem import (
    CasePolicy,
    DenialReason,
    InvalidPathError,
    PathDeniedError,
    PathGate,
    PathValidationTimeoutError,
)


@pytest.fixture
def gate(workspace, telemetry):
    """Case-sensitive gate for the workspace."""
    return PathGate([workspace], case_policy=CasePolicy.SENSITIVE, telemetry=telemetry)


class TestNormalization:
    """Test path normalization helpers."""

    def test_normalize_expands_home(self):
        assert PathGate.normalize("~") == os.path.normpath(os.path.expanduser("~"))

    def test_normalize_collapses_separators(self):
        assert PathGate.normalize("/a//b/./c/") == os.path.normpath("/a/b/c")

    def test_has_traversal(self):
        assert PathGate.has_traversal("/workspace/../etc")
        assert PathGate.has_traversal("..\\windows")
        assert not PathGate.has_traversal("/workspace/..hidden/file..txt")

    def test_is_within_requires_separator(self, gate):
        assert gate.is_within("/allowed", "/allowed")
        assert gate.is_within("/allowed/sub/file", "/allowed")
        assert not gate.is_within("/allowed-extra/file", "/allowed")

    def test_case_policy_for_platform(self):
        assert CasePolicy.for_platform("win32") is CasePolicy.INSENSITIVE
        assert CasePolicy.for_platform("darwin") is CasePolicy.INSENSITIVE
        assert CasePolicy.for_platform("linux") is CasePolicy.SENSITIVE


class TestAdmission:
    """Test PathGate.evaluate / admit."""

    def test_existing_file_allowed(self, workspace, gate):
        target = workspace / "a.txt"
        target.write_text("hello\n")

        decision = gate.evaluate(str(target))
        assert decision.allowed is True
        assert decision.exists is True
        assert decision.path == str(target)

    def test_allowed_directory_itself(self, workspace, gate):
        assert gate.evaluate(str(workspace)).allowed is True

    def test_traversal_denied(self, workspace, gate):
        decision = gate.evaluate(f"{workspace}/../etc/passwd")
        assert decision.allowed is False
        assert decision.reason is DenialReason.TRAVERSAL

    def test_traversal_denied_even_if_it_stays_inside(self, workspace, gate):
        (workspace / "sub").mkdir()
        decision = gate.evaluate(f"{workspace}/sub/../a.txt")
        assert decision.reason is DenialReason.TRAVERSAL

    def test_outside_denied(self, outside, gate):
        decision = gate.evaluate(str(outside / "secret.txt"))
        assert decision.allowed is False
        assert decision.reason is DenialReason.OUTSIDE_ALLOWED_DIRECTORIES

    def test_prefix_sibling_denied(self, temp_dir, workspace, gate):
        sibling = temp_dir / "workspace-extra"
        sibling.mkdir()
        (sibling / "file.txt").write_text("x")

        decision = gate.evaluate(str(sibling / "file.txt"))
        assert decision.allowed is False

    def test_new_nested_path_allowed(self, workspace, gate):
        decision = gate.evaluate(str(workspace / "sub" / "new.txt"))
        assert decision.allowed is True
        assert decision.exists is False
        assert decision.path == str(workspace / "sub" / "new.txt")

    def test_empty_allow_list_denies_everything(self, workspace):
        gate = PathGate([], case_policy=CasePolicy.SENSITIVE)
        decision = gate.evaluate(str(workspace))
        assert decision.allowed is False
        assert "no allowed directories" in decision.message

    def test_empty_path_invalid(self, gate):
        with pytest.raises(InvalidPathError):
            gate.evaluate("   ")

    @pytest.mark.skipif(sys.platform.startswith("win"), reason="symlinks need privileges")
    def test_symlink_escape_denied(self, workspace, outside, gate):
        link = workspace / "escape.txt"
        link.symlink_to(outside / "secret.txt")

        decision = gate.evaluate(str(link))
        assert decision.allowed is False
        assert decision.reason is DenialReason.SYMLINK_ESCAPE

    @pytest.mark.skipif(sys.platform.startswith("win"), reason="symlinks need privileges")
    def test_symlinked_directory_escape_for_new_file(self, workspace, outside, gate):
        (workspace / "linked").symlink_to(outside, target_is_directory=True)

        decision = gate.evaluate(str(workspace / "linked" / "new.txt"))
        assert decision.allowed is False
        assert decision.reason is DenialReason.SYMLINK_ESCAPE

    @pytest.mark.skipif(sys.platform.startswith("win"), reason="symlinks need privileges")
    def test_symlink_inside_allowed_returns_real_path(self, workspace, gate):
        target = workspace / "real.txt"
        target.write_text("x")
        (workspace / "alias.txt").symlink_to(target)

        decision = gate.evaluate(str(workspace / "alias.txt"))
        assert decision.allowed is True
        assert decision.path == str(target)

    def test_case_insensitive_policy(self, workspace):
        gate = PathGate([workspace], case_policy=CasePolicy.INSENSITIVE)
        assert gate.is_within(str(workspace).upper() + "/X", str(workspace))

    def test_case_sensitive_policy(self, workspace, gate):
        assert not gate.is_within(str(workspace).upper() + "/X", str(workspace))


class TestAsyncAdmission:
    """Test the async wrappers."""

    @pytest.mark.asyncio
    async def test_require_returns_path(self, workspace, gate):
        (workspace / "a.txt").write_text("x")
        assert await gate.require(str(workspace / "a.txt")) == str(workspace / "a.txt")

    @pytest.mark.asyncio
    async def test_require_raises_with_allowed_directories(self, workspace, outside, gate):
        with pytest.raises(PathDeniedError) as exc_info:
            await gate.require(str(outside / "secret.txt"))

        assert str(workspace) in str(exc_info.value)
        assert exc_info.value.allowed_directories == [str(workspace)]

    @pytest.mark.asyncio
    async def test_denial_sends_telemetry(self, outside, gate, telemetry):
        await gate.admit(str(outside / "secret.txt"))
        assert "path_validation_error" in telemetry.names()

    @pytest.mark.asyncio
    async def test_timeout(self, workspace, telemetry):
        class SlowGate(PathGate):
            def evaluate(self, requested):
                time.sleep(0.5)
                return super().evaluate(requested)

        gate = SlowGate(
            [workspace],
            case_policy=CasePolicy.SENSITIVE,
            timeout_seconds=0.05,
            telemetry=telemetry,
        )
        with pytest.raises(PathValidationTimeoutError):
            await gate.admit(str(workspace / "a.txt"))
        assert "path_validation_timeout" in telemetry.names()

    @pytest.mark.asyncio
    async def test_concurrent_admissions(self, workspace, gate):
        paths = [str(workspace / f"f{i}.txt") for i in range(20)]
        decisions = await asyncio.gather(*(gate.admit(p) for p in paths))
        assert all(d.allowed for d in decisions)
