"""Tests for the scoped-fs command line interface."""

import pytest
from click.testing import CliRunner

from scoped_fs.cli.main import cli


@pytest.fixture
def runner(monkeypatch):
    """CLI runner with no SCOPED_FS_* environment leaking in."""
    monkeypatch.delenv("SCOPED_FS_ALLOWED_DIRECTORIES", raising=False)
    monkeypatch.setenv("SCOPED_FS_RIPGREP_PATH", "scoped-fs-no-such-rg")
    return CliRunner()


class TestCli:
    """Tests for CLI commands."""

    def test_read(self, runner, workspace):
        (workspace / "a.txt").write_text("L1\nL2\nL3\n")

        result = runner.invoke(
            cli, ["--allow", str(workspace), "read", str(workspace / "a.txt"), "-o", "-1"]
        )
        assert result.exit_code == 0
        assert "[Reading last 1 lines (total: 3 lines)]" in result.output
        assert "L3" in result.output

    def test_read_denied(self, runner, workspace, outside):
        result = runner.invoke(
            cli, ["--allow", str(workspace), "read", str(outside / "secret.txt")]
        )
        assert result.exit_code == 1

    def test_search(self, runner, workspace):
        (workspace / "main.py").write_text("def main():\n    pass\n")

        result = runner.invoke(
            cli, ["--allow", str(workspace), "search", "def main", str(workspace)]
        )
        assert result.exit_code == 0
        assert "main.py" in result.output
        assert "1 matches via native" in result.output

    def test_find(self, runner, workspace):
        (workspace / "test_one.py").write_text("")

        result = runner.invoke(cli, ["--allow", str(workspace), "find", "test", str(workspace)])
        assert result.exit_code == 0
        assert "test_one.py" in result.output

    def test_info(self, runner, workspace):
        (workspace / "a.txt").write_text("x\n")

        result = runner.invoke(cli, ["--allow", str(workspace), "info", str(workspace / "a.txt")])
        assert result.exit_code == 0
        assert "lineCount" in result.output

    def test_check(self, runner, workspace, outside):
        (workspace / "a.txt").write_text("x\n")

        allowed = runner.invoke(cli, ["--allow", str(workspace), "check", str(workspace / "a.txt")])
        assert allowed.exit_code == 0
        assert "Allowed" in allowed.output

        denied = runner.invoke(
            cli, ["--allow", str(workspace), "check", str(outside / "secret.txt")]
        )
        assert denied.exit_code == 2
        assert "Denied" in denied.output
