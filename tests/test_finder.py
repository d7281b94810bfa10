"""
Tests for filename search.
"""

import sys

import pytest

from scoped_fs.filesystem import (
    CasePolicy,
    FileSystemAccessConfig,
    FilenameTreeWalker,
    InvalidPathError,
    PathDeniedError,
    SearchTimeoutError,
)


@pytest.fixture
def tree(workspace):
    """
    workspace/
        test_a.py
        src/
            test_b.py
            tests/
                deep/
                    test_c.py
        node_modules/
            test_dep.js
        README.md
    """
    (workspace / "test_a.py").write_text("")
    (workspace / "README.md").write_text("")
    (workspace / "src" / "tests" / "deep").mkdir(parents=True)
    (workspace / "src" / "test_b.py").write_text("")
    (workspace / "src" / "tests" / "deep" / "test_c.py").write_text("")
    (workspace / "node_modules").mkdir()
    (workspace / "node_modules" / "test_dep.js").write_text("")
    return workspace


@pytest.fixture
def walker(config, telemetry):
    """Create a FilenameTreeWalker instance."""
    return FilenameTreeWalker(config, telemetry=telemetry)


class TestFilenameTreeWalker:
    """Test FilenameTreeWalker.search_names."""

    @pytest.mark.asyncio
    async def test_substring_match(self, tree, walker):
        outcome = await walker.search_names(str(tree), "test")

        assert outcome.partial is False
        assert set(outcome.paths) == {
            str(tree / "test_a.py"),
            str(tree / "src" / "test_b.py"),
            str(tree / "src" / "tests"),
            str(tree / "src" / "tests" / "deep" / "test_c.py"),
        }

    @pytest.mark.asyncio
    async def test_files_before_directories(self, tree, walker):
        outcome = await walker.search_names(str(tree), "test")

        # Within src/, the file is reported before the matching directory.
        assert outcome.paths.index(str(tree / "src" / "test_b.py")) < outcome.paths.index(
            str(tree / "src" / "tests")
        )
        assert outcome.paths[0] == str(tree / "test_a.py")

    @pytest.mark.asyncio
    async def test_excluded_dirs_not_descended(self, tree, walker):
        outcome = await walker.search_names(str(tree), "test_dep")
        assert outcome.paths == []

    @pytest.mark.asyncio
    async def test_custom_exclusions(self, tree, walker):
        outcome = await walker.search_names(str(tree), "test_dep", exclude_dirs=[])
        assert outcome.paths == [str(tree / "node_modules" / "test_dep.js")]

    @pytest.mark.asyncio
    async def test_max_depth(self, tree, walker):
        outcome = await walker.search_names(str(tree), "test", max_depth=1)
        assert str(tree / "src" / "test_b.py") in outcome.paths
        assert str(tree / "src" / "tests") in outcome.paths
        assert str(tree / "src" / "tests" / "deep" / "test_c.py") not in outcome.paths

    @pytest.mark.asyncio
    async def test_max_depth_zero(self, tree, walker):
        outcome = await walker.search_names(str(tree), "test", max_depth=0)
        assert outcome.paths == [str(tree / "test_a.py")]

    @pytest.mark.asyncio
    async def test_max_results(self, tree, walker):
        outcome = await walker.search_names(str(tree), "test", max_results=2)
        assert len(outcome) == 2

    @pytest.mark.asyncio
    async def test_case_insensitive_policy(self, tree):
        config = FileSystemAccessConfig(
            allowed_directories=[tree], case_policy=CasePolicy.INSENSITIVE
        )
        outcome = await FilenameTreeWalker(config).search_names(str(tree), "readme")
        assert outcome.paths == [str(tree / "README.md")]

    @pytest.mark.asyncio
    async def test_case_sensitive_policy(self, tree, walker):
        outcome = await walker.search_names(str(tree), "readme")
        assert outcome.paths == []

    @pytest.mark.skipif(sys.platform.startswith("win"), reason="symlinks need privileges")
    @pytest.mark.asyncio
    async def test_symlinked_directory_is_leaf(self, tree, outside, walker):
        (tree / "secret-link").symlink_to(outside, target_is_directory=True)

        outcome = await walker.search_names(str(tree), "secret")
        assert outcome.paths == [str(tree / "secret-link")]

    @pytest.mark.asyncio
    async def test_root_outside_denied(self, outside, walker):
        with pytest.raises(PathDeniedError):
            await walker.search_names(str(outside), "secret")

    @pytest.mark.asyncio
    async def test_root_must_be_directory(self, tree, walker):
        with pytest.raises(InvalidPathError):
            await walker.search_names(str(tree / "README.md"), "x")

    @pytest.mark.asyncio
    async def test_timeout_without_results(self, tree, config, telemetry):
        walker = FilenameTreeWalker(config, telemetry=telemetry)
        with pytest.raises(SearchTimeoutError):
            await walker.search_names(str(tree), "test", timeout_seconds=1e-9)
        assert "search_files_error" in telemetry.names()

    @pytest.mark.asyncio
    async def test_completion_telemetry(self, tree, walker, telemetry):
        await walker.search_names(str(tree), "test")
        name, properties = telemetry.events[-1]
        assert name == "search_files_complete"
        assert properties["result_count"] == 4
