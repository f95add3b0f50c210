"""Tests for fetching dependencies from source control."""

from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from kiln.packages import (
    Backend,
    CodePath,
    Dependency,
    SCMClientError,
    SCMCommandError,
    SourceFetcher,
    SourceFetchError,
    SourceSpec,
)
from kiln.process_utils import CommandResult

SOURCE = SourceSpec(Backend.GIT, "https://example.org/foo.git", "v1.0")


def make_package(path: Path, name: str = "foo", version: str = "1.0.0") -> None:
    path.mkdir(parents=True, exist_ok=True)
    (path / "kiln.ini").write_text(f"[package]\nname = {name}\nversion = {version}\n")


def scm_error(step: str) -> SCMCommandError:
    result = CommandResult(command=["git"], returncode=128, stdout="", stderr="fatal")
    return SCMCommandError(f"git {step} failed", result, step)


class TestSourceFetcher:
    """Test use_source retry and verification behavior."""

    @pytest.fixture
    def dep(self, tmp_path):
        return Dependency(app="foo", vsn_regex="^1\\.", source=SOURCE, dir=tmp_path / "deps" / "foo")

    @pytest.fixture
    def fetcher(self):
        return SourceFetcher(CodePath(), probe=Mock(), show_progress=False)

    def test_existing_dir_is_verified_not_fetched(self, dep, fetcher):
        make_package(dep.dir)

        with patch("kiln.packages.source_fetcher.checkout") as mock_checkout:
            result = fetcher.use_source(dep)

        assert result is dep
        mock_checkout.assert_not_called()
        fetcher.probe.require.assert_not_called()
        assert dep.dir in fetcher.code_path

    def test_existing_dir_mismatch_is_fatal(self, dep, fetcher):
        make_package(dep.dir, version="2.0.0")

        with patch("kiln.packages.source_fetcher.checkout") as mock_checkout:
            with pytest.raises(SourceFetchError, match="does not satisfy version regex"):
                fetcher.use_source(dep)

        mock_checkout.assert_not_called()
        assert dep.dir not in fetcher.code_path

    def test_fetch_creates_package(self, dep, fetcher):
        with patch("kiln.packages.source_fetcher.checkout") as mock_checkout:
            mock_checkout.side_effect = lambda source, target: make_package(target)
            fetcher.use_source(dep)

        mock_checkout.assert_called_once_with(SOURCE, dep.dir)
        fetcher.probe.require.assert_called_once_with(SOURCE)
        assert list(fetcher.code_path) == [dep.dir]

    def test_fetch_twice_second_is_noop(self, dep, fetcher):
        with patch("kiln.packages.source_fetcher.checkout") as mock_checkout:
            mock_checkout.side_effect = lambda source, target: make_package(target)
            fetcher.use_source(dep)
            fetcher.use_source(dep)

        assert mock_checkout.call_count == 1

    def test_fetch_gives_up_after_three_attempts(self, dep, fetcher):
        with patch("kiln.packages.source_fetcher.checkout") as mock_checkout:
            with pytest.raises(SourceFetchError, match="after 3 tries"):
                fetcher.use_source(dep)

        assert mock_checkout.call_count == 3

    def test_clone_failure_is_retried(self, dep, fetcher):
        outcomes = [scm_error("clone"), None]

        def fake_checkout(source, target):
            outcome = outcomes.pop(0)
            if outcome is not None:
                target.mkdir(parents=True)
                raise outcome
            make_package(target)

        with patch("kiln.packages.source_fetcher.checkout", side_effect=fake_checkout) as mock_checkout:
            fetcher.use_source(dep)

        assert mock_checkout.call_count == 2
        assert (dep.dir / "kiln.ini").exists()

    def test_update_failure_is_fatal(self, dep, fetcher):
        def fake_checkout(source, target):
            target.mkdir(parents=True)
            raise scm_error("update")

        with patch("kiln.packages.source_fetcher.checkout", side_effect=fake_checkout) as mock_checkout:
            with pytest.raises(SourceFetchError, match="Failed to check out foo"):
                fetcher.use_source(dep)

        assert mock_checkout.call_count == 1

    def test_unusable_client_is_fatal(self, dep, fetcher):
        fetcher.probe.require.side_effect = SCMClientError("no git")

        with patch("kiln.packages.source_fetcher.checkout") as mock_checkout:
            with pytest.raises(SCMClientError):
                fetcher.use_source(dep)

        mock_checkout.assert_not_called()

    def test_fetched_wrong_version_is_fatal(self, dep, fetcher):
        with patch("kiln.packages.source_fetcher.checkout") as mock_checkout:
            mock_checkout.side_effect = lambda source, target: make_package(target, version="3.0")
            with pytest.raises(SourceFetchError, match="does not satisfy"):
                fetcher.use_source(dep)

    def test_requires_source_and_dir(self, fetcher):
        with pytest.raises(SourceFetchError):
            fetcher.use_source(Dependency(app="foo"))

    def test_missing_source_fails_before_checkout(self, dep, fetcher):
        dep.source = None

        with patch("kiln.packages.source_fetcher.checkout") as mock_checkout:
            with pytest.raises(SourceFetchError, match="no target directory or source"):
                fetcher.use_source(dep)

        mock_checkout.assert_not_called()

    def test_missing_dir_fails_before_checkout(self, fetcher):
        dep = Dependency(app="foo", source=SOURCE)

        with patch("kiln.packages.source_fetcher.checkout") as mock_checkout:
            with pytest.raises(SourceFetchError, match="no target directory or source"):
                fetcher.use_source(dep)

        mock_checkout.assert_not_called()
        fetcher.probe.require.assert_not_called()
