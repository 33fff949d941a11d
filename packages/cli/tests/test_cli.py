"""Tests for the CLI entry point."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from prpreview_cli.auth import resolve_circleci_token, resolve_github_token
from prpreview_cli.cli import main
from prpreview_cli.factory import build_store
from prpreview_core.config import DEFAULT_CONFIG
from prpreview_core.errors import ConfigurationError, StorageError, UpstreamUnavailable
from prpreview_core.events import VisibilityChanged
from prpreview_store.filesystem import FileSystemBuildStore
from prpreview_store.models import PreviewBuild


def _make_config(**overrides):
    cfg = dict(DEFAULT_CONFIG)
    cfg.update(
        {
            "github_org": "organisation",
            "github_repo": "repo",
            "github_team_slugs": ["team1"],
            "trusted_pr_label": "trusted: pr-label",
            "builds_dir": "/var/www/builds",
            "domain_name": "domain.name",
            "github_token": "tok",
            "circleci_token": "circle",
        }
    )
    cfg.update(overrides)
    return cfg


def _patch_common(mocker, config=None):
    """Patch config loading, token resolution and logging setup for most tests."""
    cfg = config or _make_config()
    mocker.patch("prpreview_core.config.load_config", return_value=cfg)
    mocker.patch("prpreview_cli.auth.resolve_github_token", return_value=cfg.get("github_token"))
    mocker.patch("prpreview_cli.auth.resolve_circleci_token", return_value=cfg.get("circleci_token"))
    mocker.patch("prpreview_cli.cli._configure_logging")
    return cfg


def _patch_components(mocker, module):
    components = MagicMock()
    mocker.patch(f"prpreview_cli.commands.{module}.build_components", return_value=components)
    return components


class TestMain:
    def test_help_lists_commands(self):
        result = CliRunner().invoke(main, ["--help"])
        assert result.exit_code == 0
        for name in ("serve", "builds", "check", "sync", "remove", "prune"):
            assert name in result.output

    def test_log_level_passed_as_override(self, mocker):
        cfg = _patch_common(mocker)
        load = mocker.patch("prpreview_core.config.load_config", return_value=cfg)
        mocker.patch("prpreview_cli.commands.builds.build_store", return_value=MagicMock(list_builds=lambda pr: []))

        CliRunner().invoke(main, ["--config", "custom.yml", "--log-level", "DEBUG", "builds"])

        load.assert_called_once_with("custom.yml", cli_overrides={"log_level": "DEBUG"})


class TestBuildsCommand:
    def test_shows_table(self, mocker):
        _patch_common(mocker)
        store = MagicMock()
        store.builds_dir = "/var/www/builds"
        store.list_builds.return_value = [
            PreviewBuild(pr=42, sha="abc1234", is_public=True, content_root="/var/www/builds/public/pr42-abc1234"),
            PreviewBuild(pr=43, sha="def5678", is_public=False, content_root="/var/www/builds/hidden/pr43-def5678"),
        ]
        mocker.patch("prpreview_cli.commands.builds.build_store", return_value=store)

        result = CliRunner().invoke(main, ["builds"])

        assert result.exit_code == 0
        assert "#42" in result.output
        assert "public" in result.output
        assert "hidden" in result.output
        assert "https://pr42-abc1234.domain.name/" in result.output
        store.list_builds.assert_called_once_with(None)

    def test_filters_by_pr(self, mocker):
        _patch_common(mocker)
        store = MagicMock()
        store.list_builds.return_value = []
        mocker.patch("prpreview_cli.commands.builds.build_store", return_value=store)

        result = CliRunner().invoke(main, ["builds", "--pr", "42"])

        assert "No preview builds found" in result.output
        store.list_builds.assert_called_once_with(42)

    def test_missing_builds_dir(self, mocker):
        _patch_common(mocker, config=_make_config(builds_dir=None))

        result = CliRunner().invoke(main, ["builds"])

        assert result.exit_code != 0
        assert "builds_dir" in result.output


class TestCheckCommand:
    def test_trusted(self, mocker):
        _patch_common(mocker)
        components = _patch_components(mocker, "pr")
        components.service.can_have_public_preview.return_value = True

        result = CliRunner().invoke(main, ["check", "--pr", "42"])

        assert result.exit_code == 0
        assert "trusted" in result.output
        assert "not trusted" not in result.output
        components.service.can_have_public_preview.assert_called_once_with(42)

    def test_not_trusted(self, mocker):
        _patch_common(mocker)
        components = _patch_components(mocker, "pr")
        components.service.can_have_public_preview.return_value = False

        result = CliRunner().invoke(main, ["check", "--pr", "42"])
        assert "not trusted" in result.output

    def test_upstream_error_is_reported(self, mocker):
        _patch_common(mocker)
        components = _patch_components(mocker, "pr")
        components.service.can_have_public_preview.side_effect = UpstreamUnavailable("GitHub is down", pr=42)

        result = CliRunner().invoke(main, ["check", "--pr", "42"])

        assert result.exit_code == 1
        assert "GitHub is down" in result.output
        assert "pr=42" in result.output


class TestSyncCommand:
    def test_moves_builds_and_delivers_comments(self, mocker):
        _patch_common(mocker)
        components = _patch_components(mocker, "pr")
        components.service.handle_pr_updated.return_value = VisibilityChanged(
            pr=42, shas=("aaa", "bbb"), is_public=True
        )

        result = CliRunner().invoke(main, ["sync", "--pr", "42"])

        assert result.exit_code == 0
        assert "2 build(s) now public" in result.output
        components.service.handle_pr_updated.assert_called_once_with(42)
        components.notifier.drain.assert_called_once_with(components.events)
        components.close.assert_called_once()

    def test_no_builds(self, mocker):
        _patch_common(mocker)
        components = _patch_components(mocker, "pr")
        components.service.handle_pr_updated.return_value = None

        result = CliRunner().invoke(main, ["sync", "--pr", "42"])
        assert "has no preview builds" in result.output

    def test_partial_failure_still_drains(self, mocker):
        _patch_common(mocker)
        components = _patch_components(mocker, "pr")
        components.service.handle_pr_updated.side_effect = StorageError("disk full", pr=42, sha="bbb")

        result = CliRunner().invoke(main, ["sync", "--pr", "42"])

        assert result.exit_code == 1
        assert "disk full" in result.output
        components.notifier.drain.assert_called_once()
        components.close.assert_called_once()


class TestRemoveCommand:
    def test_removes_builds(self, mocker):
        _patch_common(mocker)
        store = MagicMock()
        store.remove_pr.return_value = ["aaa", "bbb"]
        mocker.patch("prpreview_cli.commands.pr.build_store", return_value=store)

        result = CliRunner().invoke(main, ["remove", "--pr", "42"])

        assert result.exit_code == 0
        assert "Removed 2 build(s)" in result.output
        store.remove_pr.assert_called_once_with(42)

    def test_nothing_to_remove(self, mocker):
        _patch_common(mocker)
        store = MagicMock()
        store.remove_pr.return_value = []
        mocker.patch("prpreview_cli.commands.pr.build_store", return_value=store)

        result = CliRunner().invoke(main, ["remove", "--pr", "42"])
        assert "has no preview builds" in result.output


class TestPruneCommand:
    def test_prunes_closed_prs(self, mocker):
        _patch_common(mocker)
        components = _patch_components(mocker, "prune")
        components.purge_leftovers.return_value = []
        components.service.prune.return_value = {7: ["aaa"], 9: ["bbb", "ccc"]}

        result = CliRunner().invoke(main, ["prune"])

        assert result.exit_code == 0
        assert "#7" in result.output
        assert "#9" in result.output
        components.purge_leftovers.assert_called_once_with(3600)
        components.close.assert_called_once()

    def test_nothing_to_prune(self, mocker):
        _patch_common(mocker)
        components = _patch_components(mocker, "prune")
        components.purge_leftovers.return_value = ["/var/www/builds/public/.trash-pr1-a-1"]
        components.service.prune.return_value = {}

        result = CliRunner().invoke(main, ["prune"])

        assert "Purged 1 leftover" in result.output
        assert "Nothing to prune" in result.output


class TestServeCommand:
    def test_runs_uvicorn_with_config(self, mocker):
        _patch_common(mocker, config=_make_config(host="0.0.0.0", port=9000))
        components = _patch_components(mocker, "serve")
        components.purge_leftovers.return_value = []
        app = MagicMock()
        create_app = mocker.patch("prpreview_cli.commands.serve.create_app", return_value=app)
        run = mocker.patch("prpreview_cli.commands.serve.uvicorn.run")

        result = CliRunner().invoke(main, ["serve"])

        assert result.exit_code == 0
        create_app.assert_called_once_with(components.service, components.notifier, components.events)
        components.purge_leftovers.assert_called_once_with(3600)
        run.assert_called_once_with(app, host="0.0.0.0", port=9000, log_level="info")
        components.close.assert_called_once()

    def test_cli_options_override_config(self, mocker):
        _patch_common(mocker)
        components = _patch_components(mocker, "serve")
        components.purge_leftovers.return_value = []
        mocker.patch("prpreview_cli.commands.serve.create_app")
        run = mocker.patch("prpreview_cli.commands.serve.uvicorn.run")

        CliRunner().invoke(main, ["serve", "--host", "0.0.0.0", "--port", "1234"])

        assert run.call_args.kwargs["host"] == "0.0.0.0"
        assert run.call_args.kwargs["port"] == 1234

    def test_configuration_error_exits(self, mocker):
        _patch_common(mocker)
        mocker.patch(
            "prpreview_cli.commands.serve.build_components",
            side_effect=ConfigurationError("Missing or empty required parameter 'domain_name'!"),
        )
        run = mocker.patch("prpreview_cli.commands.serve.uvicorn.run")

        result = CliRunner().invoke(main, ["serve"])

        assert result.exit_code == 1
        assert "domain_name" in result.output
        run.assert_not_called()


# ---------------------------------------------------------------------------
# Credential resolution
# ---------------------------------------------------------------------------


class TestResolveGithubToken:
    def test_returns_env_var_when_set(self, monkeypatch):
        monkeypatch.setenv("GITHUB_TOKEN", "env-token")
        with patch("subprocess.run") as mock_run:
            assert resolve_github_token() == "env-token"
        mock_run.assert_not_called()

    def test_falls_back_to_gh_cli(self, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=0, stdout="gh-token\n")
            assert resolve_github_token() == "gh-token"

    def test_returns_none_when_gh_not_installed(self, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run", side_effect=FileNotFoundError):
            assert resolve_github_token() is None

    def test_returns_none_when_gh_times_out(self, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired(cmd="gh", timeout=5)):
            assert resolve_github_token() is None

    def test_returns_none_when_gh_returns_error(self, monkeypatch):
        monkeypatch.delenv("GITHUB_TOKEN", raising=False)
        with patch("subprocess.run") as mock_run:
            mock_run.return_value = MagicMock(returncode=1, stdout="")
            assert resolve_github_token() is None


class TestResolveCircleciToken:
    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("CIRCLE_CI_TOKEN", "circle")
        assert resolve_circleci_token() == "circle"

    def test_empty_is_none(self, monkeypatch):
        monkeypatch.setenv("CIRCLE_CI_TOKEN", "")
        assert resolve_circleci_token() is None


class TestBuildStore:
    def test_returns_filesystem_store(self, tmp_path):
        store = build_store({"builds_dir": str(tmp_path / "builds")})
        assert isinstance(store, FileSystemBuildStore)
        assert (tmp_path / "builds" / "public").is_dir()

    def test_missing_builds_dir(self):
        with pytest.raises(ConfigurationError, match="builds_dir"):
            build_store({"builds_dir": ""})
