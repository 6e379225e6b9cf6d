"""Tests for the command-line interface."""

import json

import pytest
from typer.testing import CliRunner

from modcache import __version__
from modcache.cli import app as app_module
from modcache.exceptions import NetworkError

runner = CliRunner()


@pytest.fixture
def workspace(tmp_path, monkeypatch, source):
    """Runs the CLI inside tmp_path with an isolated config and a fake source."""
    config_dir = tmp_path / "config"
    monkeypatch.setattr(app_module, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(app_module, "CONFIG_FILE", config_dir / "config.ini")
    monkeypatch.setattr(app_module, "create_source", lambda config: source)
    monkeypatch.delenv("CURSEFORGE_API_KEY", raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _manifest(workspace, *pairs):
    files = [{"projectID": int(a), "fileID": int(f), "required": True} for a, f in pairs]
    (workspace / "manifest.json").write_text(json.dumps({"files": files}))


class TestGlobalOptions:
    def test_version(self):
        result = runner.invoke(app_module.app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_show_config_without_file(self, workspace):
        result = runner.invoke(app_module.app, ["--show-config"])
        assert result.exit_code == 1

    def test_show_config_hides_api_key(self, workspace):
        runner.invoke(app_module.app, ["init", "secret-key"])
        result = runner.invoke(app_module.app, ["--show-config"])
        assert result.exit_code == 0
        assert "secret-key" not in result.output
        assert "[hidden]" in result.output

    def test_clear_cache(self, workspace):
        result = runner.invoke(app_module.app, ["--clear-cache"])
        assert result.exit_code == 0
        assert "0 entries removed" in result.output


class TestInit:
    def test_writes_config(self, workspace):
        result = runner.invoke(app_module.app, ["init", "abc"])
        assert result.exit_code == 0
        assert "api_key = abc" in (workspace / "config" / "config.ini").read_text()

    def test_refuses_to_overwrite_without_confirmation(self, workspace):
        runner.invoke(app_module.app, ["init", "abc"])
        result = runner.invoke(app_module.app, ["init", "xyz"], input="n\n")
        assert result.exit_code == 1
        assert "api_key = abc" in (workspace / "config" / "config.ini").read_text()

    def test_force_overwrites(self, workspace):
        runner.invoke(app_module.app, ["init", "abc"])
        result = runner.invoke(app_module.app, ["init", "xyz", "--force"])
        assert result.exit_code == 0
        assert "api_key = xyz" in (workspace / "config" / "config.ini").read_text()


class TestSync:
    def test_fresh_sync(self, workspace):
        _manifest(workspace, ("1", "10"), ("2", "20"))
        result = runner.invoke(app_module.app, ["sync", "--api-key", "k"])

        assert result.exit_code == 0, result.output
        cache_dir = workspace / "dist" / "modcache"
        assert sorted(p.name for p in cache_dir.iterdir()) == ["1-10.jar", "2-20.jar"]
        state = json.loads((workspace / "dist" / "cache.json").read_text())
        assert list(state["artifacts"]) == ["1", "2"]

    def test_requires_api_key(self, workspace):
        _manifest(workspace, ("1", "10"))
        result = runner.invoke(app_module.app, ["sync"])
        assert result.exit_code == 1
        assert "API key" in result.output

    def test_api_key_from_environment(self, workspace, monkeypatch):
        _manifest(workspace, ("1", "10"))
        monkeypatch.setenv("CURSEFORGE_API_KEY", "from-env")
        result = runner.invoke(app_module.app, ["sync"])
        assert result.exit_code == 0, result.output

    def test_failures_set_exit_code(self, workspace, source):
        _manifest(workspace, ("1", "10"), ("2", "20"))
        source.fail["2"] = NetworkError("connection reset")

        result = runner.invoke(app_module.app, ["sync", "--api-key", "k"])

        assert result.exit_code == 1
        assert "Failed Artifacts" in result.output
        assert (workspace / "dist" / "modcache" / "1-10.jar").exists()

    def test_invalid_manifest(self, workspace):
        (workspace / "manifest.json").write_text('{"files": [{"projectID": 1}]}')
        result = runner.invoke(app_module.app, ["sync", "--api-key", "k"])
        assert result.exit_code == 1
        assert "ValidationError" in result.output

    def test_custom_paths(self, workspace):
        _manifest(workspace, ("1", "10"))
        (workspace / "manifest.json").rename(workspace / "pack.json")
        result = runner.invoke(
            app_module.app,
            [
                "sync",
                "--api-key",
                "k",
                "--manifest",
                "pack.json",
                "--cache-dir",
                "mods",
                "--state-file",
                "state.json",
            ],
        )
        assert result.exit_code == 0, result.output
        assert (workspace / "mods" / "1-10.jar").exists()
        assert (workspace / "state.json").exists()

    def test_event_log(self, workspace):
        _manifest(workspace, ("1", "10"))
        result = runner.invoke(
            app_module.app, ["sync", "--api-key", "k", "--log-dir", "logs"]
        )
        assert result.exit_code == 0, result.output
        log_files = list((workspace / "logs").glob("*.jsonl"))
        assert len(log_files) == 1
        events = [json.loads(line) for line in log_files[0].read_text().splitlines()]
        assert any(e.get("event") == "artifact_fetched" for e in events)


class TestPlanAndStatus:
    def test_plan_changes_nothing(self, workspace, source):
        _manifest(workspace, ("1", "10"))
        result = runner.invoke(app_module.app, ["plan"])

        assert result.exit_code == 0, result.output
        assert "Planned Changes" in result.output
        assert source.calls == []
        assert not (workspace / "dist" / "modcache").exists()

    def test_status_lists_cached_artifacts(self, workspace):
        _manifest(workspace, ("1", "10"))
        runner.invoke(app_module.app, ["sync", "--api-key", "k"])

        result = runner.invoke(app_module.app, ["status"])

        assert result.exit_code == 0
        assert "1-10.jar" in result.output

    def test_status_without_state(self, workspace):
        result = runner.invoke(app_module.app, ["status"])
        assert result.exit_code == 0
        assert "No cached artifacts" in result.output


class TestModlist:
    def test_writes_html(self, workspace, source):
        from modcache.api.base import ArtifactMetadata

        source.metadata["1"] = ArtifactMetadata("Mod One", "https://x.test/1", "dev")
        _manifest(workspace, ("1", "10"), ("2", "20"))

        result = runner.invoke(app_module.app, ["modlist", "--api-key", "k"])

        assert result.exit_code == 0, result.output
        html = (workspace / "dist" / "modlist.html").read_text()
        assert "Mod One (by dev)" in html
        assert "<li>Project 2</li>" in html
        assert "No info for 1 mod" in result.output

    def test_requires_api_key(self, workspace, source):
        _manifest(workspace, ("1", "10"))

        result = runner.invoke(app_module.app, ["modlist"])

        assert result.exit_code == 1
        assert "API key" in result.output
        assert source.metadata_calls == []
        assert not (workspace / "dist" / "modlist.html").exists()


class TestCleanAndValidate:
    def test_clean(self, workspace):
        _manifest(workspace, ("1", "10"))
        runner.invoke(app_module.app, ["sync", "--api-key", "k"])

        result = runner.invoke(app_module.app, ["clean", "--force"])

        assert result.exit_code == 0, result.output
        assert not (workspace / "dist" / "modcache").exists()
        assert not (workspace / "dist" / "cache.json").exists()

    def test_clean_can_be_cancelled(self, workspace):
        _manifest(workspace, ("1", "10"))
        runner.invoke(app_module.app, ["sync", "--api-key", "k"])

        result = runner.invoke(app_module.app, ["clean"], input="n\n")

        assert result.exit_code == 1
        assert (workspace / "dist" / "modcache" / "1-10.jar").exists()

    def test_validate(self, workspace):
        _manifest(workspace, ("1", "10"), ("2", "20"))
        result = runner.invoke(app_module.app, ["validate"])
        assert result.exit_code == 0
        assert "Validated Settings" in result.output

    def test_validate_rejects_bad_manifest(self, workspace):
        (workspace / "manifest.json").write_text("[1, 2]")
        result = runner.invoke(app_module.app, ["validate"])
        assert result.exit_code == 1
