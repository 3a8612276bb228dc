"""Tests for the bflow command line."""

import json

import pytest
from click.testing import CliRunner

from buildflow import __version__
from buildflow.cli import cli

BUILD_FILE = """\
tasks:
  clean:
    adapter: stub
    targets:
      dist: {}
  copy:
    adapter: stub
    description: Copies assets
    targets:
      build: {}
      dist: {}
  broken:
    adapter: stub
    config:
      result: fail
      message: compile error in app.js
  qunit:
    adapter: stub-async
    config:
      coverage:
        src/app.js: {line1: 1, line2: 0}

aliases:
  default: [clean:dist, copy:build]
  failing: [clean:dist, broken, copy:dist]
  test: [qunit]
  loop: [loop-back]
  loop-back: [loop]
  nothing: []
"""


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    (tmp_path / "buildflow.yml").write_text(BUILD_FILE)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def invoke():
    runner = CliRunner()

    def call(*args):
        return runner.invoke(cli, list(args))

    return call


class TestRun:

    def test_default_alias(self, workspace, invoke, dispatched):
        result = invoke("run", "--plain")
        assert result.exit_code == 0, result.output
        assert dispatched == ["clean:dist", "copy:build"]

    def test_names_run_in_order(self, workspace, invoke, dispatched):
        result = invoke("run", "--plain", "copy", "clean:dist")
        assert result.exit_code == 0, result.output
        assert dispatched == ["copy:build", "copy:dist", "clean:dist"]

    def test_failure_exits_1_and_aborts_the_rest(self, workspace, invoke, dispatched):
        result = invoke("run", "--plain", "failing")
        assert result.exit_code == 1
        assert dispatched == ["clean:dist", "broken"]
        assert "compile error in app.js" in result.output

    def test_continue_on_failure(self, workspace, invoke, dispatched):
        result = invoke("run", "--plain", "-k", "failing")
        assert result.exit_code == 1
        assert dispatched == ["clean:dist", "broken", "copy:dist"]

    def test_unknown_name_exits_2_before_running(self, workspace, invoke, dispatched):
        result = invoke("run", "--plain", "default", "deploy")
        assert result.exit_code == 2
        assert "deploy" in result.output
        assert dispatched == []

    def test_cycle_exits_2(self, workspace, invoke, dispatched):
        result = invoke("run", "loop")
        assert result.exit_code == 2
        assert "loop -> loop-back -> loop" in result.output
        assert dispatched == []

    def test_dry_run(self, workspace, invoke, dispatched):
        result = invoke("run", "--dry-run", "failing")
        assert result.exit_code == 0
        assert "broken" in result.output
        assert dispatched == []

    def test_missing_build_file(self, tmp_path, monkeypatch, invoke):
        monkeypatch.chdir(tmp_path)
        result = invoke("run")
        assert result.exit_code == 2
        assert "No build file found" in result.output

    def test_invalid_build_file(self, workspace, invoke):
        (workspace / "buildflow.yml").write_text("tasks:\n  a: {adapter: no-such-adapter}\n")
        result = invoke("run", "a")
        assert result.exit_code == 2
        assert "Unknown adapter" in result.output

    def test_explicit_build_file(self, workspace, invoke, dispatched):
        (workspace / "web.yml").write_text("tasks:\n  bundle: {adapter: stub}\naliases:\n  default: [bundle]\n")
        result = invoke("run", "--plain", "-f", "web.yml")
        assert result.exit_code == 0, result.output
        assert dispatched == ["bundle"]

    def test_live_renderer(self, workspace, invoke, dispatched):
        result = invoke("run")
        assert result.exit_code == 0, result.output
        assert dispatched == ["clean:dist", "copy:build"]

    def test_coverage_reports(self, workspace, invoke):
        result = invoke("run", "--plain", "test")
        assert result.exit_code == 0, result.output
        data = json.loads((workspace / "coverage" / "coverage-final.json").read_text())
        assert data["src/app.js"]["s"] == {"line1": 1, "line2": 0}

    def test_empty_plan_warns(self, workspace, invoke, dispatched):
        result = invoke("run", "nothing")
        assert result.exit_code == 0
        assert "Nothing to run" in result.output
        assert dispatched == []

    def test_no_coverage_dir_without_payloads(self, workspace, invoke):
        invoke("run", "--plain")
        assert not (workspace / "coverage").exists()

    @pytest.mark.parametrize("mode", ["--plain", "--quiet"])
    def test_log_file_with_plain_output(self, workspace, invoke, mode):
        result = invoke("run", mode, "--log-file", "logs/run.log", "failing")
        assert result.exit_code == 1
        log = (workspace / "logs" / "run.log").read_text()
        assert "[OK] clean:dist" in log
        assert "[FAILED] broken" in log
        assert "compile error in app.js" in log


class TestTasks:

    def test_json_listing(self, workspace, invoke):
        result = invoke("tasks", "--json")
        assert result.exit_code == 0
        listing = json.loads(result.output)
        assert listing["tasks"]["copy"]["targets"] == ["build", "dist"]
        assert listing["tasks"]["copy"]["description"] == "Copies assets"
        assert listing["tasks"]["qunit"]["mode"] == "async"
        assert listing["aliases"]["failing"]["tasks"] == ["clean:dist", "broken", "copy:dist"]

    def test_table_listing(self, workspace, invoke):
        result = invoke("tasks")
        assert result.exit_code == 0
        assert "Aliases" in result.output
        assert "loop-back" in result.output


class TestGroup:

    def test_version(self, invoke):
        result = invoke("--version")
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_categories(self, invoke):
        result = invoke("-h")
        assert result.exit_code == 0
        assert "BUILD" in result.output
        assert "INSPECT" in result.output

    @pytest.mark.parametrize("command", ["run", "tasks"])
    def test_command_help_is_ascii(self, invoke, command):
        result = invoke(command, "--help")
        assert result.exit_code == 0
        try:
            result.output.encode("ascii")
        except UnicodeEncodeError as e:
            pytest.fail(f"Non-ASCII character in bflow {command} --help: {e}")
