"""Tests for task registration and the alias graph."""

import pytest

from buildflow.config import AliasSpec
from buildflow.errors import ConfigError, UnknownAliasError, UnknownTaskError
from buildflow.pipeline.structures import ExecutionMode, TaskId
from buildflow.plugins import FunctionAdapter
from buildflow.registry import AliasGraph, Task, load_project


class TestTaskRegistry:

    def test_one_task_per_target(self, make_project, stub_build):
        registry = make_project(stub_build).registry
        assert [str(t.id) for t in registry] == ["clean:dist", "copy:build", "copy:dist", "bundle"]
        assert registry.targets("copy") == ("build", "dist")
        assert registry.targets("bundle") == (None,)
        assert registry.names() == ["clean", "copy", "bundle"]

    def test_targets_share_one_adapter_instance(self, make_project, stub_build):
        registry = make_project(stub_build).registry
        first = registry.get(TaskId("copy", "build")).adapter
        assert registry.get(TaskId("copy", "dist")).adapter is first
        assert registry.get(TaskId("clean", "dist")).adapter is not first

    def test_lookup(self, make_project, stub_build):
        registry = make_project(stub_build).registry
        assert TaskId("copy", "dist") in registry
        assert registry.has_task("copy")
        assert not registry.has_task("copy:dist")
        with pytest.raises(UnknownTaskError):
            registry.get(TaskId("copy", "nightly"))
        with pytest.raises(UnknownTaskError):
            registry.targets("minify")

    def test_duplicate_identity(self, make_project, stub_build):
        registry = make_project(stub_build).registry
        task = registry.get(TaskId("bundle"))
        with pytest.raises(ValueError):
            registry.register(task)

    def test_config_is_frozen(self, make_project, stub_build):
        stub_build["tasks"]["bundle"]["config"] = {"message": "hi"}
        task = make_project(stub_build).registry.get(TaskId("bundle"))
        with pytest.raises(TypeError):
            task.config["message"] = "changed"

    def test_mode_comes_from_adapter(self, make_project):
        registry = make_project({
            "tasks": {
                "lint": {"adapter": "stub"},
                "qunit": {"adapter": "stub-async"},
                "forced": {"adapter": "stub", "mode": "async"},
            },
        }).registry
        assert registry.get(TaskId("lint")).mode is ExecutionMode.SYNC
        assert registry.get(TaskId("qunit")).mode is ExecutionMode.ASYNC
        assert registry.get(TaskId("forced")).mode is ExecutionMode.ASYNC

    def test_async_adapter_cannot_be_forced_sync(self, make_project):
        with pytest.raises(ConfigError, match="cannot run in sync mode"):
            make_project({"tasks": {"qunit": {"adapter": "stub-async", "mode": "sync"}}})

    def test_unknown_adapter(self, make_project):
        with pytest.raises(ConfigError, match="Unknown adapter"):
            make_project({"tasks": {"minify": {"adapter": "uglify-contrib"}}})

    def test_schema_violation_fails_before_running(self, make_project, dispatched):
        with pytest.raises(ConfigError, match="unknown keys"):
            make_project({"tasks": {"bundle": {"adapter": "stub", "config": {"entry": "src/app.js"}}}})
        with pytest.raises(ConfigError, match="missing required keys"):
            make_project({"tasks": {"clean": {"adapter": "clean", "targets": {"dist": {}}}}})
        assert dispatched == []

    def test_callable_reference(self, make_project):
        registry = make_project({"tasks": {"join": {"adapter": "os.path:join"}}}).registry
        task = registry.get(TaskId("join"))
        assert isinstance(task.adapter, FunctionAdapter)
        assert task.mode is ExecutionMode.SYNC

    def test_task_repr(self, make_project, stub_build):
        task = make_project(stub_build).registry.get(TaskId("copy", "dist"))
        assert isinstance(task, Task)
        assert repr(task) == "Task('copy:dist', adapter=stub, mode=sync)"


class TestAliasGraph:

    def test_get_and_membership(self):
        graph = AliasGraph({"build": AliasSpec("build", ("clean:dist",))})
        assert graph.has_alias("build")
        assert graph.get("build").refs == ("clean:dist",)
        assert len(graph) == 1
        with pytest.raises(UnknownAliasError):
            graph.get("deploy")

    def test_add_rejects_duplicates(self):
        graph = AliasGraph()
        graph.add(AliasSpec("build", ("a",)))
        with pytest.raises(ValueError):
            graph.add(AliasSpec("build", ("b",)))

    def test_references_are_checked_at_resolution_not_build(self, make_project):
        project = make_project({"tasks": {}, "aliases": {"later": ["not-yet-defined"]}})
        assert project.aliases.has_alias("later")


class TestLoadProject:

    def test_root_defaults_to_build_file_directory(self, tmp_path):
        (tmp_path / "web").mkdir()
        build_file = tmp_path / "web" / "buildflow.yml"
        build_file.write_text("tasks:\n  bundle:\n    adapter: stub\naliases:\n  default: [bundle]\n")

        project = load_project(build_file)

        assert project.root == (tmp_path / "web").resolve()
        assert project.source == str(build_file)
        assert len(project.registry) == 1
