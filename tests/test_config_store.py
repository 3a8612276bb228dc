"""Tests for build file parsing and the frozen configuration store."""

import json
from pathlib import Path

import pytest

from buildflow.config import (
    ConfigStore,
    freeze,
    load_build_file,
    merge_options,
    parse_build_definition,
    render_templates,
    thaw,
)
from buildflow.errors import ConfigError
from buildflow.graph import GraphResolver
from buildflow.pipeline.structures import ExecutionMode, TaskId
from buildflow.registry import load_project

SAMPLES = Path(__file__).resolve().parent.parent / "samples"


class TestParsing:

    def test_targets_in_declaration_order(self):
        definition = parse_build_definition({
            "tasks": {"less": {"adapter": "stub", "targets": {"dist": {}, "build": {}}}},
        })
        assert definition.tasks["less"].targets == ("dist", "build")
        assert [str(tid) for tid in definition.config] == ["less:dist", "less:build"]

    def test_targetless_task(self):
        definition = parse_build_definition({"tasks": {"serve": {"adapter": "stub", "config": {"port": 1}}}})
        assert definition.config.get(TaskId("serve"))["port"] == 1
        assert definition.tasks["serve"].targets == (None,)

    def test_list_target_is_src_shorthand(self):
        definition = parse_build_definition({"tasks": {"clean": {"adapter": "clean", "targets": {"dist": ["dist/"]}}}})
        assert definition.config.get(TaskId("clean", "dist"))["src"] == ("dist/",)

    def test_alias_forms(self):
        definition = parse_build_definition({
            "tasks": {"a": {"adapter": "stub"}},
            "aliases": {
                "short": ["a"],
                "long": {"tasks": ["a", "short"], "best_effort": True, "description": "all of it"},
            },
        })
        assert definition.aliases["short"].refs == ("a",)
        assert definition.aliases["short"].best_effort is False
        assert definition.aliases["long"].best_effort is True
        assert definition.aliases["long"].description == "all of it"

    def test_mode_and_timeout(self):
        definition = parse_build_definition({"tasks": {"a": {"adapter": "stub", "mode": "async", "timeout": 5}}})
        assert definition.tasks["a"].mode is ExecutionMode.ASYNC
        assert definition.tasks["a"].timeout == 5.0

    @pytest.mark.parametrize("data", [
        [],
        {"tasks": {}, "plugins": {}},
        {"tasks": {"a": {}}},
        {"tasks": {"a": {"adapter": "stub", "dependencies": ["b"]}}},
        {"tasks": {"a": {"adapter": "stub", "targets": {}, "config": {}}}},
        {"tasks": {"a": {"adapter": "stub", "targets": {}}}},
        {"tasks": {"a:b": {"adapter": "stub"}}},
        {"tasks": {"a": {"adapter": "stub", "targets": {"x:y": {}}}}},
        {"tasks": {"a": {"adapter": "stub", "timeout": 0}}},
        {"tasks": {"a": {"adapter": "stub", "mode": "parallel"}}},
        {"tasks": {"a": {"adapter": "stub", "options": ["x"]}}},
        {"aliases": {"a": "b"}},
        {"aliases": {"a": {"tasks": ["b"], "best_effort": "yes"}}},
        {"aliases": {"a": {"tasks": ["b"], "when": "always"}}},
        {"aliases": {"a": [""]}},
    ])
    def test_invalid_structures(self, data):
        with pytest.raises(ConfigError):
            parse_build_definition(data)

    def test_error_names_the_source(self):
        with pytest.raises(ConfigError) as exc:
            parse_build_definition({"tasks": {"a": {}}}, source="buildflow.yml")
        assert str(exc.value).startswith("buildflow.yml: ")
        assert exc.value.source == "buildflow.yml"


class TestOptions:

    def test_target_options_win(self):
        merged = merge_options({"format": "iife", "sourcemap": False}, {"src": "a.js", "options": {"format": "es"}})
        assert merged == {"src": "a.js", "options": {"format": "es", "sourcemap": False}}

    def test_task_options_reach_every_target(self):
        definition = parse_build_definition({
            "tasks": {"rollup": {
                "adapter": "stub",
                "options": {"format": "iife"},
                "targets": {"build": {}, "dist": {"options": {"format": "umd"}}},
            }},
        })
        assert definition.config.get(TaskId("rollup", "build"))["options"]["format"] == "iife"
        assert definition.config.get(TaskId("rollup", "dist"))["options"]["format"] == "umd"

    def test_no_options_key_without_options(self):
        assert merge_options(None, {"src": "a"}) == {"src": "a"}


class TestTemplates:

    def test_renders_nested_values(self):
        rendered = render_templates(
            {"banner": "v<%= pkg.version %>", "files": ["<%= pkg.name %>.js"]},
            {"pkg": {"name": "sceditor", "version": "3.2.0"}},
        )
        assert rendered == {"banner": "v3.2.0", "files": ["sceditor.js"]}

    def test_unknown_variable(self):
        with pytest.raises(ConfigError, match="pkg.author"):
            render_templates("<%= pkg.author %>", {"pkg": {"name": "x"}})

    def test_meta_loaded_from_package_json(self, tmp_path):
        (tmp_path / "package.json").write_text(json.dumps({"version": "1.4.2"}))
        definition = parse_build_definition(
            {
                "meta": {"pkg": "package.json"},
                "tasks": {"compress": {"adapter": "stub", "targets": {"dist": {"archive": "r-<%= pkg.version %>.zip"}}}},
            },
            base_dir=tmp_path,
        )
        assert definition.config.get(TaskId("compress", "dist"))["archive"] == "r-1.4.2.zip"
        assert definition.config.meta["pkg"]["version"] == "1.4.2"

    def test_missing_meta_file(self, tmp_path):
        with pytest.raises(ConfigError, match="file not found"):
            parse_build_definition({"meta": {"pkg": "package.json"}}, base_dir=tmp_path)


class TestFreezing:

    def test_config_is_read_only(self):
        store = ConfigStore({TaskId("copy", "dist"): {"files": [{"src": "a"}], "options": {"x": 1}}})
        config = store.get(TaskId("copy", "dist"))
        with pytest.raises(TypeError):
            config["options"] = {}
        with pytest.raises(TypeError):
            config["options"]["x"] = 2
        assert isinstance(config["files"], tuple)

    def test_store_does_not_alias_input(self):
        raw = {"options": {"x": 1}}
        store = ConfigStore({TaskId("a"): raw})
        raw["options"]["x"] = 99
        assert store.get(TaskId("a"))["options"]["x"] == 1

    def test_thaw_round_trips(self):
        data = {"a": [1, {"b": 2}], "c": "d"}
        assert thaw(freeze(data)) == data

    def test_unknown_task(self):
        with pytest.raises(KeyError):
            ConfigStore({}).get(TaskId("nope"))


class TestBuildFiles:

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "buildflow.yml"
        path.write_text("tasks: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_build_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_build_file(tmp_path / "buildflow.yml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "buildflow.yml"
        path.write_text("")
        with pytest.raises(ConfigError):
            load_build_file(path)

    def test_sample_project(self):
        project = load_project(SAMPLES / "buildflow.yml")
        resolver = GraphResolver(project.registry, project.aliases)

        assert [str(t) for t in resolver.resolve("test")] == [
            "eslint:source", "eslint:tests", "eslint:translations", "dev-server", "qunit:all",
        ]
        release = [str(t) for t in resolver.resolve("release")]
        assert len(release) == 16
        assert release[-2:] == ["compress:dist", "clean:dist"]
        assert project.config.get(TaskId("compress", "dist"))["archive"] == "releases/sceditor-3.2.0.zip"
        bundles = project.config.get(TaskId("uglify", "build"))["files"][0]
        assert list(bundles) == [
            "dist/sceditor.min.js",
            "dist/jquery.sceditor.min.js",
            "dist/jquery.sceditor.bbcode.min.js",
            "dist/jquery.sceditor.xhtml.min.js",
        ]
        assert project.root == SAMPLES
