"""Build file loading and the immutable per-task configuration store.

The build file is YAML::

    meta:
      pkg: package.json
    tasks:
      clean:
        adapter: clean
        targets:
          dist:
            src: [dist/]
    aliases:
      build: [clean:dist, copy:build]
      release:
        tasks: [build, compress:dist]
        best_effort: false

Task-level ``options`` are merged into every target's ``options`` (target keys
win). String values may contain ``<%= pkg.version %>`` templates that are
rendered from ``meta`` once, at load time.
"""

import json
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from buildflow.errors import ConfigError
from buildflow.pipeline.structures import ExecutionMode, TaskId
from buildflow.utils.logging import logger

TEMPLATE_PATTERN = re.compile(r"<%=\s*([A-Za-z_][\w.]*)\s*%>")

TASK_KEYS = {"adapter", "mode", "timeout", "description", "options", "targets", "config"}
ALIAS_KEYS = {"tasks", "best_effort", "description"}


def freeze(value: Any) -> Any:
    """Recursively convert dicts to read-only mappings and lists to tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of :func:`freeze`, producing plain dicts and lists."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


def render_templates(value: Any, context: Mapping[str, Any], source: str = "") -> Any:
    """Render ``<%= dotted.path %>`` templates in every string of ``value``."""
    if isinstance(value, str):
        def lookup(match: re.Match) -> str:
            current: Any = context
            for part in match.group(1).split("."):
                if not isinstance(current, Mapping) or part not in current:
                    raise ConfigError(f"Unknown template variable '{match.group(1)}'", source)
                current = current[part]
            return str(current)

        return TEMPLATE_PATTERN.sub(lookup, value)
    if isinstance(value, Mapping):
        return {k: render_templates(v, context, source) for k, v in value.items()}
    if isinstance(value, list):
        return [render_templates(v, context, source) for v in value]
    return value


def merge_options(task_options: Mapping[str, Any] | None, target: Mapping[str, Any]) -> dict[str, Any]:
    """Merge task-level options under a target's own options."""
    merged = dict(target)
    if task_options or "options" in target:
        options = dict(task_options or {})
        options.update(target.get("options") or {})
        merged["options"] = options
    return merged


@dataclass(frozen=True)
class TaskSpec:
    """Declaration of one task as read from the build file."""
    name: str
    adapter: str
    targets: tuple[str | None, ...]
    mode: ExecutionMode | None = None
    timeout: float | None = None
    description: str | None = None


@dataclass(frozen=True)
class AliasSpec:
    """Declaration of one alias as read from the build file."""
    name: str
    refs: tuple[str, ...]
    best_effort: bool = False
    description: str | None = None


class ConfigStore:
    """Read-only tree of per-task configuration keyed by :class:`TaskId`.

    Built once at startup; every mapping handed out is frozen so that no task can
    change another task's view of configuration.
    """

    def __init__(self, entries: Mapping[TaskId, Mapping[str, Any]], meta: Mapping[str, Any] | None = None):
        self._entries = MappingProxyType({tid: freeze(cfg) for tid, cfg in entries.items()})
        self.meta = freeze(meta or {})

    def get(self, task_id: TaskId) -> Mapping[str, Any]:
        try:
            return self._entries[task_id]
        except KeyError:
            raise KeyError(f"No configuration for task '{task_id}'") from None

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._entries

    def __iter__(self) -> Iterator[TaskId]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self):
        return f"ConfigStore({len(self._entries)} entries)"


@dataclass
class BuildDefinition:
    """Everything parsed from one build file."""
    config: ConfigStore
    tasks: dict[str, TaskSpec] = field(default_factory=dict)
    aliases: dict[str, AliasSpec] = field(default_factory=dict)
    source: str = "<memory>"


def _load_meta(raw: Any, base_dir: Path, source: str) -> dict[str, Any]:
    """Resolve ``meta`` entries; string values ending in .json/.yml are loaded from disk."""
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("'meta' must be a mapping", source)

    meta: dict[str, Any] = {}
    for key, value in raw.items():
        if isinstance(value, str) and value.endswith((".json", ".yml", ".yaml")):
            path = base_dir / value
            if not path.exists():
                raise ConfigError(f"meta.{key}: file not found: {path}", source)
            with open(path, encoding="utf-8") as f:
                meta[key] = json.load(f) if path.suffix == ".json" else yaml.safe_load(f)
        else:
            meta[key] = value
    return meta


def _parse_mode(value: Any, where: str, source: str) -> ExecutionMode | None:
    if value is None:
        return None
    try:
        return ExecutionMode(value)
    except ValueError:
        raise ConfigError(f"{where}: mode must be 'sync' or 'async', got '{value}'", source) from None


def _parse_task(name: str, data: Any, source: str) -> tuple[TaskSpec, dict[TaskId, dict[str, Any]]]:
    if not isinstance(data, dict):
        raise ConfigError(f"Task '{name}' must be a mapping", source)
    if ":" in name:
        raise ConfigError(f"Task name '{name}' must not contain ':'", source)

    unknown = set(data) - TASK_KEYS
    if unknown:
        raise ConfigError(f"Task '{name}' has unknown keys: {sorted(unknown)}", source)
    if "adapter" not in data:
        raise ConfigError(f"Task '{name}' must declare an 'adapter'", source)
    if "targets" in data and "config" in data:
        raise ConfigError(f"Task '{name}' may declare 'targets' or 'config', not both", source)

    timeout = data.get("timeout")
    if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
        raise ConfigError(f"Task '{name}': timeout must be a positive number", source)

    task_options = data.get("options")
    if task_options is not None and not isinstance(task_options, dict):
        raise ConfigError(f"Task '{name}': 'options' must be a mapping", source)

    entries: dict[TaskId, dict[str, Any]] = {}
    if "targets" in data:
        targets = data["targets"]
        if not isinstance(targets, dict) or not targets:
            raise ConfigError(f"Task '{name}': 'targets' must be a non-empty mapping", source)
        for target, target_cfg in targets.items():
            target = str(target)
            if ":" in target:
                raise ConfigError(f"Task '{name}': target '{target}' must not contain ':'", source)
            if target_cfg is None:
                target_cfg = {}
            elif isinstance(target_cfg, (list, str)):
                target_cfg = {"src": target_cfg}
            if not isinstance(target_cfg, dict):
                raise ConfigError(f"Task '{name}': target '{target}' must be a mapping", source)
            entries[TaskId(name, target)] = merge_options(task_options, target_cfg)
    else:
        cfg = data.get("config") or {}
        if not isinstance(cfg, dict):
            raise ConfigError(f"Task '{name}': 'config' must be a mapping", source)
        entries[TaskId(name)] = merge_options(task_options, cfg)

    spec = TaskSpec(
        name=name,
        adapter=str(data["adapter"]),
        targets=tuple(tid.target for tid in entries),
        mode=_parse_mode(data.get("mode"), f"Task '{name}'", source),
        timeout=float(timeout) if timeout is not None else None,
        description=data.get("description"),
    )
    return spec, entries


def _parse_alias(name: str, data: Any, source: str) -> AliasSpec:
    if isinstance(data, list):
        data = {"tasks": data}
    if not isinstance(data, dict):
        raise ConfigError(f"Alias '{name}' must be a list or a mapping", source)

    unknown = set(data) - ALIAS_KEYS
    if unknown:
        raise ConfigError(f"Alias '{name}' has unknown keys: {sorted(unknown)}", source)

    refs = data.get("tasks")
    if not isinstance(refs, list) or not all(isinstance(r, str) and r for r in refs):
        raise ConfigError(f"Alias '{name}': 'tasks' must be a list of names", source)

    best_effort = data.get("best_effort", False)
    if not isinstance(best_effort, bool):
        raise ConfigError(f"Alias '{name}': 'best_effort' must be true or false", source)

    return AliasSpec(name=name, refs=tuple(refs), best_effort=best_effort, description=data.get("description"))


def parse_build_definition(data: Any, base_dir: Path | None = None, source: str = "<memory>") -> BuildDefinition:
    """Validate and convert a parsed build file into a :class:`BuildDefinition`.

    Raises:
        ConfigError: If the structure is invalid.
    """
    if not isinstance(data, dict):
        raise ConfigError("Build file must contain a mapping at its root", source)

    unknown = set(data) - {"meta", "tasks", "aliases"}
    if unknown:
        raise ConfigError(f"Unknown top-level keys: {sorted(unknown)}", source)

    meta = _load_meta(data.get("meta"), base_dir or Path("."), source)

    raw_tasks = data.get("tasks") or {}
    raw_aliases = data.get("aliases") or {}
    if not isinstance(raw_tasks, dict):
        raise ConfigError("'tasks' must be a mapping", source)
    if not isinstance(raw_aliases, dict):
        raise ConfigError("'aliases' must be a mapping", source)

    tasks: dict[str, TaskSpec] = {}
    entries: dict[TaskId, dict[str, Any]] = {}
    for name, task_data in raw_tasks.items():
        name = str(name)
        spec, task_entries = _parse_task(name, task_data, source)
        tasks[name] = spec
        for tid, cfg in task_entries.items():
            entries[tid] = render_templates(cfg, meta, source)

    aliases: dict[str, AliasSpec] = {}
    for name, alias_data in raw_aliases.items():
        name = str(name)
        if name in tasks:
            raise ConfigError(f"'{name}' is declared both as a task and as an alias", source)
        aliases[name] = _parse_alias(name, alias_data, source)

    logger.debug(f"Parsed {len(tasks)} tasks, {len(entries)} targets, {len(aliases)} aliases from {source}")
    return BuildDefinition(config=ConfigStore(entries, meta), tasks=tasks, aliases=aliases, source=source)


def load_build_file(path: str | Path) -> BuildDefinition:
    """Load and validate a YAML build file.

    Raises:
        ConfigError: If the file is missing, not valid YAML, or structurally invalid.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Build file not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML: {e}", str(path)) from e

    return parse_build_definition(data, base_dir=path.parent, source=str(path))
