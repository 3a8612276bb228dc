"""Task registry and alias graph.

Both are built once from a :class:`~buildflow.config.BuildDefinition` and are
read-only afterwards. Adapter configuration schemas are validated while
building, so a malformed build file fails before any task runs.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from buildflow.config import AliasSpec, BuildDefinition, ConfigStore, load_build_file
from buildflow.errors import ConfigError, UnknownAliasError, UnknownTaskError
from buildflow.pipeline.structures import ExecutionMode, TaskId
from buildflow.plugins import PluginAdapter, get_adapter
from buildflow.utils.logging import logger


@dataclass(frozen=True)
class Task:
    """A concrete, runnable unit: identity, adapter, frozen config and mode."""
    id: TaskId
    adapter: PluginAdapter
    config: Mapping[str, Any]
    mode: ExecutionMode = ExecutionMode.SYNC
    timeout: float | None = None
    description: str | None = None

    def __repr__(self):
        return f"Task('{self.id}', adapter={self.adapter.name}, mode={self.mode.value})"


class TaskRegistry:
    """Mapping from :class:`TaskId` to :class:`Task`, in registration order."""

    def __init__(self):
        self._tasks: dict[TaskId, Task] = {}
        self._targets: dict[str, list[str | None]] = {}

    def register(self, task: Task) -> None:
        """Register a task.

        Raises:
            ValueError: If a task with the same identity is already registered.
        """
        if task.id in self._tasks:
            raise ValueError(f"Task '{task.id}' is already registered. Task identities must be unique.")
        self._tasks[task.id] = task
        self._targets.setdefault(task.id.name, []).append(task.id.target)
        logger.debug(f"Registered task: {task.id}")

    def get(self, task_id: TaskId) -> Task:
        """Get a task by identity.

        Raises:
            UnknownTaskError: If the task is not registered.
        """
        try:
            return self._tasks[task_id]
        except KeyError:
            raise UnknownTaskError(str(task_id)) from None

    def has_task(self, name: str) -> bool:
        return name in self._targets

    def targets(self, name: str) -> tuple[str | None, ...]:
        """Targets of ``name`` in declaration order (``(None,)`` for target-less tasks)."""
        if name not in self._targets:
            raise UnknownTaskError(name)
        return tuple(self._targets[name])

    def names(self) -> list[str]:
        return list(self._targets)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __iter__(self) -> Iterator[Task]:
        return iter(self._tasks.values())

    def __len__(self) -> int:
        return len(self._tasks)

    def __repr__(self):
        return f"TaskRegistry({len(self._tasks)} tasks)"


class AliasGraph:
    """Named, ordered compositions of task and alias references."""

    def __init__(self, aliases: Mapping[str, AliasSpec] | None = None):
        self._aliases: dict[str, AliasSpec] = dict(aliases or {})

    def add(self, alias: AliasSpec) -> None:
        if alias.name in self._aliases:
            raise ValueError(f"Alias '{alias.name}' is already registered")
        self._aliases[alias.name] = alias

    def get(self, name: str) -> AliasSpec:
        try:
            return self._aliases[name]
        except KeyError:
            raise UnknownAliasError(name) from None

    def has_alias(self, name: str) -> bool:
        return name in self._aliases

    def __iter__(self) -> Iterator[AliasSpec]:
        return iter(self._aliases.values())

    def __len__(self) -> int:
        return len(self._aliases)

    def __repr__(self):
        return f"AliasGraph({len(self._aliases)} aliases)"


@dataclass
class Project:
    """Everything needed to resolve and run names from one build file."""
    config: ConfigStore
    registry: TaskRegistry
    aliases: AliasGraph
    root: Path
    source: str = "<memory>"


def build_registry(definition: BuildDefinition) -> TaskRegistry:
    """Instantiate adapters and register one :class:`Task` per declared target.

    Raises:
        ConfigError: On unknown adapters, invalid modes or schema violations.
    """
    registry = TaskRegistry()

    for spec in definition.tasks.values():
        adapter = get_adapter(spec.adapter)
        mode = spec.mode or adapter.mode
        if adapter.mode is ExecutionMode.ASYNC and mode is ExecutionMode.SYNC:
            raise ConfigError(
                f"Task '{spec.name}': adapter '{adapter.name}' is asynchronous and cannot run in sync mode",
                definition.source,
            )

        for target in spec.targets:
            task_id = TaskId(spec.name, target)
            config = definition.config.get(task_id)
            try:
                adapter.validate(task_id, config)
            except ConfigError as e:
                raise ConfigError(str(e), definition.source) from None

            registry.register(
                Task(
                    id=task_id,
                    adapter=adapter,
                    config=config,
                    mode=mode,
                    timeout=spec.timeout,
                    description=spec.description,
                )
            )

    return registry


def build_project(definition: BuildDefinition, root: Path | None = None) -> Project:
    """Build the registry and alias graph for a parsed build file."""
    registry = build_registry(definition)
    aliases = AliasGraph(definition.aliases)
    return Project(
        config=definition.config,
        registry=registry,
        aliases=aliases,
        root=(root or Path.cwd()).resolve(),
        source=definition.source,
    )


def load_project(build_file: str | Path, root: Path | None = None) -> Project:
    """Load a build file and build its project; ``root`` defaults to the file's directory."""
    build_file = Path(build_file)
    definition = load_build_file(build_file)
    project = build_project(definition, root or build_file.parent)
    logger.info(
        f"Loaded {len(project.registry)} tasks and {len(project.aliases)} aliases from {build_file}"
    )
    return project
