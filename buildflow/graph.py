"""Alias expansion into linear execution plans."""

from collections.abc import Iterable

from buildflow.errors import CyclicAliasError, UnknownAliasError, UnknownTaskError
from buildflow.pipeline.structures import ExecutionPlan, TaskId
from buildflow.registry import AliasGraph, TaskRegistry
from buildflow.utils.logging import logger


class GraphResolver:
    """Flattens a requested alias or task into an :class:`ExecutionPlan`.

    Expansion is depth-first and left-to-right. Repeated references are kept:
    a task reachable twice runs twice. A bare task name stands for every target
    of that task, in declaration order.
    """

    def __init__(self, registry: TaskRegistry, aliases: AliasGraph):
        self.registry = registry
        self.aliases = aliases

    def resolve(self, name: str) -> ExecutionPlan:
        """Resolve one requested name.

        Raises:
            UnknownAliasError: ``name`` is neither an alias nor a task.
            UnknownTaskError: ``name`` is an unregistered ``task:target``, or an
                alias references an unregistered task.
            CyclicAliasError: Alias expansion re-enters an alias being expanded.
        """
        tasks: list[TaskId] = []
        best_effort = False

        if self.aliases.has_alias(name):
            best_effort = self.aliases.get(name).best_effort
            self._expand_alias(name, [], tasks)
        elif ":" in name:
            task_id = TaskId.parse(name)
            if task_id not in self.registry:
                raise UnknownTaskError(name)
            tasks.append(task_id)
        elif self.registry.has_task(name):
            tasks.extend(TaskId(name, target) for target in self.registry.targets(name))
        else:
            raise UnknownAliasError(name)

        plan = ExecutionPlan(tasks=tuple(tasks), requested=(name,), best_effort=best_effort)
        logger.debug(f"Resolved '{name}' to {len(plan)} tasks: {', '.join(map(str, plan))}")
        return plan

    def resolve_many(self, names: Iterable[str]) -> ExecutionPlan:
        """Resolve several names and concatenate their plans in request order.

        The combined plan is best-effort only if every requested name is a
        best-effort alias. All names are resolved before the plan is returned.
        """
        plans = [self.resolve(name) for name in names]
        if not plans:
            return ExecutionPlan(tasks=())
        return ExecutionPlan(
            tasks=tuple(task for plan in plans for task in plan),
            requested=tuple(name for plan in plans for name in plan.requested),
            best_effort=all(plan.best_effort for plan in plans),
        )

    def _expand_alias(self, name: str, stack: list[str], out: list[TaskId]) -> None:
        if name in stack:
            raise CyclicAliasError(stack[stack.index(name):] + [name])

        stack.append(name)
        for ref in self.aliases.get(name).refs:
            if ":" in ref:
                task_id = TaskId.parse(ref)
                if task_id not in self.registry:
                    raise UnknownTaskError(ref, referenced_by=name)
                out.append(task_id)
            elif self.aliases.has_alias(ref):
                self._expand_alias(ref, stack, out)
            elif self.registry.has_task(ref):
                out.extend(TaskId(ref, target) for target in self.registry.targets(ref))
            else:
                raise UnknownTaskError(ref, referenced_by=name)
        stack.pop()
