"""Built-in clean task: delete files and directories."""

import shutil
from collections.abc import Mapping
from typing import Any

from buildflow.errors import ConfigError
from buildflow.pipeline.structures import Outcome, TaskId

from . import register_adapter
from .base import PluginAdapter, TaskContext
from .files import match_patterns


@register_adapter("clean")
class CleanAdapter(PluginAdapter):
    """Delete every path matched by ``src``.

    Paths outside the project root (or the root itself) are refused unless
    ``options.force`` is set. ``options.dry_run`` only reports what would go.
    """

    required = ("src",)

    def check(self, task_id: TaskId, config: Mapping[str, Any]) -> None:
        if not config["src"]:
            raise ConfigError(f"Task '{task_id}' (clean): 'src' must not be empty")

    def run(self, config: Mapping[str, Any], context: TaskContext) -> Outcome:
        options = config.get("options") or {}
        patterns = [config["src"]] if isinstance(config["src"], str) else list(config["src"])
        root = context.root.resolve()

        removed: list[str] = []
        for rel in match_patterns(patterns, root, file_filter=None):
            matched = root / rel
            # Resolve the parent only; a matched symlink is removed, never its target
            path = matched.resolve() if matched.name == ".." else matched.parent.resolve() / matched.name
            if not options.get("force") and (path == root or root not in path.parents):
                return Outcome.failed(
                    f"Refusing to delete '{path}' outside the project root (set options.force)"
                )
            if options.get("dry_run"):
                context.log(f"Would delete {rel}")
            elif path.is_symlink():
                path.unlink()
            elif path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()
            removed.append(rel)

        context.log(f"Cleaned {len(removed)} path(s)")
        return Outcome.succeeded(detail={"removed": removed})
