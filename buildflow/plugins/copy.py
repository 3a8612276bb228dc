"""Built-in copy task."""

import shutil
from collections.abc import Mapping
from typing import Any

from buildflow.errors import ConfigError
from buildflow.pipeline.structures import Outcome, TaskId

from . import register_adapter
from .base import PluginAdapter, TaskContext
from .files import expand_files, validate_files


@register_adapter("copy")
class CopyAdapter(PluginAdapter):
    """Copy files described by file mappings into their destinations.

    A non-expanded mapping with a ``dest`` ending in ``/`` (or several sources)
    copies into that directory, keeping paths relative to ``cwd``.
    """

    optional = ("files", "src", "dest")

    def check(self, task_id: TaskId, config: Mapping[str, Any]) -> None:
        if "files" not in config and "src" not in config:
            raise ConfigError(f"Task '{task_id}' (copy): needs 'files' or 'src'")
        try:
            validate_files(config)
        except ConfigError as e:
            raise ConfigError(f"Task '{task_id}' (copy): {e}") from None

    def run(self, config: Mapping[str, Any], context: TaskContext) -> Outcome:
        copied = 0
        for mapping in expand_files(config, context.root):
            if mapping.dest is None:
                return Outcome.failed("Copy mapping has no destination")

            into_dir = mapping.dest_is_dir or mapping.dest.is_dir()
            for src in mapping.src:
                target = mapping.dest / mapping.relative(src) if into_dir else mapping.dest
                if src.is_dir():
                    target.mkdir(parents=True, exist_ok=True)
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(src, target)
                copied += 1

        context.log(f"Copied {copied} file(s)")
        return Outcome.succeeded(detail={"copied": copied})
