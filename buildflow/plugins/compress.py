"""Built-in compress task: write a ZIP archive."""

import zipfile
from collections.abc import Mapping
from typing import Any

from buildflow.errors import ConfigError
from buildflow.pipeline.structures import Outcome, TaskId

from . import register_adapter
from .base import PluginAdapter, TaskContext
from .files import expand_files, validate_files


@register_adapter("compress")
class CompressAdapter(PluginAdapter):
    """Pack the sources of every file mapping into ``archive``.

    Entries are stored relative to each mapping's ``cwd``; ``options.level``
    sets the deflate level (0-9).
    """

    required = ("archive",)
    optional = ("files", "src")

    def check(self, task_id: TaskId, config: Mapping[str, Any]) -> None:
        if not str(config["archive"]).endswith(".zip"):
            raise ConfigError(f"Task '{task_id}' (compress): only .zip archives are supported")
        level = (config.get("options") or {}).get("level", 9)
        if not isinstance(level, int) or not 0 <= level <= 9:
            raise ConfigError(f"Task '{task_id}' (compress): options.level must be 0-9")
        try:
            validate_files(config)
        except ConfigError as e:
            raise ConfigError(f"Task '{task_id}' (compress): {e}") from None

    def run(self, config: Mapping[str, Any], context: TaskContext) -> Outcome:
        archive = context.resolve_path(config["archive"])
        level = (config.get("options") or {}).get("level", 9)
        archive.parent.mkdir(parents=True, exist_ok=True)

        written: set[str] = set()
        with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=level) as zf:
            for mapping in expand_files(config, context.root):
                for src in mapping.src:
                    arcname = mapping.relative(src)
                    if arcname in written:
                        continue
                    zf.write(src, arcname)
                    written.add(arcname)

        if not written:
            return Outcome.failed(f"No files matched for archive {archive}")

        context.log(f"Created {archive} ({len(written)} entries)")
        return Outcome.succeeded(detail={"archive": str(archive), "entries": len(written)})
