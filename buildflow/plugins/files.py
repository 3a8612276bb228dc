"""File mapping expansion shared by the file-based adapters.

Supported ``files`` forms (mirroring common build-tool conventions):

- list of mapping dicts: ``{expand, cwd, src, dest, ext, flatten, rename, filter}``
- dest-to-sources object: ``{"dist/app.min.js": ["src/app.js"]}``, alone or as a list entry
- bare list of paths: ``["README.md", "LICENSE.md"]`` (sources without a dest)
- compact form on the target itself: ``src`` / ``dest`` keys

Patterns are globs relative to ``cwd`` (or the project root); a leading ``!``
excludes matches of that pattern.
"""

import glob
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from buildflow.errors import ConfigError

MAPPING_KEYS = {"expand", "cwd", "src", "dest", "ext", "flatten", "rename", "filter"}
FILTERS = {"isFile", "isDirectory", None}


@dataclass(frozen=True)
class FileMapping:
    """Sources that produce one destination (``dest`` is None for plain source lists)."""
    src: tuple[Path, ...]
    dest: Path | None = None
    base: Path | None = None
    dest_is_dir: bool = False

    def relative(self, path: Path) -> str:
        """Path of ``path`` relative to the mapping's base directory."""
        base = self.base or path.parent
        try:
            return path.relative_to(base).as_posix()
        except ValueError:
            return path.name


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]


def match_patterns(patterns: Iterable[str], cwd: Path, file_filter: str | None = "isFile") -> list[str]:
    """Expand glob patterns relative to ``cwd``; ``!pattern`` removes matches.

    Returns:
        Matching paths relative to ``cwd`` in pattern order, without duplicates.
    """
    matched: list[str] = []
    seen: set[str] = set()

    for pattern in patterns:
        negate = pattern.startswith("!")
        pattern = pattern[1:] if negate else pattern
        hits = sorted(glob.glob(pattern, root_dir=cwd, recursive=True))
        hits = [h.replace(os.sep, "/").rstrip("/") for h in hits]

        if negate:
            excluded = set(hits)
            matched = [m for m in matched if m not in excluded]
            seen -= excluded
            continue

        for hit in hits:
            full = cwd / hit
            if file_filter == "isFile" and not full.is_file():
                continue
            if file_filter == "isDirectory" and not full.is_dir():
                continue
            if hit not in seen:
                seen.add(hit)
                matched.append(hit)

    return matched


def _dest_name(rel: str, entry: Mapping[str, Any]) -> str:
    """Destination-relative name for one expanded source."""
    name = Path(rel).name if entry.get("flatten") else rel

    rename = entry.get("rename")
    if rename:
        name = name.replace(rename["from"], rename["to"], 1)

    ext = entry.get("ext")
    if ext:
        directory, _, base = name.rpartition("/")
        stem = base.split(".", 1)[0]
        name = f"{directory}/{stem}{ext}" if directory else f"{stem}{ext}"

    return name


def _validate_entry(entry: Mapping[str, Any]) -> None:
    unknown = set(entry) - MAPPING_KEYS
    if unknown:
        raise ConfigError(f"Unknown file mapping keys: {sorted(unknown)}")
    if "src" not in entry:
        raise ConfigError("File mapping requires 'src'")
    if entry.get("filter") not in FILTERS:
        raise ConfigError(f"Unsupported file filter '{entry.get('filter')}'")
    rename = entry.get("rename")
    if rename is not None and (not isinstance(rename, Mapping) or {"from", "to"} - set(rename)):
        raise ConfigError("'rename' must be a mapping with 'from' and 'to'")
    if entry.get("expand") and "dest" not in entry:
        raise ConfigError("Expanded file mapping requires 'dest'")


def _is_dest_object(entry: Mapping[str, Any]) -> bool:
    return "src" not in entry and "dest" not in entry


def _validate_dest_object(files: Mapping[str, Any]) -> None:
    for dest, srcs in files.items():
        if not isinstance(dest, str):
            raise ConfigError("File object keys must be destination paths")
        if not isinstance(srcs, (str, list, tuple)):
            raise ConfigError(f"Sources of '{dest}' must be a path or a list of paths")


def _expand_dest_object(files: Mapping[str, Any], root: Path) -> list[FileMapping]:
    mappings = []
    for dest, srcs in files.items():
        rels = match_patterns(_as_list(srcs), root)
        mappings.append(
            FileMapping(
                src=tuple(root / r for r in rels),
                dest=root / dest,
                base=root,
                dest_is_dir=dest.endswith("/"),
            )
        )
    return mappings


def validate_files(config: Mapping[str, Any]) -> None:
    """Validate the file mapping keys of a target configuration.

    Raises:
        ConfigError: On malformed mappings.
    """
    files = config.get("files")
    if files is None:
        if "dest" in config and "src" not in config:
            raise ConfigError("'dest' given without 'src'")
        return
    if isinstance(files, Mapping):
        _validate_dest_object(files)
        return
    if not isinstance(files, (list, tuple)):
        raise ConfigError("'files' must be a list or a mapping")
    for entry in files:
        if isinstance(entry, Mapping) and _is_dest_object(entry):
            _validate_dest_object(entry)
        elif isinstance(entry, Mapping):
            _validate_entry(entry)
        elif not isinstance(entry, (str, list, tuple)):
            raise ConfigError("File entries must be mappings, paths or lists of paths")


def expand_files(config: Mapping[str, Any], root: Path) -> list[FileMapping]:
    """Turn a target configuration's file declarations into concrete mappings."""
    mappings: list[FileMapping] = []

    if "src" in config and "files" not in config:
        config = {"files": [{"src": config["src"], **({"dest": config["dest"]} if "dest" in config else {})}]}

    files = config.get("files")
    if files is None:
        return mappings

    if isinstance(files, Mapping):
        return _expand_dest_object(files, root)

    for entry in files:
        if isinstance(entry, str) or isinstance(entry, (list, tuple)):
            rels = match_patterns(_as_list(entry), root)
            mappings.append(FileMapping(src=tuple(root / r for r in rels), base=root))
            continue
        if _is_dest_object(entry):
            mappings.extend(_expand_dest_object(entry, root))
            continue

        cwd = root / entry.get("cwd", ".")
        file_filter = entry.get("filter", "isFile")
        rels = match_patterns(_as_list(entry["src"]), cwd, file_filter)

        if entry.get("expand"):
            dest_dir = root / entry["dest"]
            for rel in rels:
                mappings.append(
                    FileMapping(src=(cwd / rel,), dest=dest_dir / _dest_name(rel, entry), base=cwd)
                )
        else:
            raw_dest = entry.get("dest")
            dest = root / raw_dest if raw_dest else None
            mappings.append(
                FileMapping(
                    src=tuple(cwd / r for r in rels),
                    dest=dest,
                    base=cwd,
                    dest_is_dir=bool(raw_dest) and (raw_dest.endswith("/") or len(rels) > 1),
                )
            )

    return mappings
