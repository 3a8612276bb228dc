"""Merged per-file coverage counters.

Two payload shapes are accepted from test harnesses:

* istanbul ``coverage-final.json`` style, keyed by file path::

      {"src/a.js": {"s": {"0": 3}, "b": {"0": [1, 0]}, "f": {"0": 1},
                    "statementMap": {"0": {"start": {"line": 4}}}}}

* plain line counters, keyed by file path then line::

      {"src/a.js": {"line1": 3, "line2": 0}}

Merging sums counters per file and key, so the order in which payloads
arrive never changes the result.
"""

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from buildflow.errors import CoverageError

_LINE_NUMBER = re.compile(r"(\d+)$")


@dataclass(frozen=True)
class Totals:
    """Covered/total pair for one metric."""
    covered: int = 0
    total: int = 0

    @property
    def pct(self) -> float:
        # Nothing to cover counts as fully covered
        return 100.0 if self.total == 0 else round(100.0 * self.covered / self.total, 2)

    def __add__(self, other: "Totals") -> "Totals":
        return Totals(self.covered + other.covered, self.total + other.total)


@dataclass(frozen=True)
class CoverageSummary:
    """Statement, branch, function and line totals for a file or a group of files."""
    statements: Totals = field(default_factory=Totals)
    branches: Totals = field(default_factory=Totals)
    functions: Totals = field(default_factory=Totals)
    lines: Totals = field(default_factory=Totals)

    def __add__(self, other: "CoverageSummary") -> "CoverageSummary":
        return CoverageSummary(
            self.statements + other.statements,
            self.branches + other.branches,
            self.functions + other.functions,
            self.lines + other.lines,
        )

    def to_dict(self) -> dict[str, dict[str, float]]:
        return {
            metric: {"covered": t.covered, "total": t.total, "pct": t.pct}
            for metric, t in (
                ("statements", self.statements),
                ("branches", self.branches),
                ("functions", self.functions),
                ("lines", self.lines),
            )
        }


def _sum_counts(a: Mapping[str, int], b: Mapping[str, int]) -> dict[str, int]:
    merged = dict(a)
    for key, count in b.items():
        merged[key] = merged.get(key, 0) + count
    return merged


def _sum_branches(a: Mapping[str, list[int]], b: Mapping[str, list[int]]) -> dict[str, list[int]]:
    merged = {k: list(v) for k, v in a.items()}
    for key, counts in b.items():
        current = merged.setdefault(key, [])
        if len(current) < len(counts):
            current.extend([0] * (len(counts) - len(current)))
        for i, count in enumerate(counts):
            current[i] += count
    return merged


@dataclass
class FileCoverage:
    """Hit counters for one source file.

    ``statement_lines`` maps a statement key to the source line it starts on,
    when known.
    """
    path: str
    statements: dict[str, int] = field(default_factory=dict)
    branches: dict[str, list[int]] = field(default_factory=dict)
    functions: dict[str, int] = field(default_factory=dict)
    statement_lines: dict[str, int] = field(default_factory=dict)

    def merge(self, other: "FileCoverage") -> "FileCoverage":
        """Return a new FileCoverage with the counters of both summed."""
        if other.path != self.path:
            raise CoverageError(f"Cannot merge coverage of '{other.path}' into '{self.path}'")

        lines = dict(self.statement_lines)
        for key, line in other.statement_lines.items():
            lines[key] = min(line, lines.get(key, line))

        return FileCoverage(
            path=self.path,
            statements=_sum_counts(self.statements, other.statements),
            branches=_sum_branches(self.branches, other.branches),
            functions=_sum_counts(self.functions, other.functions),
            statement_lines=lines,
        )

    def line_hits(self) -> dict[int, int]:
        """Hits per source line (the busiest statement on the line wins)."""
        hits: dict[int, int] = {}
        for key, line in self.statement_lines.items():
            count = self.statements.get(key, 0)
            hits[line] = max(count, hits.get(line, 0))
        return dict(sorted(hits.items()))

    def uncovered_lines(self) -> list[int]:
        return [line for line, count in self.line_hits().items() if count == 0]

    def summary(self) -> CoverageSummary:
        branch_counts = [c for counts in self.branches.values() for c in counts]
        line_hits = self.line_hits()
        return CoverageSummary(
            statements=Totals(sum(1 for c in self.statements.values() if c > 0), len(self.statements)),
            branches=Totals(sum(1 for c in branch_counts if c > 0), len(branch_counts)),
            functions=Totals(sum(1 for c in self.functions.values() if c > 0), len(self.functions)),
            lines=Totals(sum(1 for c in line_hits.values() if c > 0), len(line_hits)),
        )

    def to_istanbul(self) -> dict[str, Any]:
        """Serialize in the istanbul ``coverage-final.json`` per-file shape."""
        return {
            "path": self.path,
            "s": dict(self.statements),
            "b": {k: list(v) for k, v in self.branches.items()},
            "f": dict(self.functions),
            "statementMap": {
                key: {"start": {"line": line, "column": 0}, "end": {"line": line, "column": 0}}
                for key, line in self.statement_lines.items()
            },
        }


def _int_counts(raw: Any, path: str, what: str) -> dict[str, int]:
    if not isinstance(raw, Mapping):
        raise CoverageError(f"{path}: '{what}' must be an object of counters")
    counts = {}
    for key, value in raw.items():
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise CoverageError(f"{path}: counter '{what}.{key}' must be a non-negative integer")
        counts[str(key)] = value
    return counts


def _parse_istanbul(path: str, data: Mapping[str, Any]) -> FileCoverage:
    branches: dict[str, list[int]] = {}
    for key, counts in (data.get("b") or {}).items():
        if not isinstance(counts, list) or not all(isinstance(c, int) and c >= 0 for c in counts):
            raise CoverageError(f"{path}: branch counter 'b.{key}' must be a list of non-negative integers")
        branches[str(key)] = list(counts)

    lines: dict[str, int] = {}
    for key, location in (data.get("statementMap") or {}).items():
        try:
            lines[str(key)] = int(location["start"]["line"])
        except (KeyError, TypeError, ValueError):
            raise CoverageError(f"{path}: statementMap entry '{key}' has no start line") from None

    return FileCoverage(
        path=path,
        statements=_int_counts(data.get("s") or {}, path, "s"),
        branches=branches,
        functions=_int_counts(data.get("f") or {}, path, "f"),
        statement_lines=lines,
    )


def _parse_lines(path: str, data: Mapping[str, Any]) -> FileCoverage:
    statements = _int_counts(data, path, "lines")
    lines = {}
    for key in statements:
        match = _LINE_NUMBER.search(key)
        if match:
            lines[key] = int(match.group(1))
    return FileCoverage(path=path, statements=statements, statement_lines=lines)


def parse_payload(payload: Mapping[str, Any]) -> list[FileCoverage]:
    """Convert one raw coverage payload into per-file counters.

    Raises:
        CoverageError: If the payload is neither istanbul-style nor plain line counters.
    """
    if not isinstance(payload, Mapping):
        raise CoverageError("Coverage payload must be an object keyed by file path")

    files = []
    for path, data in payload.items():
        if not isinstance(data, Mapping):
            raise CoverageError(f"{path}: coverage entry must be an object")
        path = str(path)
        if "s" in data:
            files.append(_parse_istanbul(path, data))
        else:
            files.append(_parse_lines(path, data))
    return files


class CoverageMap:
    """File path to :class:`FileCoverage`; only ever grows during a run."""

    def __init__(self, files: Mapping[str, FileCoverage] | None = None):
        self._files: dict[str, FileCoverage] = dict(files or {})

    def add(self, file: FileCoverage) -> None:
        existing = self._files.get(file.path)
        self._files[file.path] = existing.merge(file) if existing else file

    def add_payload(self, payload: Mapping[str, Any]) -> None:
        """Merge a raw payload; nothing is merged if any entry is invalid."""
        for file in parse_payload(payload):
            self.add(file)

    def merge(self, other: "CoverageMap") -> "CoverageMap":
        """Return a new map holding the counters of both maps."""
        merged = CoverageMap(self._files)
        for file in other:
            merged.add(file)
        return merged

    def get(self, path: str) -> FileCoverage | None:
        return self._files.get(path)

    def counts(self) -> dict[str, dict[str, int]]:
        """Statement counters per file, e.g. ``{"a.js": {"line1": 3}}``."""
        return {path: dict(f.statements) for path, f in sorted(self._files.items())}

    def summary(self) -> CoverageSummary:
        total = CoverageSummary()
        for file in self:
            total = total + file.summary()
        return total

    def to_istanbul(self) -> dict[str, Any]:
        return {path: f.to_istanbul() for path, f in sorted(self._files.items())}

    def __iter__(self) -> Iterator[FileCoverage]:
        return iter(f for _, f in sorted(self._files.items()))

    def __len__(self) -> int:
        return len(self._files)

    def __contains__(self, path: object) -> bool:
        return path in self._files

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CoverageMap):
            return NotImplemented
        return self._files == other._files

    def __repr__(self):
        return f"CoverageMap({len(self._files)} files)"
