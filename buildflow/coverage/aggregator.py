"""Coverage collection over the event bus and report generation."""

import hashlib
import io
import os
import re
import shutil
import tempfile
from collections import defaultdict
from pathlib import Path, PurePosixPath

from rich.console import Console
from rich.table import Table
from rich.text import Text

from buildflow.events import CoverageReported, EventBus, RunFinished
from buildflow.pipeline.ui import BUILDFLOW_THEME
from buildflow.utils.helpers import save_json_file
from buildflow.utils.logging import logger

from .map import CoverageMap, CoverageSummary, FileCoverage

TEXT_REPORT = "coverage.txt"
JSON_REPORT = "coverage-final.json"
HTML_INDEX = "index.html"
HTML_FILES_DIR = "files"

# Rendering width of the text and HTML reports
REPORT_WIDTH = 110

# Percent thresholds for the report colors
HIGH_WATERMARK = 80.0
LOW_WATERMARK = 50.0


def _pct_style(pct: float) -> str:
    if pct >= HIGH_WATERMARK:
        return "green"
    if pct >= LOW_WATERMARK:
        return "yellow"
    return "red"


def _pct_cell(pct: float) -> Text:
    return Text(f"{pct:.2f}", style=_pct_style(pct))


def _format_ranges(lines: list[int]) -> str:
    """Collapse sorted line numbers into ``1-3,7`` ranges."""
    ranges: list[str] = []
    start = prev = None
    for line in lines:
        if prev is not None and line == prev + 1:
            prev = line
            continue
        if start is not None:
            ranges.append(f"{start}-{prev}" if start != prev else str(start))
        start = prev = line
    if start is not None:
        ranges.append(f"{start}-{prev}" if start != prev else str(start))
    return ",".join(ranges)


def html_page_name(path: str) -> str:
    """File name of the per-file HTML page for a covered source path.

    The readable part is lossy, so a digest of the full path keeps names unique.
    """
    readable = re.sub(r"[^A-Za-z0-9._-]+", "_", path.strip("/"))
    digest = hashlib.sha1(path.encode("utf-8")).hexdigest()[:8]
    return f"{readable}-{digest}.html"


def build_summary_table(coverage: CoverageMap, summarizer: str = "nested", links: bool = False) -> Table:
    """Per-file coverage table with a totals row.

    ``nested`` groups files under a row per directory.
    """
    table = Table(title="Coverage summary", show_footer=False)
    table.add_column("File", no_wrap=True)
    for column in ("% Stmts", "% Branch", "% Funcs", "% Lines"):
        table.add_column(column, justify="right")
    table.add_column("Uncovered Lines")

    def add_row(label: str | Text, summary: CoverageSummary, uncovered: str = "", bold: bool = False) -> None:
        table.add_row(
            label,
            _pct_cell(summary.statements.pct),
            _pct_cell(summary.branches.pct),
            _pct_cell(summary.functions.pct),
            _pct_cell(summary.lines.pct),
            uncovered,
            style="bold" if bold else None,
        )

    def file_label(file: FileCoverage, name: str) -> Text:
        if links:
            return Text(name, style=f"link {HTML_FILES_DIR}/{html_page_name(file.path)}")
        return Text(name)

    add_row("All files", coverage.summary(), bold=True)

    if summarizer == "nested":
        groups: dict[str, list[FileCoverage]] = defaultdict(list)
        for file in coverage:
            groups[str(PurePosixPath(file.path).parent)].append(file)
        for directory in sorted(groups):
            total = CoverageSummary()
            for file in groups[directory]:
                total = total + file.summary()
            add_row(f"{directory}/", total, bold=True)
            for file in groups[directory]:
                add_row(
                    file_label(file, "  " + PurePosixPath(file.path).name),
                    file.summary(),
                    _format_ranges(file.uncovered_lines()),
                )
    else:
        for file in coverage:
            add_row(file_label(file, file.path), file.summary(), _format_ranges(file.uncovered_lines()))

    return table


def render_text(coverage: CoverageMap, summarizer: str = "nested") -> str:
    """Plain-text coverage summary."""
    buffer = io.StringIO()
    console = Console(file=buffer, width=REPORT_WIDTH, color_system=None, force_terminal=False)
    console.print(build_summary_table(coverage, summarizer))
    return buffer.getvalue()


def _recording_console() -> Console:
    return Console(
        record=True,
        file=io.StringIO(),
        width=REPORT_WIDTH,
        theme=BUILDFLOW_THEME,
        force_terminal=True,
        color_system="truecolor",
    )


def render_index_html(coverage: CoverageMap, summarizer: str = "nested") -> str:
    console = _recording_console()
    console.print(build_summary_table(coverage, summarizer, links=True))
    return console.export_html(inline_styles=True)


def render_file_html(file: FileCoverage, root: Path) -> str:
    """Annotated source listing, or a per-statement table when the source is unavailable."""
    console = _recording_console()
    summary = file.summary()
    console.print(Text(file.path, style="bold"))
    console.print(
        f"Statements {summary.statements.pct:.2f}%  Branches {summary.branches.pct:.2f}%  "
        f"Functions {summary.functions.pct:.2f}%  Lines {summary.lines.pct:.2f}%"
    )
    console.print(Text(f"<- {HTML_INDEX}", style=f"link ../{HTML_INDEX}"))

    hits = file.line_hits()
    source = root / file.path
    table = Table(show_header=True, box=None, pad_edge=False)
    table.add_column("Line", justify="right", style="dim")
    table.add_column("Hits", justify="right")

    if source.is_file():
        table.add_column("Source")
        text = source.read_text(encoding="utf-8", errors="replace")
        for number, line in enumerate(text.splitlines(), start=1):
            count = hits.get(number)
            if count is None:
                table.add_row(str(number), "", Text(line))
            else:
                style = "on dark_red" if count == 0 else "on dark_green"
                table.add_row(str(number), f"{count}x", Text(line, style=style))
    else:
        table.add_column("Statement")
        for key, count in sorted(file.statements.items(), key=lambda kv: file.statement_lines.get(kv[0], 0)):
            line = file.statement_lines.get(key)
            table.add_row(str(line) if line else "-", f"{count}x", Text(key, style="red" if count == 0 else "green"))

    console.print(table)
    return console.export_html(inline_styles=True)


def replace_directory(target: Path, build) -> None:
    """Populate a sibling temp directory with ``build(tmp_dir)`` and swap it in for ``target``.

    Either the old or the fully written new directory is in place at any time;
    if ``build`` raises, ``target`` is untouched.
    """
    target = Path(target)
    target.parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=f".{target.name}-", dir=target.parent))
    try:
        build(staging)
    except BaseException:
        shutil.rmtree(staging, ignore_errors=True)
        raise

    backup = None
    if target.exists():
        backup = target.parent / f"{staging.name}.old"
        os.replace(target, backup)
    try:
        os.replace(staging, target)
    except OSError:
        if backup is not None:
            os.replace(backup, target)
        shutil.rmtree(staging, ignore_errors=True)
        raise
    if backup is not None:
        shutil.rmtree(backup, ignore_errors=True)


class CoverageAggregator:
    """Merges ``coverage`` events into one map and writes reports when the run ends.

    Reports replace ``output_dir`` wholesale. A run without any coverage
    payload leaves ``output_dir`` untouched.
    """

    def __init__(
        self,
        output_dir: str | Path,
        root: Path | None = None,
        summarizer: str = "nested",
        reporters: tuple[str, ...] | list[str] = ("text", "json", "html"),
        console: Console | None = None,
    ):
        self.output_dir = Path(output_dir)
        self.root = root or Path.cwd()
        self.summarizer = summarizer
        self.reporters = tuple(reporters)
        self.console = console
        self.coverage = CoverageMap()
        self.payloads = 0
        self.finalized = False
        self._unsubscribe: list = []

    def attach(self, bus: EventBus) -> None:
        self._unsubscribe = [
            bus.subscribe(CoverageReported, self.on_coverage),
            bus.subscribe(RunFinished, self.on_run_end),
        ]

    def detach(self) -> None:
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []

    def on_coverage(self, event: CoverageReported) -> None:
        if self.finalized:
            logger.warning(f"Ignoring coverage from {event.source}: reports already written")
            return
        self.coverage.add_payload(event.payload)
        self.payloads += 1
        logger.debug(f"Merged coverage from {event.source} ({len(self.coverage)} files so far)")

    def on_run_end(self, event: RunFinished) -> None:
        if self.finalized:
            return
        self.finalized = True
        if not self.payloads:
            logger.debug("No coverage collected; leaving report directory untouched")
            return
        self.write_reports()

    def _write(self, directory: Path) -> None:
        if "text" in self.reporters:
            (directory / TEXT_REPORT).write_text(render_text(self.coverage, self.summarizer), encoding="utf-8")
        if "json" in self.reporters:
            save_json_file(self.coverage.to_istanbul(), directory / JSON_REPORT)
        if "html" in self.reporters:
            (directory / HTML_INDEX).write_text(
                render_index_html(self.coverage, self.summarizer), encoding="utf-8"
            )
            files_dir = directory / HTML_FILES_DIR
            files_dir.mkdir()
            for file in self.coverage:
                (files_dir / html_page_name(file.path)).write_text(
                    render_file_html(file, self.root), encoding="utf-8"
                )

    def write_reports(self) -> Path:
        """Write every configured report into ``output_dir`` and echo the summary."""
        replace_directory(self.output_dir, self._write)
        logger.info(f"Coverage reports for {len(self.coverage)} files written to {self.output_dir}")

        if self.console is not None:
            self.console.print(build_summary_table(self.coverage, self.summarizer))
        return self.output_dir
