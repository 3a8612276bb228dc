"""Small helpers shared by the coverage reports and the run summary."""

import json
from pathlib import Path
from typing import Any


def save_json_file(data: Any, file_path: str | Path) -> None:
    """Save data as sorted, indented JSON."""
    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, sort_keys=True)


def format_duration(seconds: float) -> str:
    """Format elapsed seconds the way the run summary prints them."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(seconds, 60)
    return f"{int(minutes)}m {secs:.1f}s"
