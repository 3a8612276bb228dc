"""Test harness adapter: runs browser tests and forwards their coverage."""

import json
import shlex
from collections.abc import Mapping
from typing import Any

from buildflow.errors import ConfigError
from buildflow.pipeline.structures import ExecutionMode, Outcome, TaskId

from . import register_adapter
from .base import AsyncHandle, PluginAdapter, TaskContext
from .command import build_command, run_command_async


@register_adapter("test-harness")
class TestHarnessAdapter(PluginAdapter):
    """Run ``command`` once per entry of ``urls``.

    ``{url}`` in the command is replaced by the page under test. When the
    harness writes instrumentation counters to ``coverage_file`` they are
    published as a ``coverage`` event after each page. ``options.console``
    echoes harness output.
    """

    __test__ = False  # not a pytest test class

    mode = ExecutionMode.ASYNC
    required = ("command", "urls")
    optional = ("coverage_file", "cwd", "env")

    def check(self, task_id: TaskId, config: Mapping[str, Any]) -> None:
        urls = config["urls"]
        if not urls or not all(isinstance(u, str) for u in urls):
            raise ConfigError(f"Task '{task_id}' (test-harness): 'urls' must be a non-empty list")
        if not isinstance(config["command"], (str, list, tuple)):
            raise ConfigError(f"Task '{task_id}' (test-harness): 'command' must be a string or a list")

    def run(self, config: Mapping[str, Any], context: TaskContext) -> AsyncHandle:
        return AsyncHandle.from_coroutine(self._run(config, context))

    def _collect_coverage(self, config: Mapping[str, Any], context: TaskContext) -> bool:
        if "coverage_file" not in config:
            return False
        path = context.resolve_path(config["coverage_file"])
        if not path.exists():
            return False

        try:
            with open(path, encoding="utf-8") as f:
                payload = json.load(f)
        finally:
            path.unlink()

        if not isinstance(payload, dict):
            raise ValueError(f"Coverage file {path} must contain a JSON object")
        context.publish_coverage(payload)
        return True

    async def _run(self, config: Mapping[str, Any], context: TaskContext) -> Outcome:
        command = config["command"]
        template = shlex.split(command) if isinstance(command, str) else [str(a) for a in command]
        options = dict(config.get("options") or {})
        echo = options.get("console", True)
        cwd = context.resolve_path(config.get("cwd", "."))
        env = {str(k): str(v) for k, v in (config.get("env") or {}).items()}

        failures: list[str] = []
        coverage_events = 0
        for url in config["urls"]:
            cmd = build_command(template, None, {**options, "url": url})
            result = await run_command_async(cmd, cwd=cwd, timeout=context.timeout, env=env)

            if echo and result["stdout"]:
                for line in result["stdout"].rstrip().split("\n"):
                    context.log(line)

            if self._collect_coverage(config, context):
                coverage_events += 1

            if not result["success"]:
                output = (result["stdout"] + result["stderr"]).strip()
                failures.append(f"{url} (exit {result['returncode']})" + (f"\n{output}" if output else ""))

        if failures:
            return Outcome.failed("Test failures:\n" + "\n".join(failures))
        return Outcome.succeeded(detail={"pages": len(config["urls"]), "coverage_events": coverage_events})
