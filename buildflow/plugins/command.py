"""External command adapter.

Wraps command-line collaborators (bundler, minifier, style compiler,
post-processor, linter) behind the adapter contract. Subprocesses run through
asyncio memory pipes; no temp files are used for IPC.
"""

import asyncio
import shlex
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from buildflow.errors import ConfigError
from buildflow.pipeline.structures import ExecutionMode, Outcome, TaskId
from buildflow.utils.logging import get_subprocess_env, logger

from . import register_adapter
from .base import AsyncHandle, PluginAdapter, TaskContext
from .files import FileMapping, expand_files, validate_files

# Lines of tool stdout echoed per invocation
MAX_ECHO_LINES = 5


async def run_command_async(
    cmd: list[str],
    cwd: str | Path,
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
) -> dict:
    """Execute a subprocess using asyncio memory pipes.

    On timeout the process is killed (the collaborator cleans up after itself).

    Returns:
        Dict with success, returncode, stdout, stderr, elapsed
    """
    start_time = time.time()
    full_env = get_subprocess_env()
    full_env.update(env or {})

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd),
            env=full_env,
        )
    except OSError as e:
        return {
            "success": False,
            "returncode": -1,
            "stdout": "",
            "stderr": f"Subprocess error: {e}",
            "elapsed": time.time() - start_time,
        }

    try:
        stdout_data, stderr_data = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        logger.warning(f"Command timed out after {timeout}s: {cmd[0]}")
        process.kill()
        await process.wait()
        return {
            "success": False,
            "returncode": -1,
            "stdout": "",
            "stderr": f"Command timed out after {timeout}s",
            "elapsed": time.time() - start_time,
        }

    return {
        "success": process.returncode == 0,
        "returncode": process.returncode,
        "stdout": stdout_data.decode("utf-8", errors="replace"),
        "stderr": stderr_data.decode("utf-8", errors="replace"),
        "elapsed": time.time() - start_time,
    }


class _Placeholders(dict):
    """format_map source that reports the missing placeholder name."""

    def __missing__(self, key):
        raise ConfigError(f"Unknown placeholder '{{{key}}}' in command")


def build_command(
    template: list[str],
    mapping: FileMapping | None,
    options: Mapping[str, Any],
) -> list[str]:
    """Render a command template for one file mapping.

    ``{src}`` is the first source, ``{dest}`` the destination, ``{name}`` any
    scalar option. An argument that is exactly ``{srcs}`` expands to every source.
    """
    values = _Placeholders({k: v for k, v in options.items() if isinstance(v, (str, int, float, bool))})
    srcs = [str(p) for p in mapping.src] if mapping else []
    values["src"] = srcs[0] if srcs else ""
    values["dest"] = str(mapping.dest) if mapping and mapping.dest else ""

    cmd: list[str] = []
    for arg in template:
        if arg == "{srcs}":
            cmd.extend(srcs)
        else:
            cmd.append(arg.format_map(values))
    return cmd


@register_adapter("command")
class CommandAdapter(PluginAdapter):
    """Run an external tool once, or once per file mapping.

    Config keys:
        command: argv list or shell-style string (required)
        files / src / dest: file mappings the command runs over
        cwd: working directory relative to the project root
        env: extra environment variables
        success_codes: exit codes treated as success (default [0])
    """

    mode = ExecutionMode.ASYNC
    required = ("command",)
    optional = ("files", "src", "dest", "cwd", "env", "success_codes")

    def check(self, task_id: TaskId, config: Mapping[str, Any]) -> None:
        command = config["command"]
        if not command or not isinstance(command, (str, list, tuple)):
            raise ConfigError(f"Task '{task_id}' (command): 'command' must be a string or a list")
        codes = config.get("success_codes", (0,))
        if not all(isinstance(c, int) for c in codes):
            raise ConfigError(f"Task '{task_id}' (command): 'success_codes' must be integers")
        try:
            validate_files(config)
        except ConfigError as e:
            raise ConfigError(f"Task '{task_id}' (command): {e}") from None

    def run(self, config: Mapping[str, Any], context: TaskContext) -> AsyncHandle:
        return AsyncHandle.from_coroutine(self._run(config, context))

    async def _run(self, config: Mapping[str, Any], context: TaskContext) -> Outcome:
        command = config["command"]
        template = shlex.split(command) if isinstance(command, str) else [str(a) for a in command]
        options = config.get("options") or {}
        success_codes = set(config.get("success_codes", (0,)))
        cwd = context.resolve_path(config.get("cwd", "."))
        env = {str(k): str(v) for k, v in (config.get("env") or {}).items()}

        mappings: list[FileMapping | None] = list(expand_files(config, context.root))
        if not mappings:
            mappings = [None]

        outputs: list[str] = []
        for mapping in mappings:
            if mapping is not None and not mapping.src:
                context.log(f"No sources matched for {mapping.dest}", is_error=True)
                continue
            if mapping is not None and mapping.dest is not None and not mapping.dest_is_dir:
                mapping.dest.parent.mkdir(parents=True, exist_ok=True)

            cmd = build_command(template, mapping, options)
            logger.debug(f"[{context.task}] Running: {shlex.join(cmd)}")
            result = await run_command_async(cmd, cwd=cwd, timeout=context.timeout, env=env)

            if result["returncode"] not in success_codes:
                diagnostics = result["stderr"].strip() or result["stdout"].strip()
                return Outcome.failed(
                    f"{cmd[0]} exited with {result['returncode']}"
                    + (f"\n{diagnostics}" if diagnostics else ""),
                    detail={"returncode": result["returncode"], "stdout": result["stdout"]},
                )

            if result["stdout"]:
                lines = result["stdout"].strip().split("\n")
                shown = lines[:MAX_ECHO_LINES]
                if len(lines) > MAX_ECHO_LINES:
                    shown.append(f"... ({len(lines) - MAX_ECHO_LINES} more lines)")
                for line in shown:
                    context.log(f"  {line}")
            outputs.append(result["stdout"])

        return Outcome.succeeded(detail={"invocations": len(outputs)})
