"""Pytest configuration and fixtures."""
import asyncio
import threading
from pathlib import Path

import pytest

from buildflow.config import parse_build_definition
from buildflow.events import EVENT_TYPES, EventBus
from buildflow.pipeline.structures import ExecutionMode, Outcome
from buildflow.plugins import AsyncHandle, PluginAdapter, register_adapter
from buildflow.registry import build_project

# Identities of every stub task dispatched during a test, in order
DISPATCHED: list[str] = []


@register_adapter("stub")
class StubAdapter(PluginAdapter):
    """Synchronous stand-in for a collaborator.

    ``result``: "ok" (default), "fail", "false" or "handle"; ``raise``: message
    of a RuntimeError to raise instead.
    """

    optional = ("result", "raise", "message", "log")

    def run(self, config, context):
        DISPATCHED.append(str(context.task))
        if "log" in config:
            context.log(config["log"])
        if "raise" in config:
            raise RuntimeError(config["raise"])
        result = config.get("result", "ok")
        if result == "fail":
            return Outcome.failed(config.get("message", "stub failed"))
        if result == "false":
            return False
        if result == "handle":
            handle = AsyncHandle()
            handle.succeed()
            return handle
        return None


@register_adapter("stub-async")
class AsyncStubAdapter(PluginAdapter):
    """Asynchronous stand-in.

    ``delay`` seconds before resolving; ``never`` leaves the handle pending;
    ``from_thread`` resolves from a worker thread; ``coverage`` is published
    before resolving.
    """

    mode = ExecutionMode.ASYNC
    optional = ("result", "delay", "never", "from_thread", "coverage", "raise")

    def run(self, config, context):
        DISPATCHED.append(str(context.task))
        delay = config.get("delay", 0)

        if config.get("never"):
            return AsyncHandle()

        if config.get("from_thread"):
            handle = AsyncHandle()
            timer = threading.Timer(delay, handle.succeed, kwargs={"detail": "thread"})
            timer.daemon = True
            timer.start()
            return handle

        async def work():
            await asyncio.sleep(delay)
            if "coverage" in config:
                context.publish_coverage(config["coverage"])
            if "raise" in config:
                raise ValueError(config["raise"])
            if config.get("result") == "fail":
                return Outcome.failed("async stub failed")
            return Outcome.succeeded(detail="coroutine")

        return AsyncHandle.from_coroutine(work())


class EventRecorder:
    """Records every bus event as ``(name, event)`` in delivery order."""

    def __init__(self, bus: EventBus):
        self.events = []
        for name in EVENT_TYPES:
            bus.subscribe(name, lambda event: self.events.append((event.name, event)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def of(self, name: str) -> list:
        return [event for n, event in self.events if n == name]


@pytest.fixture(autouse=True)
def clear_dispatched():
    DISPATCHED.clear()
    yield
    DISPATCHED.clear()


@pytest.fixture
def dispatched() -> list[str]:
    return DISPATCHED


@pytest.fixture
def bus():
    bus = EventBus()
    yield bus
    bus.close()


@pytest.fixture
def recorder(bus):
    return EventRecorder(bus)


@pytest.fixture
def make_project(tmp_path: Path):
    """Build a Project from a build-file dict, rooted at ``tmp_path``."""

    def factory(data: dict, root: Path | None = None):
        root = root or tmp_path
        return build_project(parse_build_definition(data, base_dir=root), root=root)

    return factory


@pytest.fixture
def stub_build() -> dict:
    """Build file with three stub tasks and a few aliases."""
    return {
        "tasks": {
            "clean": {"adapter": "stub", "targets": {"dist": {}}},
            "copy": {"adapter": "stub", "targets": {"build": {}, "dist": {}}},
            "bundle": {"adapter": "stub", "config": {}},
        },
        "aliases": {
            "build": ["clean:dist", "copy:build", "bundle"],
            "cleanup": {"tasks": ["clean:dist", "copy"], "best_effort": True},
        },
    }
