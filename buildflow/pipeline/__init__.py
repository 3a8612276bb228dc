"""Plan execution data contracts and console presentation.

Renderer and UI helpers import the event bus, so they are imported from their
modules directly (``buildflow.pipeline.ui``, ``buildflow.pipeline.renderer``).
"""
from .structures import ExecutionMode, ExecutionPlan, Outcome, RunReport, TaskId, TaskResult, TaskState

__all__ = [
    "ExecutionMode", "ExecutionPlan", "Outcome", "RunReport", "TaskId", "TaskResult", "TaskState",
]
