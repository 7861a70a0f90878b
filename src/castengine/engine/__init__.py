"""Orchestration engine: CasEngine, TaskGroupRunner, TaskExecutor, MetaTaskExecutor."""

from castengine.engine.engine import CasEngine
from castengine.engine.executors import TaskExecutor, TaskOutcome, TaskRuntime
from castengine.engine.meta import DispatchKey, MetaTaskExecutor, supported_dispatches
from castengine.engine.retry import RetryConfig, RetryManager
from castengine.engine.runner import TaskGroupRunner, task_identity
from castengine.engine.templates import TaskTemplate, TemplateRenderer

__all__ = [
    "CasEngine",
    "DispatchKey",
    "MetaTaskExecutor",
    "RetryConfig",
    "RetryManager",
    "TaskExecutor",
    "TaskGroupRunner",
    "TaskOutcome",
    "TaskRuntime",
    "TaskTemplate",
    "TemplateRenderer",
    "supported_dispatches",
    "task_identity",
]
