# src/castengine/engine/runner.py
"""Task group runner: sequencing, rollback, fallback, and output.

Tasks run one by one in declaration order and the first failure stops the
run. Every successful put leaves rollback entries behind; on failure they
are dispatched in reverse order, each failure logged and skipped. A
version-mismatch failure hands the run's values to the fallback, when one
is configured, and the fallback's output becomes the run's output.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

import structlog

from castengine.contracts.errors import (
    CasEngineError,
    RollbackError,
    TaskError,
    TemplateError,
    is_version_mismatch,
)
from castengine.contracts.task import Meta, RunTask
from castengine.core.cancel import CancelToken
from castengine.core.values import ValueContext
from castengine.engine.executors import TaskExecutor, TaskRuntime
from castengine.engine.meta import MetaTaskExecutor

# identity declared in a raw (unrendered) meta
_IDENTITY_LINE = re.compile(r"^\s*(?:identity|id)\s*:\s*[\"']?([^\"'\s#]+)", re.MULTILINE)

Fallback = Callable[[ValueContext], bytes]


def task_identity(task: RunTask) -> str:
    """Identity declared in the task's raw meta, else the task's name.

    Templated identities cannot be known before rendering and also fall
    back to the name; the run checks them again once rendered.
    """
    match = _IDENTITY_LINE.search(task.meta)
    if match and "{" not in match.group(1):
        return match.group(1)
    return task.name


@dataclass(frozen=True)
class PlannedTask:
    task: RunTask
    identity: str


class TaskGroupRunner:
    """Runs the tasks of one composite template.

    Example:
        runner = TaskGroupRunner(runtime)
        for task in tasks:
            runner.add_task(task)
        runner.set_output_task(output)
        output = runner.run(values)
    """

    def __init__(self, runtime: TaskRuntime) -> None:
        self.runtime = runtime
        self.tasks: list[PlannedTask] = []
        self.output_task: RunTask | None = None
        self.rollback_plan: list[Meta] = []
        self.rollback_errors: list[RollbackError] = []
        self._identities: set[str] = set()

    def add_task(self, task: RunTask) -> PlannedTask:
        """Queue ``task``; identities must be unique ignoring case.

        Raises:
            TemplateError: If the meta is missing or the identity is taken
        """
        if not task.meta.strip():
            raise TemplateError(f"failed to add run task '{task.name}': missing meta")
        identity = task_identity(task)
        key = identity.lower()
        if key in self._identities:
            raise TemplateError(
                f"failed to add run task '{task.name}': duplicate task identity '{identity}'"
            )
        self._identities.add(key)
        planned = PlannedTask(task=task, identity=identity)
        self.tasks.append(planned)
        return planned

    def set_output_task(self, task: RunTask) -> None:
        self.output_task = task

    def run(self, values: ValueContext, *, fallback: Fallback | None = None) -> bytes:
        """Execute every task, then render the output task.

        Rendered identities must be unique ignoring case; a clash fails the
        task like any other error.

        Raises:
            TaskError: The first task failure, after rollback (unless the
                fallback took over)
        """
        logger = structlog.get_logger(__name__)
        claimed: set[str] = set()
        for planned in self.tasks:
            try:
                outcome = TaskExecutor(
                    planned.task, planned.identity, values, self.runtime, claimed=claimed
                ).execute()
            except TaskError as e:
                logger.error("Task failed", **e.details())
                self.rollback()
                if fallback is not None and is_version_mismatch(e):
                    logger.info("Version mismatch, running fallback", task=planned.task.name)
                    return fallback(values)
                raise
            self.rollback_plan.extend(outcome.rollbacks)
        if self.output_task is None:
            return b""
        return TaskExecutor(
            self.output_task, task_identity(self.output_task), values, self.runtime
        ).output()

    def rollback(self) -> None:
        """Dispatch the rollback plan in reverse; failures are logged, not raised."""
        logger = structlog.get_logger(__name__)
        while self.rollback_plan:
            meta = self.rollback_plan.pop()
            # rollback still runs when the run itself was cancelled
            executor = MetaTaskExecutor(
                meta,
                self.runtime.client_factory,
                cancel=CancelToken(),
                default_namespace=self.runtime.default_namespace,
            )
            try:
                executor.dispatch()
            except CasEngineError as e:
                err = RollbackError(
                    f"failed to rollback {meta.kind} '{meta.object_name}' of task '{meta.identity}': {e}"
                )
                err.__cause__ = e
                self.rollback_errors.append(err)
                logger.warning(
                    "Rollback failed",
                    id=meta.identity,
                    kind=meta.kind,
                    object_name=meta.object_name,
                    namespace=executor.namespace,
                    error=str(e),
                )
            else:
                logger.info("Rolled back", id=meta.identity, kind=meta.kind, object_name=meta.object_name)
