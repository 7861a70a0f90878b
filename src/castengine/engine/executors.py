# src/castengine/engine/executors.py
"""Task executor: the lifecycle of one run-task.

For each task the executor:
1. Renders the meta template and parses it
2. Dispatches the action (rendering the body for put and patch)
3. Projects the raw result into ``TaskResult.<id>`` through the queries
4. Renders the post template with ``JsonResult`` and ``RuntimeObject`` installed
5. Raises any error marker the templates saved under ``TaskResult.<id>``
6. Plans rollback entries for put actions

Steps 2-5 repeat under the meta's retry budget for get and list actions.
``JsonResult`` is redacted and ``RuntimeObject`` dropped on the way out, whether
the task succeeded or not.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field

import structlog

from castengine.commands.command import CommandRuntime
from castengine.contracts.enums import TaskAction, TaskResultKey, TopLevelKey
from castengine.contracts.errors import CasEngineError, TaskError, TemplateError
from castengine.contracts.task import Meta, RunTask
from castengine.core.cancel import CancelToken
from castengine.core.jsonpath import NO_VALUE, load_document
from castengine.core.values import ValueContext
from castengine.engine.meta import DEFAULT_NAMESPACE, MetaTaskExecutor
from castengine.engine.post import PostExecutor
from castengine.engine.query import query_result
from castengine.engine.templates import TemplateRenderer
from castengine.plugins.clients.kube import ClusterClientFactory

# Raised in this order when several are present
ERROR_MARKERS = (
    TaskResultKey.VERSION_MISMATCH_ERR.value,
    TaskResultKey.VERIFY_ERR.value,
    TaskResultKey.NOT_FOUND_ERR.value,
)

RENDERED_BODY_ACTIONS = frozenset({TaskAction.PUT, TaskAction.PATCH})


@dataclass
class TaskRuntime:
    """Collaborators shared by every task of one run.

    Attributes:
        client_factory: Builds a cluster client scoped to a namespace
        renderer: Template renderer holding the run's function set
        cancel: Cancellation token of the run
        default_namespace: Namespace used when a meta names none
    """

    client_factory: ClusterClientFactory
    renderer: TemplateRenderer = field(default_factory=TemplateRenderer)
    cancel: CancelToken = field(default_factory=CancelToken)
    default_namespace: str = DEFAULT_NAMESPACE

    @classmethod
    def create(
        cls,
        client_factory: ClusterClientFactory,
        *,
        command_runtime: CommandRuntime | None = None,
        cancel: CancelToken | None = None,
        default_namespace: str = DEFAULT_NAMESPACE,
    ) -> TaskRuntime:
        """Runtime whose template commands share the run's cancel token."""
        cancel = cancel or (command_runtime.cancel if command_runtime else CancelToken())
        command_runtime = command_runtime or CommandRuntime(cancel=cancel)
        return cls(
            client_factory=client_factory,
            renderer=TemplateRenderer(command_runtime),
            cancel=cancel,
            default_namespace=default_namespace,
        )

    def meta_executor(self, meta: Meta) -> MetaTaskExecutor:
        return MetaTaskExecutor(
            meta,
            self.client_factory,
            cancel=self.cancel,
            default_namespace=self.default_namespace,
        )


@dataclass(frozen=True)
class TaskOutcome:
    """What a successful task leaves for the group runner."""

    identity: str
    rollbacks: tuple[Meta, ...] = ()
    skipped: bool = False


class TaskExecutor:
    """Executes one run-task against the run's value context.

    Example:
        executor = TaskExecutor(task, "mypod", values, runtime)
        outcome = executor.execute()
        values.get("TaskResult.mypod.objectName")
    """

    def __init__(
        self,
        task: RunTask,
        identity: str,
        values: ValueContext,
        runtime: TaskRuntime,
        *,
        claimed: set[str] | None = None,
    ) -> None:
        self.task = task
        self.identity = identity
        self.values = values
        self.runtime = runtime
        # lower-cased rendered identities of the run so far
        self._claimed = claimed

    # -- rendering -------------------------------------------------------------

    def _render(self, section: str, source: str) -> str:
        return self.runtime.renderer.render(f"{self.task.name} {section}", source, self.values)

    def render_meta(self) -> Meta:
        """Render and parse the meta; a meta without identity takes the task's.

        Raises:
            TemplateError: If the meta is empty, fails to render, or is invalid
        """
        if not self.task.meta.strip():
            raise TemplateError(f"missing meta for task '{self.task.name}'")
        meta = Meta.from_yaml(self._render("meta", self.task.meta))
        if not meta.identity.strip():
            meta = meta.model_copy(update={"identity": self.identity})
        return meta

    def output(self) -> bytes:
        """Render the body against the current values, without dispatch.

        Raises:
            TaskError: If rendering fails
        """
        try:
            return self._render("task", self.task.task).encode("utf-8")
        except CasEngineError as e:
            raise self._wrap(e, None) from e

    # -- execution -------------------------------------------------------------

    def execute(self) -> TaskOutcome:
        """Run the task.

        Raises:
            TaskError: Wrapping the first error of the task
        """
        logger = structlog.get_logger(__name__)
        meta: Meta | None = None
        try:
            meta = self.render_meta()
            self._claim(meta.identity)
            if meta.disable:
                logger.info("Task disabled, skipping", task=self.task.name, id=meta.identity)
                return TaskOutcome(identity=meta.identity, skipped=True)
            executor = self.runtime.meta_executor(meta)
            logger.debug(
                "Executing task",
                task=self.task.name,
                id=meta.identity,
                action=meta.action.value,
                kind=meta.kind,
                namespace=executor.namespace,
            )
            executor.retry(lambda: self._attempt(executor))
            return TaskOutcome(identity=meta.identity, rollbacks=tuple(self._rollbacks(meta)))
        except CasEngineError as e:
            raise self._wrap(e, meta) from e
        finally:
            self.values.redact_raw()

    def _claim(self, identity: str) -> None:
        if self._claimed is None:
            return
        key = identity.lower()
        if key in self._claimed:
            raise TemplateError(f"duplicate task identity '{identity}' in task '{self.task.name}'")
        self._claimed.add(key)

    def _attempt(self, executor: MetaTaskExecutor) -> None:
        identity = executor.identity
        self._clear_markers(identity)
        if executor.is_list():
            self._project_list(executor, executor.list())
        else:
            body = self._render("task", self.task.task) if executor.action in RENDERED_BODY_ACTIONS else ""
            self._project(executor, executor.dispatch(body))
        if self.task.post.strip():
            rendered = self._render("post", self.task.post)
            PostExecutor(identity, executor.meta.kind, executor.action, self.values).execute(rendered)
        self._raise_markers(identity)

    def _install_raw(self, raw: bytes | None, document: object) -> None:
        self.values.set(TopLevelKey.JSON_RESULT.value, raw)
        self.values.set(TopLevelKey.RUNTIME_OBJECT.value, document)

    def _project(self, executor: MetaTaskExecutor, raw: bytes | None) -> None:
        if raw is None:
            self._install_raw(None, None)
            return
        results = query_result(raw, list(executor.meta.queries))
        self.values.task_result(executor.identity).update(results)
        self._install_raw(raw, load_document(raw))

    def _project_list(self, executor: MetaTaskExecutor, raws: dict[str, bytes | None]) -> None:
        queries = list(executor.meta.queries)
        result = self.values.task_result(executor.identity)
        list_items = self.values.setdefault_map(TopLevelKey.LIST_ITEMS.value)
        if len(raws) == 1:
            (raw,) = raws.values()
            result.update(query_result(raw, queries, with_object_name=False))
            document = load_document(raw)
            list_items[executor.identity] = document
            self._install_raw(raw, document)
            return
        documents = {}
        for namespace, raw in raws.items():
            result[namespace] = query_result(raw, queries, with_object_name=False)
            documents[namespace] = load_document(raw)
        list_items[executor.identity] = documents
        self._install_raw(json.dumps(documents).encode("utf-8"), documents)

    # -- error markers -----------------------------------------------------------

    def _clear_markers(self, identity: str) -> None:
        result = self.values.task_result(identity)
        for marker in ERROR_MARKERS:
            result.pop(marker, None)

    def _raise_markers(self, identity: str) -> None:
        result = self.values.task_result(identity)
        for marker in ERROR_MARKERS:
            err = result.get(marker)
            if isinstance(err, CasEngineError):
                raise err

    # -- rollback ------------------------------------------------------------------

    def _rollbacks(self, meta: Meta) -> list[Meta]:
        """One delete entry per object name a put produced."""
        if meta.action != TaskAction.PUT:
            return []
        names = self.values.task_result(meta.identity).get(TaskResultKey.OBJECT_NAME.value) or ""
        rollbacks = []
        for name in str(names).split(","):
            name = name.strip()
            if not name or name == NO_VALUE:
                continue
            rollback = meta.as_rollback(name)
            if rollback is not None:
                rollbacks.append(rollback)
        return rollbacks

    def _wrap(self, err: CasEngineError, meta: Meta | None) -> TaskError:
        if isinstance(err, TaskError):
            return err
        return TaskError(
            self.task.name,
            err,
            identity=meta.identity if meta else self.identity,
            action=meta.action.value if meta else "",
            resource_kind=meta.kind if meta else "",
            api_version=meta.api_version if meta else "",
            object_name=meta.object_name if meta else "",
            namespace=meta.run_namespace if meta else "",
            snapshot=self.values.snapshot(),
        )
