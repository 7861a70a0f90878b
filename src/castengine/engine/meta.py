# src/castengine/engine/meta.py
"""Meta-task executor: dispatch of one task's action to the cluster client.

Dispatch is table driven. Each handler is registered once for the
(action, apiVersion, kind) triples it serves:

    @dispatches(TaskAction.GET, ("v1",), "PersistentVolumeClaim")
    def _get_pvc(request: DispatchRequest) -> bytes:
        return request.client.get_pvc(request.object_name())

Retries apply to get and list actions only, and only on verify errors.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog

from castengine.contracts.enums import TaskAction
from castengine.contracts.errors import DispatchError, TemplateError, is_verify_error
from castengine.contracts.task import Meta, TaskPatch, load_yaml_mapping
from castengine.core.cancel import CancelToken
from castengine.engine.patch import PatchRequest, from_task_patch
from castengine.engine.retry import RetryConfig, RetryManager
from castengine.plugins.clients.kube import ClusterClient, ClusterClientFactory

T = TypeVar("T")

DEFAULT_NAMESPACE = "default"

DEPLOYMENT_API_VERSIONS = ("apps/v1beta1", "extensions/v1beta1")
STORAGE_POOL_API_VERSIONS = ("openebs.io/v1alpha1",)
CORE_V1 = ("v1",)

RETRYABLE_ACTIONS = frozenset({TaskAction.GET, TaskAction.LIST})


@dataclass(frozen=True)
class DispatchKey:
    action: TaskAction
    api_version: str
    kind: str

    def __str__(self) -> str:
        return f"{self.action.value},{self.api_version},{self.kind}"


@dataclass(frozen=True)
class DispatchRequest:
    """Inputs of one dispatch: the meta, a namespaced client, and the rendered body."""

    meta: Meta
    client: ClusterClient
    body: str = ""

    def object_name(self) -> str:
        """The single target name.

        Raises:
            DispatchError: If objectName is empty
        """
        name = self.meta.object_name.strip()
        if not name:
            raise DispatchError(f"missing objectName for {self.meta.action.value} {self.meta.kind}")
        return name

    def object_names(self) -> list[str]:
        """Comma separated target names.

        Raises:
            DispatchError: If objectName names nothing
        """
        names = self.meta.object_names()
        if not names:
            raise DispatchError(f"missing objectName for {self.meta.action.value} {self.meta.kind}")
        return names

    def document(self, what: str) -> dict[str, Any]:
        doc = load_yaml_mapping(self.body, what)
        if not doc:
            raise TemplateError(f"empty {what} document")
        return doc

    def patch(self) -> PatchRequest:
        """Patch from meta, else from the rendered body (``type``/``pspec``).

        Raises:
            DispatchError: If neither declares a patch
        """
        if self.meta.patch is not None:
            return from_task_patch(self.meta.patch)
        doc = load_yaml_mapping(self.body, "patch")
        if not doc:
            raise DispatchError(f"missing patch for {self.meta.kind} '{self.meta.object_name}'")
        return from_task_patch(TaskPatch.from_dict(doc))


Handler = Callable[[DispatchRequest], "bytes | None"]

_DISPATCH: dict[DispatchKey, Handler] = {}


def dispatches(action: TaskAction, api_versions: Iterable[str], kind: str) -> Callable[[Handler], Handler]:
    """Register a handler for ``action`` on ``kind`` under each api version."""

    def decorator(fn: Handler) -> Handler:
        for api_version in api_versions:
            _DISPATCH[DispatchKey(action, api_version, kind)] = fn
        return fn

    return decorator


def supported_dispatches() -> list[DispatchKey]:
    return sorted(_DISPATCH, key=str)


def handler_for(key: DispatchKey) -> Handler:
    """Raises:
    DispatchError: If no handler serves ``key``
    """
    try:
        return _DISPATCH[key]
    except KeyError:
        raise DispatchError(f"unsupported dispatch '{key}'") from None


# =============================================================================
# Handlers
# =============================================================================


@dispatches(TaskAction.PUT, DEPLOYMENT_API_VERSIONS, "Deployment")
def _put_deployment(request: DispatchRequest) -> bytes:
    return request.client.create_deployment(request.meta.api_version, request.document("deployment"))


@dispatches(TaskAction.PUT, CORE_V1, "Service")
def _put_service(request: DispatchRequest) -> bytes:
    return request.client.create_service(request.document("service"))


@dispatches(TaskAction.PATCH, DEPLOYMENT_API_VERSIONS, "Deployment")
def _patch_deployment(request: DispatchRequest) -> bytes:
    name = request.object_name()
    patch = request.patch()
    return request.client.patch_deployment(request.meta.api_version, name, patch.patch_type, patch.body)


@dispatches(TaskAction.PATCH, CORE_V1, "Service")
def _patch_service(request: DispatchRequest) -> bytes:
    name = request.object_name()
    patch = request.patch()
    return request.client.patch_service(name, patch.patch_type, patch.body)


@dispatches(TaskAction.DELETE, DEPLOYMENT_API_VERSIONS, "Deployment")
def _delete_deployments(request: DispatchRequest) -> None:
    for name in request.object_names():
        request.client.delete_deployment(request.meta.api_version, name)


@dispatches(TaskAction.DELETE, CORE_V1, "Service")
def _delete_services(request: DispatchRequest) -> None:
    for name in request.object_names():
        request.client.delete_service(name)


@dispatches(TaskAction.LIST, CORE_V1, "Pod")
def _list_pods(request: DispatchRequest) -> bytes:
    return request.client.list_pods(request.meta.options)


@dispatches(TaskAction.LIST, CORE_V1, "Service")
def _list_services(request: DispatchRequest) -> bytes:
    return request.client.list_services(request.meta.options)


@dispatches(TaskAction.LIST, CORE_V1, "PersistentVolumeClaim")
def _list_pvcs(request: DispatchRequest) -> bytes:
    return request.client.list_pvcs(request.meta.options)


@dispatches(TaskAction.LIST, DEPLOYMENT_API_VERSIONS, "Deployment")
def _list_deployments(request: DispatchRequest) -> bytes:
    return request.client.list_deployments(request.meta.api_version, request.meta.options)


@dispatches(TaskAction.GET, DEPLOYMENT_API_VERSIONS, "Deployment")
def _get_deployment(request: DispatchRequest) -> bytes:
    return request.client.get_deployment(request.meta.api_version, request.object_name())


@dispatches(TaskAction.GET, STORAGE_POOL_API_VERSIONS, "StoragePool")
def _get_storage_pool(request: DispatchRequest) -> bytes:
    return request.client.get_storage_pool(request.object_name())


@dispatches(TaskAction.GET, CORE_V1, "PersistentVolumeClaim")
def _get_pvc(request: DispatchRequest) -> bytes:
    return request.client.get_pvc(request.object_name())


# =============================================================================
# Executor
# =============================================================================


class MetaTaskExecutor:
    """Runs the dispatch declared by one parsed meta.

    Example:
        executor = MetaTaskExecutor(meta, client_factory)
        raw = executor.retry(lambda: executor.dispatch(body))
    """

    def __init__(
        self,
        meta: Meta,
        client_factory: ClusterClientFactory,
        *,
        cancel: CancelToken | None = None,
        default_namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        self.meta = meta
        self.key = DispatchKey(meta.action, meta.api_version.strip(), meta.kind.strip())
        self._client_factory = client_factory
        self._cancel = cancel or CancelToken()
        self._default_namespace = default_namespace
        self._handler = handler_for(self.key)

    @property
    def identity(self) -> str:
        return self.meta.identity

    @property
    def action(self) -> TaskAction:
        return self.meta.action

    def namespaces(self) -> list[str]:
        return self.meta.namespaces() or [self._default_namespace]

    @property
    def namespace(self) -> str:
        return self.namespaces()[0]

    def is_list(self) -> bool:
        return self.meta.action == TaskAction.LIST

    def is_put(self) -> bool:
        return self.meta.action == TaskAction.PUT

    def _dispatch_in(self, namespace: str, body: str) -> bytes | None:
        self._cancel.raise_if_cancelled()
        structlog.get_logger(__name__).debug(
            "Dispatching task",
            id=self.meta.identity,
            dispatch=str(self.key),
            namespace=namespace,
            object_name=self.meta.object_name,
        )
        return self._handler(DispatchRequest(self.meta, self._client_factory(namespace), body))

    def dispatch(self, body: str = "") -> bytes | None:
        """Dispatch in the task's (first) namespace."""
        return self._dispatch_in(self.namespace, body)

    def list(self) -> dict[str, bytes | None]:
        """Run a list dispatch in every namespace of ``runNamespace``, in order."""
        return {namespace: self._dispatch_in(namespace, "") for namespace in self.namespaces()}

    def retry(self, operation: Callable[[], T]) -> T:
        """Run ``operation`` under the meta's retry budget.

        Only get and list actions retry, and only on verify errors; other
        actions run ``operation`` exactly once.
        """
        if self.meta.action not in RETRYABLE_ACTIONS:
            return operation()
        manager = RetryManager(RetryConfig.parse(self.meta.retry), self._cancel)
        logger = structlog.get_logger(__name__)

        def on_retry(attempt: int, err: BaseException) -> None:
            logger.info("Verify failed, retrying task", id=self.meta.identity, attempt=attempt, error=str(err))

        return manager.execute_with_retry(operation, is_retryable=is_verify_error, on_retry=on_retry)
