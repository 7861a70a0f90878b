# src/castengine/contracts/errors.py
"""Error hierarchy for the orchestration engine.

Every error carries an ErrorKind tag set where it is raised. Code that
needs to react to a particular failure (retry on verify, fallback on
version mismatch) inspects the tag through the helpers at the bottom of
this module rather than the message text.
"""

from __future__ import annotations

from typing import Any

from castengine.contracts.enums import ErrorKind


class CasEngineError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind = ErrorKind.TASK


class TemplateError(CasEngineError):
    """Template syntax, rendering, or YAML unmarshal failure."""

    kind = ErrorKind.PARSE


class DispatchError(CasEngineError):
    """No handler for a (action, apiVersion, kind) triple, or invalid dispatch input."""

    kind = ErrorKind.DISPATCH


class ClusterClientError(CasEngineError):
    """Failure reported by the cluster client (transport, conflict, permission)."""

    kind = ErrorKind.CLUSTER

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ResourceNotFoundError(ClusterClientError):
    """The cluster reported that the addressed resource does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=404)


class NotFoundError(CasEngineError):
    """A value a template expected to find was empty."""

    kind = ErrorKind.NOT_FOUND


class VerifyError(CasEngineError):
    """A query's count/split check or a template verification failed.

    This is the only error that makes get and list dispatches retry.
    """

    kind = ErrorKind.VERIFY


class VersionMismatchError(CasEngineError):
    """Declared versions differ from the versions observed in the cluster."""

    kind = ErrorKind.VERSION_MISMATCH


class RollbackError(CasEngineError):
    """A reverse task failed while undoing a run. Logged, never fatal."""

    kind = ErrorKind.ROLLBACK


class RunCommandError(CasEngineError):
    """A run command failed or was rejected before running."""

    kind = ErrorKind.COMMAND


class CancelledError(CasEngineError):
    """The run was cancelled through its cancel token."""

    kind = ErrorKind.CANCELLED


class TaskSpecNotFoundError(CasEngineError):
    """No fetch strategy could produce the named run-task or template."""

    kind = ErrorKind.NOT_FOUND


class TaskError(CasEngineError):
    """A run-task failed; wraps the cause with the task's coordinates.

    The cause is chained through ``__cause__`` so classification helpers
    can still see the original tag.
    """

    def __init__(
        self,
        task_name: str,
        cause: BaseException,
        *,
        identity: str = "",
        action: str = "",
        resource_kind: str = "",
        api_version: str = "",
        object_name: str = "",
        namespace: str = "",
        snapshot: str = "",
    ) -> None:
        self.task_name = task_name
        self.cause = cause
        self.identity = identity
        self.action = action
        self.resource_kind = resource_kind
        self.api_version = api_version
        self.object_name = object_name
        self.namespace = namespace
        self.snapshot = snapshot
        super().__init__(
            f"failed to execute task '{task_name}': {cause} "
            f"[id={identity!r} action={action!r} kind={resource_kind!r} "
            f"apiVersion={api_version!r} objectName={object_name!r} namespace={namespace!r}]"
        )

    def details(self) -> dict[str, Any]:
        """Structured form of the error for logging."""
        return {
            "task": self.task_name,
            "id": self.identity,
            "action": self.action,
            "kind": self.resource_kind,
            "api_version": self.api_version,
            "object_name": self.object_name,
            "namespace": self.namespace,
            "cause": str(self.cause),
            "cause_kind": error_kind(self.cause),
        }


def _causes(err: BaseException | None):
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        yield err
        err = err.__cause__


def error_kind(err: BaseException) -> str | None:
    """Return the tag of the innermost tagged error in the cause chain."""
    found: str | None = None
    for e in _causes(err):
        if isinstance(e, CasEngineError) and not isinstance(e, TaskError):
            found = e.kind.value
    return found


def has_kind(err: BaseException, kind: ErrorKind) -> bool:
    """True when any error in the ``__cause__`` chain carries ``kind``."""
    return any(isinstance(e, CasEngineError) and e.kind == kind for e in _causes(err))


def is_version_mismatch(err: BaseException) -> bool:
    return has_kind(err, ErrorKind.VERSION_MISMATCH)


def is_verify_error(err: BaseException) -> bool:
    return has_kind(err, ErrorKind.VERIFY)
