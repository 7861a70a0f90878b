"""Shared contracts for cross-boundary data types.

Enums, errors, result records, and the typed task documents used by more
than one subsystem live here.

Import pattern:
    from castengine.contracts import Meta, TaskAction, VerifyError
"""

from castengine.contracts.enums import (
    CommandAction,
    CommandCategory,
    ErrorKind,
    MsgType,
    PatchType,
    TaskAction,
    TaskResultKey,
    TopLevelKey,
)
from castengine.contracts.errors import (
    CancelledError,
    CasEngineError,
    ClusterClientError,
    DispatchError,
    NotFoundError,
    ResourceNotFoundError,
    RollbackError,
    RunCommandError,
    TaskError,
    TaskSpecNotFoundError,
    TemplateError,
    VerifyError,
    VersionMismatchError,
    error_kind,
    is_verify_error,
    is_version_mismatch,
)
from castengine.contracts.results import Msgs, RunCommandResult
from castengine.contracts.task import (
    CompositeTemplate,
    ConfigEntry,
    Meta,
    Query,
    RunTask,
    TaskPatch,
    Verify,
)

__all__ = [
    "CancelledError",
    "CasEngineError",
    "ClusterClientError",
    "CommandAction",
    "CommandCategory",
    "CompositeTemplate",
    "ConfigEntry",
    "DispatchError",
    "ErrorKind",
    "Meta",
    "MsgType",
    "Msgs",
    "NotFoundError",
    "PatchType",
    "Query",
    "ResourceNotFoundError",
    "RollbackError",
    "RunCommandError",
    "RunCommandResult",
    "RunTask",
    "TaskAction",
    "TaskError",
    "TaskPatch",
    "TaskResultKey",
    "TaskSpecNotFoundError",
    "TemplateError",
    "TopLevelKey",
    "Verify",
    "VersionMismatchError",
    "error_kind",
    "is_verify_error",
    "is_version_mismatch",
]
