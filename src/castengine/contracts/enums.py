"""Actions, categories, and kinds used across subsystem boundaries.

Every value here is matched against text that arrives in task YAML or in
template pipelines, so members use (str, Enum) and compare equal to their
wire spelling.
"""

from enum import Enum


class TaskAction(str, Enum):
    """Action declared in a run-task meta section."""

    GET = "get"
    LIST = "list"
    PUT = "put"
    PATCH = "patch"
    DELETE = "delete"


class PatchType(str, Enum):
    """Patch flavours understood by the cluster client.

    The value is the tag used in task YAML; ``media_type`` gives the
    content type sent on the wire.
    """

    JSON = "json"
    MERGE = "merge"
    STRATEGIC = "strategic"

    @property
    def media_type(self) -> str:
        return _PATCH_MEDIA_TYPES[self]


_PATCH_MEDIA_TYPES = {
    PatchType.JSON: "application/json-patch+json",
    PatchType.MERGE: "application/merge-patch+json",
    PatchType.STRATEGIC: "application/strategic-merge-patch+json",
}


class CommandAction(str, Enum):
    """Action of a run command built through the template DSL."""

    GET = "get"
    LIST = "list"
    CREATE = "create"
    UPDATE = "update"
    PATCH = "patch"
    DELETE = "delete"
    POST = "post"
    PUT = "put"


class CommandCategory(str, Enum):
    """Domain and resource tags attached to a run command."""

    JIVA = "jiva"
    CSTOR = "cstor"
    VOLUME = "volume"
    SNAPSHOT = "snapshot"
    HTTP = "http"


class ErrorKind(str, Enum):
    """Classification tag carried by every engine error.

    Callers branch on the tag, never on message text.
    """

    PARSE = "parse"
    DISPATCH = "dispatch"
    CLUSTER = "cluster"
    VERIFY = "verify"
    NOT_FOUND = "not_found"
    VERSION_MISMATCH = "version_mismatch"
    ROLLBACK = "rollback"
    COMMAND = "command"
    CANCELLED = "cancelled"
    TASK = "task"


class MsgType(str, Enum):
    """Class of a message recorded while a run command executes."""

    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    SKIP = "skip"


class TopLevelKey(str, Enum):
    """Reserved top-level keys of a run's value context."""

    CAST = "CAST"
    CONFIG = "Config"
    VOLUME = "Volume"
    SNAPSHOT = "Snapshot"
    STORAGE_POOL = "Storagepool"
    TASK_RESULT = "TaskResult"
    JSON_RESULT = "JsonResult"
    LIST_ITEMS = "ListItems"
    RUNTIME_OBJECT = "RuntimeObject"


class TaskResultKey(str, Enum):
    """Well-known keys stored under ``TaskResult.<id>``."""

    OBJECT_NAME = "objectName"
    VERIFY_ERR = "verifyErr"
    NOT_FOUND_ERR = "notFoundErr"
    VERSION_MISMATCH_ERR = "versionMismatchErr"
