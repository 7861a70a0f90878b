# src/castengine/engine/post.py
"""Post operations declared by a run-task's rendered post document.

A rendered post document may declare operations on the task's result:

    operations:
      - run: getTupleList
        for: [--kind=deploymentlist, --objectPath=RuntimeObject]
        withFilter: [--isLabel=openebs.io/controller=jiva-controller]
        withOutput: [--name, --namespace]
        as: volumeDeployments

Posts that only use template functions render to nothing (or ``''``)
and declare no operations.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog
import yaml
from pydantic import Field

from castengine.contracts.enums import TaskAction, TopLevelKey
from castengine.contracts.errors import TemplateError
from castengine.contracts.task import TaskRecord
from castengine.core.values import ValueContext, split_path

TEMPLATE_ONLY_OUTPUT = "''"

DEPLOYMENT_LIST = "deploymentlist"
GET_TUPLE_LIST = "gettuplelist"


class Operation(TaskRecord):
    run: str
    for_flags: list[str] = Field(default_factory=list, alias="for")
    with_filter: list[str] = Field(default_factory=list, alias="withFilter")
    with_output: list[str] = Field(default_factory=list, alias="withOutput")
    as_path: str = Field(default="", alias="as")


class PostDocument(TaskRecord):
    operations: list[Operation] = Field(default_factory=list)


def parse_flags(args: list[str], booleans: frozenset[str] = frozenset()) -> dict[str, list[str]]:
    """Parse ``--key=value``, ``--key value`` and boolean ``--key`` flags.

    Repeated flags accumulate.

    Raises:
        TemplateError: If an argument is not a flag or a value is missing
    """
    flags: dict[str, list[str]] = {}
    pending: str | None = None
    for arg in args:
        arg = str(arg).strip()
        if pending is not None:
            flags.setdefault(pending, []).append(arg)
            pending = None
            continue
        if not arg.startswith("--"):
            raise TemplateError(f"invalid post flag '{arg}'")
        name, sep, value = arg[2:].partition("=")
        if sep:
            flags.setdefault(name, []).append(value)
        elif name in booleans:
            flags.setdefault(name, []).append("true")
        else:
            pending = name
    if pending is not None:
        raise TemplateError(f"missing value for post flag '--{pending}'")
    return flags


def _last(flags: dict[str, list[str]], name: str) -> str:
    values = flags.get(name)
    return values[-1] if values else ""


def _has_labels(item: dict[str, Any], labels: list[str]) -> bool:
    got = (item.get("metadata") or {}).get("labels") or {}
    for label in labels:
        sep = "=" if "=" in label else ":"
        key, _, value = label.partition(sep)
        if key not in got or got[key] != value:
            return False
    return True


@dataclass
class DeploymentList:
    """Tuple extraction over a deployment list found at ``data_path``."""

    run: str
    data_path: str
    labels: list[str] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)

    def execute(self, values: ValueContext) -> list[dict[str, Any]]:
        if self.run != GET_TUPLE_LIST:
            raise TemplateError(f"unsupported runtask post operation '{self.run}' for deploymentlist")
        return self.tuple_list(values)

    def tuple_list(self, values: ValueContext) -> list[dict[str, Any]]:
        data = values.get(split_path(self.data_path.strip().strip(".")))
        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise TemplateError(f"failed to get tuple list: no deployment list at '{self.data_path}'")
        tuples: list[dict[str, Any]] = []
        for item in data["items"]:
            if self.labels and not _has_labels(item, self.labels):
                continue
            metadata = item.get("metadata") or {}
            tuples.append({key: metadata.get(key, "") for key in self.outputs})
        return tuples


class PostExecutor:
    """Runs the operations of one rendered post document.

    Example:
        PostExecutor("deploys", "Deployment", TaskAction.LIST, values).execute(rendered_post)
    """

    def __init__(self, identity: str, kind: str, action: TaskAction, values: ValueContext) -> None:
        self.identity = identity
        self.kind = kind
        self.action = action
        self.values = values
        self._kinds: dict[str, Callable[[Operation, dict[str, list[str]]], list[dict[str, Any]]]] = {
            DEPLOYMENT_LIST: self._deployment_list,
        }

    @staticmethod
    def parse(rendered: str) -> PostDocument | None:
        """The declared operations, or None for a template-only post."""
        text = rendered.strip()
        if not text or text == TEMPLATE_ONLY_OUTPUT:
            return None
        try:
            doc = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise TemplateError(f"invalid post yaml: {e}") from e
        if not isinstance(doc, dict) or "operations" not in doc:
            return None
        return PostDocument.from_dict(doc)

    def execute(self, rendered: str) -> None:
        document = self.parse(rendered)
        if document is None:
            return
        for operation in document.operations:
            self._execute_op(operation)

    def _default_kind(self) -> str:
        if not self.kind:
            raise TemplateError("empty kind for post operation")
        if self.action == TaskAction.LIST:
            return (self.kind + self.action.value).lower()
        return self.kind.lower()

    def _execute_op(self, operation: Operation) -> None:
        flags = parse_flags(operation.for_flags)
        kind = (_last(flags, "kind") or self._default_kind()).lower()
        runner = self._kinds.get(kind)
        if runner is None:
            raise TemplateError(f"unsupported kind for runtask post operation: {kind}")
        result = runner(operation, flags)
        if not operation.as_path:
            structlog.get_logger(__name__).debug("Post result not saved: no 'as' path", id=self.identity)
            return
        self.values.set([TopLevelKey.TASK_RESULT.value, *split_path(operation.as_path)], result)

    def _deployment_list(self, operation: Operation, flags: dict[str, list[str]]) -> list[dict[str, Any]]:
        data_path = _last(flags, "jsonPath") or _last(flags, "objectPath") or TopLevelKey.RUNTIME_OBJECT.value
        filters = parse_flags(operation.with_filter)
        outputs = parse_flags(operation.with_output, booleans=frozenset({"name", "namespace"}))
        return DeploymentList(
            run=operation.run.lower(),
            data_path=data_path,
            labels=[label for label in filters.get("isLabel", []) if label],
            outputs=[key for key in ("name", "namespace") if _last(outputs, key) == "true"],
        ).execute(self.values)
