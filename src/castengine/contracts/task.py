# src/castengine/contracts/task.py
"""Typed records for composite templates, run-tasks, and task meta.

All records are Pydantic models built from YAML documents. Parsing
failures surface as TemplateError so they are classified as parse errors.
"""

from __future__ import annotations

from typing import Any, Self

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from castengine.contracts.enums import PatchType, TaskAction
from castengine.contracts.errors import TemplateError

DEFAULT_RETRY = "1,0s"


def load_yaml_mapping(text: str | bytes, context: str) -> dict[str, Any]:
    """Parse a YAML document that must be a mapping (or empty).

    Raises:
        TemplateError: If the document is not valid YAML or not a mapping
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise TemplateError(f"invalid {context} yaml: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise TemplateError(f"invalid {context} yaml: expected a mapping, got {type(data).__name__}")
    return data


class TaskRecord(BaseModel):
    """Frozen record parsed from task YAML; unknown fields are ignored."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Validate a plain mapping into this record.

        Raises:
            TemplateError: If validation fails
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise TemplateError(f"invalid {cls.__name__}: {e}") from e


def _stringify(v: Any) -> Any:
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, (int, float)):
        return str(v)
    return v


class ConfigEntry(TaskRecord):
    """One named configuration item of a composite template."""

    name: str
    enabled: str = ""
    value: str = ""
    data: dict[str, str] = Field(default_factory=dict)

    @field_validator("enabled", "value", mode="before")
    @classmethod
    def _as_text(cls, v: Any) -> Any:
        return _stringify(v)

    @field_validator("data", mode="before")
    @classmethod
    def _data_as_text(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, dict):
            return {str(k): _stringify(val) for k, val in v.items()}
        return v


class Verify(TaskRecord):
    """Count constraint applied to a query's value."""

    count: str = ""
    split: str = ""

    @field_validator("count", mode="before")
    @classmethod
    def _count_as_text(cls, v: Any) -> Any:
        return _stringify(v)


class Query(TaskRecord):
    """Projection of a task result into ``TaskResult.<id>.<alias>``."""

    alias: str
    path: str = ""
    verify: Verify | None = None


class TaskPatch(TaskRecord):
    """Patch declared for a patch action."""

    type: PatchType
    pspec: str = Field(default="", validation_alias=AliasChoices("pspec", "specs"))


class Meta(TaskRecord):
    """Header of a run-task: identity, target resource type, and action."""

    identity: str = Field(default="", validation_alias=AliasChoices("identity", "id"))
    kind: str = ""
    api_version: str = Field(default="", alias="apiVersion")
    action: TaskAction
    run_namespace: str = Field(default="", alias="runNamespace")
    owner: str = ""
    object_name: str = Field(default="", alias="objectName")
    options: dict[str, Any] = Field(default_factory=dict)
    queries: list[Query] = Field(default_factory=list)
    retry: str = DEFAULT_RETRY
    patch: TaskPatch | None = None
    disable: bool = False

    @field_validator("options", mode="before")
    @classmethod
    def _parse_options(cls, v: Any) -> Any:
        if v is None:
            return {}
        if isinstance(v, str):
            return load_yaml_mapping(v, "meta options")
        return v

    @field_validator("retry", mode="before")
    @classmethod
    def _default_retry(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_RETRY
        return v

    @field_validator("queries", mode="before")
    @classmethod
    def _no_queries(cls, v: Any) -> Any:
        return [] if v is None else v

    @classmethod
    def from_yaml(cls, text: str | bytes) -> Meta:
        return cls.from_dict(load_yaml_mapping(text, "meta"))

    def namespaces(self) -> list[str]:
        """Namespaces named by ``runNamespace``, split on commas."""
        return [ns.strip() for ns in self.run_namespace.split(",") if ns.strip()]

    def object_names(self) -> list[str]:
        """Object names named by ``objectName``, split on commas."""
        return [n.strip() for n in self.object_name.split(",") if n.strip()]

    def as_rollback(self, object_name: str) -> Meta | None:
        """Build the reverse entry undoing a put that produced ``object_name``.

        Returns None for actions other than put.
        """
        if self.action != TaskAction.PUT:
            return None
        return self.model_copy(
            update={
                "action": TaskAction.DELETE,
                "object_name": object_name,
                "queries": [],
                "patch": None,
                "options": {},
                "retry": DEFAULT_RETRY,
            }
        )


class RunTask(TaskRecord):
    """A named step: meta, body, and optional post documents (unrendered)."""

    name: str
    meta: str
    task: str = ""
    post: str = ""

    @field_validator("meta", "task", "post", mode="before")
    @classmethod
    def _blank(cls, v: Any) -> Any:
        return "" if v is None else v

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> RunTask:
        """Build from a RunTask resource or a ConfigMap carrying meta/task/post."""
        name = (doc.get("metadata") or {}).get("name", "")
        if doc.get("kind") == "ConfigMap" or "data" in doc:
            fields = doc.get("data") or {}
        else:
            fields = doc.get("spec") or {}
        return cls.from_dict(
            {
                "name": name,
                "meta": fields.get("meta", ""),
                "task": fields.get("task", ""),
                "post": fields.get("post", ""),
            }
        )


class CompositeTemplate(TaskRecord):
    """Top-level record binding run-tasks, output task, fallback, and defaults."""

    name: str
    labels: dict[str, str] = Field(default_factory=dict)
    task_namespace: str = Field(default="", alias="taskNamespace")
    run_tasks: list[str] = Field(default_factory=list, alias="runTasks")
    output_task: str = Field(default="", alias="outputTask")
    fallback: str = ""
    defaults: list[ConfigEntry] = Field(default_factory=list)

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> CompositeTemplate:
        """Build from a CASTemplate resource document."""
        metadata = doc.get("metadata") or {}
        spec = doc.get("spec") or {}
        run = spec.get("run") or {}
        return cls.from_dict(
            {
                "name": metadata.get("name", ""),
                "labels": metadata.get("labels") or {},
                "taskNamespace": spec.get("taskNamespace", ""),
                "runTasks": run.get("tasks") or [],
                "outputTask": spec.get("output", ""),
                "fallback": spec.get("fallback", ""),
                "defaults": spec.get("defaultConfig") or [],
            }
        )

    @classmethod
    def from_yaml(cls, text: str | bytes) -> CompositeTemplate:
        return cls.from_document(load_yaml_mapping(text, "cas template"))
