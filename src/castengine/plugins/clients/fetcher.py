# src/castengine/plugins/clients/fetcher.py
"""Task-spec fetchers: resolve run-task and template names to documents.

Three implementations share the TaskSpecFetcher protocol:

- ClusterTaskSpecFetcher: RunTask custom resources, then ConfigMaps
- FileTaskSpecFetcher: YAML files in a directory
- DictTaskSpecFetcher: in-memory records
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import structlog
import yaml

from castengine.contracts.errors import CasEngineError, TaskSpecNotFoundError, TemplateError
from castengine.contracts.task import CompositeTemplate, RunTask
from castengine.plugins.clients.kube import ClusterClient

STRATEGY_RUNTASK = "runtask"
STRATEGY_CONFIGMAP = "configmap"
DEFAULT_STRATEGIES = (STRATEGY_RUNTASK, STRATEGY_CONFIGMAP)

RUNTASK_KINDS = {"RunTask", "ConfigMap"}
TEMPLATE_KIND = "CASTemplate"


@runtime_checkable
class TaskSpecFetcher(Protocol):
    """Resolves names to run-tasks and composite templates."""

    def fetch(self, name: str) -> RunTask:
        """Return the run-task called ``name``.

        Raises:
            TaskSpecNotFoundError: If no run-task has that name
        """
        ...

    def fetch_template(self, name: str) -> CompositeTemplate:
        """Return the composite template called ``name``.

        Raises:
            TaskSpecNotFoundError: If no template has that name
        """
        ...


def _require_name(name: str, what: str) -> str:
    name = name.strip()
    if not name:
        raise TaskSpecNotFoundError(f"missing {what} name")
    return name


def _decode(raw: bytes, what: str) -> dict[str, Any]:
    try:
        doc = json.loads(raw)
    except ValueError as e:
        raise TemplateError(f"invalid {what} document: {e}") from e
    if not isinstance(doc, dict):
        raise TemplateError(f"invalid {what} document: expected an object")
    return doc


class ClusterTaskSpecFetcher:
    """Fetches run-tasks from the cluster, trying each strategy in order.

    Example:
        fetcher = ClusterTaskSpecFetcher("openebs", client)
        task = fetcher.fetch("cstor-volume-create-getstoragepool-default")
    """

    def __init__(
        self,
        namespace: str,
        client: ClusterClient,
        strategies: Sequence[str] = DEFAULT_STRATEGIES,
    ) -> None:
        unknown = [s for s in strategies if s not in DEFAULT_STRATEGIES]
        if unknown:
            raise ValueError(f"unknown fetch strategies: {unknown}")
        self.namespace = namespace
        self._client = client
        self._strategies = tuple(strategies)

    def _fetch_with(self, strategy: str, name: str) -> RunTask:
        if strategy == STRATEGY_RUNTASK:
            return RunTask.from_document(_decode(self._client.get_run_task(name), "runtask"))
        return RunTask.from_document(_decode(self._client.get_config_map(name), "configmap"))

    def fetch(self, name: str) -> RunTask:
        name = _require_name(name, "run task")
        logger = structlog.get_logger(__name__)
        last: CasEngineError | None = None
        for strategy in self._strategies:
            try:
                return self._fetch_with(strategy, name)
            except CasEngineError as e:
                logger.warning(
                    "Fetch strategy failed",
                    strategy=strategy,
                    task=name,
                    namespace=self.namespace,
                    error=str(e),
                )
                last = e
        raise TaskSpecNotFoundError(
            f"run task '{name}' not found in namespace '{self.namespace}' "
            f"using strategies {list(self._strategies)}"
        ) from last

    def fetch_template(self, name: str) -> CompositeTemplate:
        name = _require_name(name, "cas template")
        try:
            raw = self._client.get_cas_template(name)
        except CasEngineError as e:
            raise TaskSpecNotFoundError(f"cas template '{name}' not found: {e}") from e
        return CompositeTemplate.from_document(_decode(raw, "cas template"))


class DictTaskSpecFetcher:
    """Serves run-tasks and templates held in memory."""

    def __init__(
        self,
        tasks: Mapping[str, RunTask] | None = None,
        templates: Mapping[str, CompositeTemplate] | None = None,
    ) -> None:
        self.tasks: dict[str, RunTask] = dict(tasks or {})
        self.templates: dict[str, CompositeTemplate] = dict(templates or {})

    def add_task(self, task: RunTask) -> None:
        self.tasks[task.name] = task

    def add_template(self, template: CompositeTemplate) -> None:
        self.templates[template.name] = template

    def fetch(self, name: str) -> RunTask:
        name = _require_name(name, "run task")
        try:
            return self.tasks[name]
        except KeyError:
            raise TaskSpecNotFoundError(f"run task '{name}' not found") from None

    def fetch_template(self, name: str) -> CompositeTemplate:
        name = _require_name(name, "cas template")
        try:
            return self.templates[name]
        except KeyError:
            raise TaskSpecNotFoundError(f"cas template '{name}' not found") from None


class FileTaskSpecFetcher(DictTaskSpecFetcher):
    """Serves RunTask, ConfigMap and CASTemplate documents from YAML files.

    Every ``*.yaml``/``*.yml`` file in the directory is read; files may hold
    several documents, each indexed by its ``metadata.name`` (a single
    unnamed document takes the file's stem).
    """

    def __init__(self, directory: Path) -> None:
        if not directory.is_dir():
            raise FileNotFoundError(f"Task directory not found: {directory}")
        super().__init__()
        self.directory = directory
        for path in sorted([*directory.glob("*.yaml"), *directory.glob("*.yml")]):
            self._load(path)

    def _load(self, path: Path) -> None:
        try:
            docs = [d for d in yaml.safe_load_all(path.read_text()) if d]
        except yaml.YAMLError as e:
            raise TemplateError(f"invalid yaml in {path}: {e}") from e
        for doc in docs:
            if not isinstance(doc, dict):
                raise TemplateError(f"invalid document in {path}: expected a mapping")
            metadata = doc.setdefault("metadata", {})
            if not metadata.get("name"):
                if len(docs) > 1:
                    raise TemplateError(f"unnamed document in multi-document file {path}")
                metadata["name"] = path.stem
            kind = doc.get("kind", "RunTask")
            if kind == TEMPLATE_KIND:
                self.add_template(CompositeTemplate.from_document(doc))
            elif kind in RUNTASK_KINDS:
                self.add_task(RunTask.from_document(doc))
            else:
                structlog.get_logger(__name__).warning(
                    "Skipping document of unsupported kind", path=str(path), kind=kind
                )
