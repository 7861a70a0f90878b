# src/castengine/engine/engine.py
"""Engine front: one composite-template run from template to output bytes."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from castengine.contracts.enums import TopLevelKey
from castengine.contracts.task import CompositeTemplate, ConfigEntry
from castengine.core.config import config_to_map, merge_config
from castengine.core.values import ValueContext
from castengine.engine.executors import TaskRuntime
from castengine.engine.runner import TaskGroupRunner
from castengine.plugins.clients.fetcher import TaskSpecFetcher


class CasEngine:
    """Runs a composite template.

    Configuration is layered: ``config`` entries given by the caller win
    over the template's defaults. ``runtime_values`` are installed at
    ``runtime_key`` (for example ``Volume``) for the templates to read.

    Example:
        engine = CasEngine(
            template,
            fetcher,
            runtime,
            config=[ConfigEntry(name="ReplicaCount", value="3")],
            runtime_key="Volume",
            runtime_values={"owner": "pvc-1", "capacity": "5G"},
        )
        output = engine.run()

    A run is not restartable; build a new engine per request.
    """

    def __init__(
        self,
        template: CompositeTemplate,
        fetcher: TaskSpecFetcher,
        runtime: TaskRuntime,
        *,
        config: list[ConfigEntry] | None = None,
        runtime_key: str = "",
        runtime_values: Mapping[str, Any] | None = None,
        values: ValueContext | None = None,
    ) -> None:
        self.template = template
        self.fetcher = fetcher
        self.runtime = runtime
        self.values = values if values is not None else ValueContext()
        self.values.set(TopLevelKey.CAST.value, dict(template.labels))
        if config is not None or self.values.get(TopLevelKey.CONFIG.value) is None:
            self.set_config(config_to_map(merge_config(config or [], list(template.defaults))))
        if runtime_key.strip():
            self.set_values(runtime_key.strip(), dict(runtime_values or {}))
        self._ran = False

    def set_config(self, config: dict[str, Any]) -> None:
        self.values.set(TopLevelKey.CONFIG.value, config)

    def set_values(self, key: str, values: dict[str, Any]) -> None:
        self.values.set(key, values)

    def prepare(self) -> TaskGroupRunner:
        """Fetch every run-task and the output task into a fresh runner.

        Raises:
            TaskSpecNotFoundError: If a task cannot be fetched
            TemplateError: If a task is invalid or an identity is repeated
        """
        runner = TaskGroupRunner(self.runtime)
        for name in self.template.run_tasks:
            runner.add_task(self.fetcher.fetch(name))
        if self.template.output_task.strip():
            runner.set_output_task(self.fetcher.fetch(self.template.output_task))
        return runner

    def run(self) -> bytes:
        """Execute the template and return the output task's rendered bytes.

        Raises:
            CasEngineError: Any fetch, parse, or task failure
        """
        if self._ran:
            raise RuntimeError("a cas engine run is not restartable")
        self._ran = True
        logger = structlog.get_logger(__name__)
        logger.info("Running cas template", template=self.template.name, tasks=len(self.template.run_tasks))
        runner = self.prepare()
        fallback = self._fallback if self.template.fallback.strip() else None
        output = runner.run(self.values, fallback=fallback)
        logger.info("Cas template completed", template=self.template.name)
        return output

    def _fallback(self, values: ValueContext) -> bytes:
        """Run the fallback template against this run's values."""
        template = self.fetcher.fetch_template(self.template.fallback.strip())
        structlog.get_logger(__name__).info(
            "Running fallback template", template=self.template.name, fallback=template.name
        )
        return CasEngine(template, self.fetcher, self.runtime, values=values).run()
