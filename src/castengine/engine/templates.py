# src/castengine/engine/templates.py
"""Jinja2-based task templating against the value context.

Meta, body, post, and output documents of a run-task are Jinja2
templates. They see every top-level key of the value context by name
(``TaskResult``, ``Config``, ``Volume`` ...) plus ``Values`` holding the
whole mapping, and the function set from ``template_funcs``.
"""

from __future__ import annotations

from typing import Any

from jinja2 import ChainableUndefined, TemplateSyntaxError, UndefinedError
from jinja2.exceptions import SecurityError
from jinja2.sandbox import SandboxedEnvironment

from castengine.commands.command import CommandRuntime
from castengine.contracts.errors import CasEngineError, TemplateError
from castengine.core.values import ValueContext
from castengine.engine.template_funcs import build_functions

VALUES_KEY = "Values"


def create_environment(runtime: CommandRuntime | None = None) -> SandboxedEnvironment:
    """Sandboxed environment with the task function set installed.

    Missing keys render as empty text and can be chained through, so a
    template can read ``TaskResult.mypod.name`` before ``mypod`` exists.
    """
    env = SandboxedEnvironment(
        undefined=ChainableUndefined,
        autoescape=False,
        keep_trailing_newline=True,
    )
    globals_, filters = build_functions(runtime or CommandRuntime())
    env.globals.update(globals_)
    env.filters.update(filters)
    return env


class TaskTemplate:
    """One parsed template document of a run-task.

    Example:
        template = TaskTemplate("meta", "id: {{ Config.name.value }}")
        text = template.render(values)
    """

    def __init__(self, name: str, source: str, env: SandboxedEnvironment | None = None) -> None:
        """Parse the template.

        Raises:
            TemplateError: If template syntax is invalid
        """
        self.name = name
        self._source = source
        self._env = env or create_environment()
        try:
            self._template = self._env.from_string(source)
        except TemplateSyntaxError as e:
            raise TemplateError(f"invalid {name} template syntax: {e}") from e

    def render(self, values: ValueContext) -> str:
        """Render against ``values``; template functions may mutate it.

        Raises:
            TemplateError: If rendering fails
            CasEngineError: Raised by a template function, passed through
        """
        variables: dict[str, Any] = dict(values.template_vars())
        variables[VALUES_KEY] = values.template_vars()
        try:
            return self._template.render(variables)
        except CasEngineError:
            raise
        except UndefinedError as e:
            raise TemplateError(f"undefined value in {self.name} template: {e}") from e
        except SecurityError as e:
            raise TemplateError(f"sandbox violation in {self.name} template: {e}") from e
        except Exception as e:
            raise TemplateError(f"failed to render {self.name} template: {e}") from e


class TemplateRenderer:
    """Renders the documents of one run with a shared environment."""

    def __init__(self, runtime: CommandRuntime | None = None) -> None:
        self.runtime = runtime or CommandRuntime()
        self._env = create_environment(self.runtime)

    def template(self, name: str, source: str) -> TaskTemplate:
        return TaskTemplate(name, source, self._env)

    def render(self, name: str, source: str, values: ValueContext) -> str:
        return self.template(name, source).render(values)
