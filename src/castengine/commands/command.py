# src/castengine/commands/command.py
"""Run commands: fluent ``action x category`` invocations built in templates.

A run command is assembled by the template DSL (``get``, ``jiva``,
``volume``, ``withoption`` ...) and executed with ``run``. Execution never
raises for command-level failures; errors are recorded in the command's
messages and surfaced through the RunCommandResult.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from castengine.contracts.enums import CommandAction, CommandCategory
from castengine.contracts.errors import CasEngineError, RunCommandError
from castengine.contracts.results import Msgs, RunCommandResult
from castengine.core.cancel import CancelToken
from castengine.core.jsonpath import JSONPath, load_document

if TYPE_CHECKING:
    from castengine.volume.rpc import VolumeRPCClient

ERR_NOT_SUPPORTED_CATEGORY = "not supported category: invalid run command"
ERR_NOT_SUPPORTED_ACTION = "not supported action: invalid run command"
ERR_INVALID_CATEGORY = "invalid categories: invalid run command"
ERR_EMPTY_CATEGORY = "missing categories: invalid run command"
ERR_RUN_CONDITION_FAILED = "run condition failed: can not execute run command"

SKIP_EXECUTION_MESSAGE = "will skip run command execution"

SELECT_ALIAS_DELIMITER = " as "
SELECT_ALL = "all"

DEFAULT_RPC_PORT = 7777


@dataclass
class CommandRuntime:
    """Transports available to run commands during one run.

    Attributes:
        http_client: Shared HTTP client; created lazily when absent
        rpc_client_factory: Builds a block-volume RPC client for (ip, port)
        cancel: Cancellation token of the owning run
        timeout: Timeout for the lazily created HTTP client
    """

    http_client: httpx.Client | None = None
    rpc_client_factory: Callable[[str, int], VolumeRPCClient] | None = None
    cancel: CancelToken = field(default_factory=CancelToken)
    timeout: float = 30.0

    def http(self) -> httpx.Client:
        if self.http_client is None:
            self.http_client = httpx.Client(timeout=self.timeout)
        return self.http_client

    def rpc(self, ip: str, port: int = DEFAULT_RPC_PORT) -> VolumeRPCClient:
        if self.rpc_client_factory is not None:
            return self.rpc_client_factory(ip, port)
        from castengine.volume.rpc import VolumeRPCClient

        return VolumeRPCClient(ip, port, timeout=self.timeout)

    def close(self) -> None:
        if self.http_client is not None:
            self.http_client.close()
            self.http_client = None


class RunCommand:
    """A run command under construction or ready to run.

    Example:
        cmd = RunCommand().with_action(CommandAction.DELETE)
        cmd.with_category(CommandCategory.JIVA).with_category(CommandCategory.VOLUME)
        cmd.with_data("url", "http://10.0.0.5:9501").with_data("name", "pvc-1")
        result = cmd.run()
    """

    def __init__(self, runtime: CommandRuntime | None = None) -> None:
        self.runtime = runtime or CommandRuntime()
        self.action: CommandAction | None = None
        self.categories: list[CommandCategory] = []
        self.data: dict[str, Any] = {}
        self.selects: list[str] = []
        self.enabled = True
        self.msgs = Msgs()

    # -- builders ------------------------------------------------------------

    def with_action(self, action: CommandAction | str) -> RunCommand:
        self.action = CommandAction(action)
        return self

    def with_category(self, category: CommandCategory | str) -> RunCommand:
        category = CommandCategory(category)
        if category not in self.categories:
            self.categories.append(category)
        return self

    def with_data(self, key: str, value: Any) -> RunCommand:
        self.data[key] = value
        return self

    def with_select(self, paths: list[str]) -> RunCommand:
        self.selects.extend(paths)
        return self

    def enable(self, flag: bool) -> RunCommand:
        self.enabled = flag
        return self

    def add_error(self, err: BaseException) -> RunCommand:
        self.msgs.add_error(err)
        return self

    def add_warn(self, msg: str) -> RunCommand:
        self.msgs.add_warn(msg)
        return self

    # -- data helpers --------------------------------------------------------

    def text(self, key: str) -> str:
        value = self.data.get(key)
        return "" if value is None else str(value).strip()

    def flag(self, key: str, default: bool) -> bool:
        value = self.data.get(key)
        if value is None:
            return default
        if isinstance(value, str):
            return value.strip().lower() not in ("false", "0", "no", "off", "")
        return bool(value)

    def has(self, *categories: CommandCategory) -> bool:
        return all(c in self.categories for c in categories)

    # -- execution -----------------------------------------------------------

    def self_info(self) -> str:
        parts = [f"action '{self.action.value if self.action else ''}'"]
        parts.append("categories '" + " ".join(c.value for c in self.categories) + "'")
        if self.data:
            parts.append("data '" + " ".join(f"{k}={v}" for k, v in sorted(self.data.items())) + "'")
        if self.selects:
            parts.append("select '" + "' '".join(self.selects) + "'")
        return "run command: " + " ".join(parts)

    def result(self, value: Any) -> RunCommandResult:
        return RunCommandResult.from_msgs(value, self.msgs)

    def _pre_run(self) -> None:
        if not self.categories:
            self.enable(False).add_error(RunCommandError(ERR_EMPTY_CATEGORY))
        if self.has(CommandCategory.JIVA, CommandCategory.CSTOR):
            self.enable(False).add_error(RunCommandError(ERR_INVALID_CATEGORY))
        if not self.enabled:
            self.msgs.add_skip(SKIP_EXECUTION_MESSAGE)

    def instance(self) -> CommandRunner:
        """Pick the runner for this command's categories."""
        for required, factory in _RUNNERS:
            if self.has(*required):
                return factory(self)
        return NotSupportedCategoryCommand(self)

    def run(self) -> RunCommandResult:
        self._pre_run()
        self.msgs.add_info(self.self_info())
        if not self.enabled:
            return self.result(None)
        self.runtime.cancel.raise_if_cancelled()
        result = self.instance().run()
        return self._post_run(result)

    def _post_run(self, result: RunCommandResult) -> RunCommandResult:
        if not self.selects:
            return result
        return query_selects(self.selects, result, self.msgs)

    def __repr__(self) -> str:
        return self.self_info()


def _select_aliases(paths: list[str]) -> dict[str, str]:
    aliases: dict[str, str] = {}
    for idx, selection in enumerate(paths):
        parts = selection.split(SELECT_ALIAS_DELIMITER)
        if len(parts) == 2:
            aliases[parts[1].strip()] = parts[0].strip()
        else:
            aliases[f"s{idx}"] = selection.strip()
    return aliases


def query_selects(paths: list[str], result: RunCommandResult, msgs: Msgs) -> RunCommandResult:
    """Project a command result through ``select`` paths.

    ``all`` keeps the full result. Other paths produce an alias keyed map;
    a path matching one value yields that value, several yield a list.
    """
    if result.result is None:
        msgs.add_warn("nil command result: can not query select '" + "' '".join(paths) + "'")
        return RunCommandResult.from_msgs(None, msgs)
    if paths == [SELECT_ALL]:
        return result
    document = load_document(result.result)
    selected: dict[str, Any] = {}
    for alias, path in _select_aliases(paths).items():
        if path == SELECT_ALL:
            selected[alias] = document
            continue
        template = path if "{" in path else "{" + path + "}"
        try:
            found = JSONPath(template).find(document)
        except CasEngineError as e:
            msgs.add_warn(f"failed to query select '{path}': {e}")
            continue
        if not found:
            msgs.add_warn(f"no value found for select '{path}'")
            selected[alias] = None
        else:
            selected[alias] = found[0] if len(found) == 1 else found
    return RunCommandResult.from_msgs(selected, msgs)


class CommandRunner:
    """Base class for category specific runners.

    Subclasses map supported actions to methods through ``actions`` and
    implement those methods returning the command's payload. Errors raised
    by a method are recorded on the command, not propagated.
    """

    actions: dict[CommandAction, str] = {}

    def __init__(self, cmd: RunCommand) -> None:
        self.cmd = cmd

    def run(self) -> RunCommandResult:
        method_name = self.actions.get(self.cmd.action) if self.cmd.action else None
        if method_name is None:
            return NotSupportedActionCommand(self.cmd).run()
        try:
            value = getattr(self, method_name)()
        except (CasEngineError, httpx.HTTPError) as e:
            structlog.get_logger(__name__).debug(
                "Run command failed",
                command=self.cmd.self_info(),
                error=str(e),
            )
            self.cmd.add_error(e)
            value = None
        return self.cmd.result(value)


class NotSupportedCategoryCommand(CommandRunner):
    def run(self) -> RunCommandResult:
        self.cmd.add_error(RunCommandError(ERR_NOT_SUPPORTED_CATEGORY))
        return self.cmd.result(None)


class NotSupportedActionCommand(CommandRunner):
    def run(self) -> RunCommandResult:
        self.cmd.add_error(RunCommandError(ERR_NOT_SUPPORTED_ACTION))
        return self.cmd.result(None)


_RUNNERS: list[tuple[tuple[CommandCategory, ...], Callable[[RunCommand], CommandRunner]]] = []


def register_runner(*categories: CommandCategory):
    """Class decorator registering a runner for commands carrying ``categories``.

    Runners are consulted in registration order; the first whose categories
    are all present on the command wins.
    """

    def decorator(cls: type[CommandRunner]) -> type[CommandRunner]:
        _RUNNERS.append((tuple(categories), cls))
        return cls

    return decorator
