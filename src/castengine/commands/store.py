# src/castengine/commands/store.py
"""Store commands: run a command under an id and keep its outcome.

``runas`` maps a run command to an id on a store command. The outcome is
written to ``<bucket>/{result,debug,error}`` of a caller supplied map, and
once any bucket holds an error later commands sharing that store are
refused.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from castengine.commands.command import ERR_RUN_CONDITION_FAILED, RunCommand
from castengine.contracts.errors import RunCommandError
from castengine.contracts.results import Msgs, RunCommandResult
from castengine.core.values import get_nested, set_nested

RESULT_KEY = "result"
DEBUG_KEY = "debug"
ERROR_KEY = "error"
ROOT_CAUSE_KEY = "rootCause"


class RunCondition(Protocol):
    def will_run(self) -> tuple[str, bool]: ...


class RunAlways:
    """Condition that never blocks a command."""

    def will_run(self) -> tuple[str, bool]:
        return "run always", True


class KVStore:
    """Bucketed storage over a template-visible map.

    The first error stored becomes ``rootCause``.
    """

    def __init__(self, store: dict[str, Any]) -> None:
        if not isinstance(store, dict):
            raise RunCommandError(f"store must be a map: got {type(store).__name__}")
        self.store = store
        self.bucket = ""

    def set_bucket(self, bucket: str) -> None:
        self.bucket = bucket

    def is_bucket_taken(self, bucket: str) -> bool:
        return bucket in self.store

    def _store_root_cause(self, data: Any) -> None:
        if data is None or get_nested(self.store, ROOT_CAUSE_KEY) is not None:
            return
        set_nested(self.store, ROOT_CAUSE_KEY, data)

    def put(self, key: str, data: Any) -> None:
        set_nested(self.store, [self.bucket, key], data)
        if key == ERROR_KEY:
            self._store_root_cause(data)

    def will_run(self) -> tuple[str, bool]:
        condition = "errors with previous commands' execution(s)"
        for data in self.store.values():
            if isinstance(data, dict) and data.get(ERROR_KEY) is not None:
                return condition, False
        return condition, True


class StoreCommand:
    """Runs a mapped RunCommand and stores its outcome in a KVStore."""

    def __init__(self, storage: KVStore, condition: RunCondition | None = None) -> None:
        self.storage = storage
        self.condition = condition or storage
        self.msgs = Msgs()
        self.id = ""
        self.cmd: RunCommand | None = None

    def _reset(self) -> None:
        self.id = ""
        self.cmd = None
        self.msgs.reset()

    def _set_id(self, identity: str) -> None:
        self.storage.set_bucket(identity)
        self.id = identity

    def _set_generated_id(self) -> None:
        self._set_id(datetime.now().strftime("%H%M%S%f"))

    def map(self, identity: str, cmd: RunCommand | None) -> None:
        self._reset()
        info = cmd.self_info() if cmd is not None else ""
        if not identity:
            self.msgs.add_error(RunCommandError(f"missing run command id: can not execute run command: '{info}'"))
            self._set_generated_id()
            return
        if self.storage.is_bucket_taken(identity):
            self.msgs.add_error(RunCommandError(f"duplicate id '{identity}': can not execute run command: '{info}'"))
            self._set_generated_id()
            return
        self._set_id(identity)
        if cmd is None:
            self.msgs.add_error(RunCommandError(f"nil run command: can not execute run command with id '{identity}'"))
            return
        self.cmd = cmd

    def will_run(self) -> tuple[str, bool]:
        return self.condition.will_run()

    def _store(self, res: RunCommandResult) -> None:
        self.storage.put(RESULT_KEY, res.result)
        self.storage.put(DEBUG_KEY, res.debug)
        self.storage.put(ERROR_KEY, None if res.error is None else str(res.error))

    def run(self) -> RunCommandResult:
        if self.cmd is None:
            res = RunCommandResult.from_msgs(None, self.msgs)
        else:
            condition, will_run = self.will_run()
            if not will_run:
                self.cmd.enable(False).add_warn(condition)
                self.cmd.add_error(RunCommandError(ERR_RUN_CONDITION_FAILED))
            res = self.cmd.run()
        self._store(res)
        return res
