# src/castengine/core/values.py
"""Value context shared by the tasks of one composite-template run.

The context is a nested mapping addressed by dotted paths. It is owned by
a single run and mutated only by that run's tasks in sequence.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping
from typing import Any

import yaml

from castengine.contracts.enums import TopLevelKey

REDACTED = "--redacted--"

# Keys holding the current task's payload
RAW_PAYLOAD_KEYS = (TopLevelKey.JSON_RESULT.value, TopLevelKey.RUNTIME_OBJECT.value)


def split_path(path: str | Iterable[str]) -> list[str]:
    """Split a dotted path into keys; sequences are taken as already split."""
    if isinstance(path, str):
        return [p for p in path.split(".") if p != ""]
    return list(path)


def set_nested(target: dict[str, Any], path: str | Iterable[str], value: Any) -> None:
    """Set ``value`` at ``path``, creating or overwriting intermediate maps."""
    keys = split_path(path)
    if not keys:
        raise ValueError("empty path")
    node = target
    for key in keys[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    node[keys[-1]] = value


def get_nested(source: Mapping[str, Any] | None, path: str | Iterable[str]) -> Any:
    """Return the value at ``path``, or None when any key is missing."""
    node: Any = source
    for key in split_path(path):
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
        if node is None:
            return None
    return node


def get_nested_string(source: Mapping[str, Any] | None, path: str | Iterable[str]) -> str:
    value = get_nested(source, path)
    return value if isinstance(value, str) else ""


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class ValueContext:
    """Nested mapping carrying configuration and results across tasks.

    Example:
        values = ValueContext()
        values.set("TaskResult.mypod.name", "kubectl-tester")
        values.get("TaskResult.mypod.name")  # "kubectl-tester"
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = {
            TopLevelKey.CONFIG.value: None,
            TopLevelKey.LIST_ITEMS.value: {},
            TopLevelKey.TASK_RESULT.value: {},
        }
        if initial:
            for key, value in initial.items():
                self._data[str(key)] = value

    def set(self, path: str | Iterable[str], value: Any) -> None:
        set_nested(self._data, path, value)

    def get(self, path: str | Iterable[str]) -> Any:
        return get_nested(self._data, path)

    def setdefault_map(self, key: str) -> dict[str, Any]:
        """Return the top-level map at ``key``, installing an empty one if absent."""
        current = self._data.get(key)
        if not isinstance(current, dict):
            current = {}
            self._data[key] = current
        return current

    def redact_raw(self) -> None:
        """Replace the raw task payload with the redaction sentinel and drop its parsed form."""
        self._data[TopLevelKey.JSON_RESULT.value] = REDACTED
        self._data.pop(TopLevelKey.RUNTIME_OBJECT.value, None)

    def task_result(self, identity: str) -> dict[str, Any]:
        results = self.setdefault_map(TopLevelKey.TASK_RESULT.value)
        current = results.get(identity)
        if not isinstance(current, dict):
            current = {}
            results[identity] = current
        return current

    def template_vars(self) -> dict[str, Any]:
        """Live top-level mapping handed to the template pipeline.

        Template functions mutate nested maps in place, so this is not a copy.
        """
        return self._data

    def snapshot(self) -> str:
        """YAML rendering for diagnostics, with the task payload redacted."""
        data = {k: (REDACTED if k in RAW_PAYLOAD_KEYS else v) for k, v in self._data.items()}
        return yaml.safe_dump(_plain(data), sort_keys=True, default_flow_style=False)

    def clone(self) -> ValueContext:
        return ValueContext(copy.deepcopy(self._data))

    def __contains__(self, key: str) -> bool:
        return key in self._data
