# src/castengine/engine/template_funcs.py
"""Functions available to run-task templates.

Every function is written with the piped value as its LAST argument, the
way the templates read: ``saveAs(path, ctx, value)``. The same function
is exposed as a global (call form) and as a filter, where the piped value
comes first: ``value | saveAs("mypod.name", TaskResult)``.
"""

from __future__ import annotations

import json
import random
import re
from collections.abc import Callable, Mapping
from typing import Any

import structlog
import yaml
from jinja2 import Undefined

from castengine.commands.command import CommandRuntime, RunCommand
from castengine.commands.store import KVStore, RunAlways, RunCondition, StoreCommand
from castengine.contracts.enums import CommandAction, CommandCategory
from castengine.contracts.errors import (
    CasEngineError,
    NotFoundError,
    TemplateError,
    VerifyError,
    VersionMismatchError,
)
from castengine.contracts.results import RunCommandResult
from castengine.core import version
from castengine.core.jsonpath import JSONPath, load_document
from castengine.core.values import get_nested, get_nested_string, set_nested, split_path

APPEND_DELIMITER = ", "
DEFAULT_PKEY = "pkey"


def plain(value: Any) -> Any:
    """Undefined template values become None."""
    return None if isinstance(value, Undefined) else value


def is_empty(value: Any) -> bool:
    """Template emptiness: None, zero, false, and empty containers are empty."""
    value = plain(value)
    if value is None:
        return True
    if isinstance(value, bool):
        return not value
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, (str, bytes, list, tuple, dict, set)):
        return len(value) == 0
    return False


def _truthy(value: Any) -> bool:
    value = plain(value)
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _dest(destination: Any, fn: str) -> dict[str, Any]:
    destination = plain(destination)
    if not isinstance(destination, dict):
        raise TemplateError(f"{fn}: destination must be a map, got {type(destination).__name__}")
    return destination


def _items(given: Any) -> list[str]:
    given = plain(given)
    if given is None:
        return []
    if isinstance(given, str):
        return [given]
    return [str(g) for g in given]


# =============================================================================
# Saving values
# =============================================================================


def save_as(path: str, destination: Any, value: Any) -> Any:
    """Store ``value`` at ``path`` unconditionally; returns ``value``.

    A RunCommandResult is stored as ``<path>.result``, ``.error`` and ``.debug``.
    """
    dest = _dest(destination, "saveAs")
    keys = split_path(path)
    if isinstance(value, RunCommandResult):
        set_nested(dest, keys + ["result"], value.result)
        set_nested(dest, keys + ["error"], None if value.error is None else str(value.error))
        set_nested(dest, keys + ["debug"], value.debug)
        return value
    set_nested(dest, keys, plain(value))
    return value


def save_if(path: str, destination: Any, value: Any) -> Any:
    """Store ``value`` at ``path`` only when the target is empty.

    Returns the value held at ``path`` afterwards.
    """
    dest = _dest(destination, "saveIf")
    old = get_nested(dest, path)
    if not is_empty(old):
        return old
    set_nested(dest, path, plain(value))
    return value


def add_to(path: str, destination: Any, value: Any) -> Any:
    """Append ``value`` to the string at ``path`` separated by ", "."""
    dest = _dest(destination, "addTo")
    new = str(plain(value) or "").strip()
    if not new:
        return value
    old = get_nested_string(dest, path)
    set_nested(dest, path, f"{old}{APPEND_DELIMITER}{new}" if old else new)
    return value


def nested_key_map(delimiters: str, destination: Any, given: Any) -> dict[str, Any]:
    """Build nested maps by splitting each item with ``delimiters`` in order.

    Example:
        "default/mypod@app=jiva" with delimiters "@ =" stores
        {"default/mypod": {"app": "jiva"}}; with "/ @ =" it stores
        {"default": {"mypod": {"app": "jiva"}}}. An existing leaf gets
        the new value appended after ", ".
    """
    dest = _dest(destination, "nestedKeyMap")
    splitters = delimiters.split(" ")
    for item in _items(given):
        keys: list[str] = []
        value = item
        for splitter in splitters:
            parts = value.split(splitter, 1)
            if len(parts) != 2:
                continue
            key = parts[0].strip()
            if key:
                keys.append(key)
            value = parts[1].strip()
        if not keys:
            continue
        old = get_nested_string(dest, keys).strip()
        if old:
            value = f"{old}{APPEND_DELIMITER}{value}".removesuffix(APPEND_DELIMITER)
        set_nested(dest, keys, value)
    return dest


def split_key_map(splitters: str, destination_fields: str, destination: Any, given: Any) -> dict[str, Any]:
    """Store ``k=v`` pairs of each item under ``<fields>.<pkey-value>.<k>``.

    ``splitters`` holds the pair separator and the key/value separator,
    space separated (default ``", ="``). The primary key comes from the
    ``pkey=<value>`` pair and defaults to ``pkey``.
    """
    dest = _dest(destination, "splitKeyMap")
    fields = [f for f in destination_fields.strip().split(".") if f] if destination_fields.strip() else []
    parts = splitters.strip().split(" ")
    pair_items = parts[0].strip() if len(parts) == 2 else ""
    pair_sep = parts[1].strip() if len(parts) == 2 else ""
    pair_items = pair_items or ","
    pair_sep = pair_sep or "="
    for item in _items(given):
        pairs = item.split(pair_items)
        pkey_pair = pick_prefix(DEFAULT_PKEY + pair_sep, pairs)
        pkey_parts = pkey_pair.split(pair_sep)
        primary = pkey_parts[1] if len(pkey_parts) == 2 and pkey_parts[1] else DEFAULT_PKEY
        for pair in pairs:
            if not pair or pair == pkey_pair:
                continue
            kv = pair.split(pair_sep)
            key = kv[0].strip()
            value = kv[1].strip() if len(kv) == 2 else ""
            if not key:
                continue
            path = fields + [primary, key]
            old = get_nested_string(dest, path).strip()
            if old:
                value = f"{old}{APPEND_DELIMITER}{value}".removesuffix(APPEND_DELIMITER)
            set_nested(dest, path, value)
    return dest


def key_map(destination_fields: str, destination: Any, given: Any) -> dict[str, Any]:
    return split_key_map(", =", destination_fields, destination, given)


def as_key_map(outer_key: str, destination: Any, given: Any) -> dict[str, Any]:
    """Store items like ``pkey=v k1=v1 k2=v2`` as ``{v: {k1: v1, k2: v2}}`` under ``outer_key``.

    Pairs may be separated by spaces or commas. Without a ``pkey`` pair the
    pairs are stored directly under ``outer_key``.
    """
    dest = _dest(destination, "asKeyMap")
    base = split_path(outer_key)
    for item in _items(given):
        pairs = [p for p in re.split(r"[,\s]+", item.strip()) if p]
        primary = ""
        entries: list[tuple[str, str]] = []
        for pair in pairs:
            key, _, value = pair.partition("=")
            key = key.strip()
            if not key:
                continue
            if key == DEFAULT_PKEY:
                primary = value.strip()
            else:
                entries.append((key, value.strip()))
        prefix = base + [primary] if primary else base
        for key, value in entries:
            set_nested(dest, prefix + [key], value)
    return dest


# =============================================================================
# Error markers
# =============================================================================


def not_found_err(message: str, given: Any) -> NotFoundError | None:
    """Error marker when ``given`` is empty, else None."""
    if not is_empty(given):
        return None
    return NotFoundError(message or "item is not found")


def verify_err(message: str, failed: Any) -> VerifyError | None:
    """Error marker when ``failed`` is true, else None."""
    if not _truthy(failed):
        return None
    return VerifyError(message or "verification failed")


def version_mismatch_err(message: str, wrong_version: Any) -> VersionMismatchError | None:
    """Error marker when ``wrong_version`` is true, else None."""
    if not _truthy(wrong_version):
        return None
    return VersionMismatchError(message or "version mismatch")


# =============================================================================
# Queries and list helpers
# =============================================================================


def jsonpath(document: Any, path: str) -> str:
    """Query a raw or decoded JSON document; failures render as text."""
    try:
        return JSONPath(path).render(load_document(plain(document)))
    except CasEngineError as e:
        return f"jsonpath failed: path '{path}': error '{e}'"


def is_len(expected: Any, given: Any) -> bool:
    given = plain(given)
    if isinstance(given, (list, tuple, dict, str)):
        return len(given) == int(expected)
    return False


def noop(*_: Any) -> str:
    return ""


def pick_suffix(match: str, given: Any) -> str:
    return next((g for g in _items(given) if g.endswith(match)), "")


def pick_prefix(match: str, given: Any) -> str:
    return next((g for g in _items(given) if g.startswith(match)), "")


def pick_contains(match: str, given: Any) -> str:
    return next((g for g in _items(given) if match in g), "")


def split_list(sep: str, orig: Any) -> list[str]:
    return str(plain(orig) or "").split(sep)


def split_list_trim(sep: str, orig: Any) -> list[str]:
    """Split after trimming leading and trailing separator characters."""
    return str(plain(orig) or "").strip(sep).split(sep)


def split_list_len(sep: str, orig: Any) -> int:
    return len(split_list_trim(sep, orig))


def randomize(given: Any) -> list[Any]:
    items = list(plain(given) or [])
    return random.sample(items, len(items))


def if_not_nil(this: Any, then: Any) -> Any:
    return then if not is_empty(this) else this


def pluck(name: str, *dicts: Any) -> list[Any]:
    if len(dicts) == 1 and isinstance(plain(dicts[0]), (list, tuple)):
        dicts = tuple(dicts[0])
    return [d[name] for d in dicts if isinstance(d, Mapping) and name in d]


def pick(mapping: Any, *keys: str) -> dict[str, Any]:
    mapping = plain(mapping) or {}
    return {k: mapping[k] for k in keys if k in mapping}


def first(given: Any) -> Any:
    given = plain(given)
    if not given:
        return None
    return given[0]


def default(default_value: Any, given: Any = None) -> Any:
    return default_value if is_empty(given) else given


def trim(given: Any) -> str:
    return str(plain(given) or "").strip()


def quote(*given: Any) -> str:
    return " ".join(json.dumps(str(plain(g)) if plain(g) is not None else "") for g in given)


def indent(spaces: int, given: Any) -> str:
    pad = " " * int(spaces)
    return pad + str(plain(given) or "").replace("\n", "\n" + pad)


def nindent(spaces: int, given: Any) -> str:
    return "\n" + indent(spaces, given)


def contains(substr: str, given: Any) -> bool:
    return substr in str(plain(given) or "")


def has_prefix(prefix: str, given: Any) -> bool:
    return str(plain(given) or "").startswith(prefix)


def has_suffix(suffix: str, given: Any) -> bool:
    return str(plain(given) or "").endswith(suffix)


# =============================================================================
# Serialization
# =============================================================================


def _yamlable(value: Any) -> Any:
    value = plain(value)
    if isinstance(value, Mapping):
        return {str(k): _yamlable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_yamlable(v) for v in value]
    if isinstance(value, RunCommandResult):
        return _yamlable(value.as_dict())
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def to_yaml(value: Any) -> str:
    try:
        return yaml.safe_dump(_yamlable(value), default_flow_style=False, sort_keys=True)
    except yaml.YAMLError as e:
        return f"error: {e}"


def from_yaml(text: Any) -> dict[str, Any]:
    """Parse a YAML mapping; problems are reported under ``Error``."""
    try:
        data = yaml.safe_load(str(plain(text) or ""))
    except yaml.YAMLError as e:
        return {"Error": str(e)}
    if data is None:
        return {}
    if not isinstance(data, dict):
        return {"Error": f"expected a mapping, got {type(data).__name__}"}
    return data


def to_json(value: Any) -> str:
    return json.dumps(_yamlable(value), separators=(",", ":"))


def to_json_obj(value: Any) -> bytes:
    return to_json(value).encode("utf-8")


def debugf(message: str, args: Any) -> str:
    """Log ``args`` at debug level; renders nothing."""
    args = plain(args)
    if args is None:
        raise TemplateError(f"failed to get debug info, got empty args, msg: {message}")
    structlog.get_logger(__name__).debug(message, args=_yamlable(args))
    return ""


# =============================================================================
# Run-command DSL
# =============================================================================


class Middleware:
    """Modifier applied to a run command under construction.

    Category tags are exposed as Middleware instances so templates can write
    either ``get(jiva, volume)`` or ``get(jiva(), volume())``.
    """

    def __init__(self, apply: Callable[[RunCommand], RunCommand], name: str) -> None:
        self._apply = apply
        self._name = name

    def __call__(self, cmd: RunCommand | None = None) -> Any:
        if cmd is None:
            return self
        return self._apply(cmd)

    def __repr__(self) -> str:
        return f"<{self._name}>"


def _category(category: CommandCategory) -> Middleware:
    return Middleware(lambda cmd: cmd.with_category(category), category.value)


def select(*paths: str) -> Middleware:
    selected = list(paths) or ["all"]
    return Middleware(lambda cmd: cmd.with_select(selected), "select")


def with_option(key: str, value: Any, cmd: RunCommand) -> RunCommand:
    if not isinstance(cmd, RunCommand):
        raise TemplateError(f"withoption: expected a run command, got {type(plain(cmd)).__name__}")
    return cmd.with_data(key, plain(value))


def run(cmd: RunCommand) -> RunCommandResult:
    if not isinstance(cmd, RunCommand):
        raise TemplateError(f"run: expected a run command, got {type(plain(cmd)).__name__}")
    return cmd.run()


def runlog(result_path: str, debug_path: str, store: Any, cmd: RunCommand) -> RunCommandResult:
    """Run ``cmd`` and save its result and debug messages at the given paths."""
    dest = _dest(store, "runlog")
    res = run(cmd)
    set_nested(dest, result_path.removeprefix("."), res.result)
    set_nested(dest, debug_path.removeprefix("."), res.debug)
    return res


def store_at(store: Any) -> KVStore:
    return KVStore(_dest(store, "storeAt"))


def store_runner(store: KVStore) -> StoreCommand:
    return StoreCommand(store)


def store_runner_cond(store: KVStore, condition: RunCondition) -> StoreCommand:
    return StoreCommand(store, condition)


def run_always() -> RunAlways:
    return RunAlways()


def runas(identity: str, runner: StoreCommand, cmd: RunCommand) -> RunCommandResult:
    """Run ``cmd`` through a store runner under ``identity``."""
    runner.map(identity, cmd)
    return runner.run()


def _action_constructor(action: CommandAction, runtime: CommandRuntime) -> Callable[..., RunCommand]:
    def build(*middlewares: Any) -> RunCommand:
        cmd = RunCommand(runtime).with_action(action)
        for middleware in middlewares:
            if not isinstance(middleware, Middleware):
                raise TemplateError(f"{action.value}: unexpected argument {middleware!r}")
            middleware(cmd)
        return cmd

    return build


# =============================================================================
# Registration
# =============================================================================

# name -> function whose last argument is the piped value
_PIPED: dict[str, Callable[..., Any]] = {
    "saveAs": save_as,
    "saveas": save_as,
    "saveIf": save_if,
    "saveif": save_if,
    "addTo": add_to,
    "nestedKeyMap": nested_key_map,
    "asNestedMap": nested_key_map,
    "keyMap": key_map,
    "asKeyMap": as_key_map,
    "splitKeyMap": split_key_map,
    "notFoundErr": not_found_err,
    "verifyErr": verify_err,
    "versionMismatchErr": version_mismatch_err,
    "isLen": is_len,
    "pickSuffix": pick_suffix,
    "pickPrefix": pick_prefix,
    "pickContains": pick_contains,
    "splitList": split_list,
    "splitListTrim": split_list_trim,
    "splitListLen": split_list_len,
    "IfNotNil": if_not_nil,
    "ifNotNil": if_not_nil,
    "pluck": pluck,
    "default": default,
    "indent": indent,
    "nindent": nindent,
    "contains": contains,
    "hasPrefix": has_prefix,
    "hasSuffix": has_suffix,
    "debugf": debugf,
    "kubeVersionCompare": version.compare,
    "kubeVersionEq": version.eq,
    "kubeVersionGt": version.gt,
    "kubeVersionGte": version.gte,
    "kubeVersionLt": version.lt,
    "kubeVersionLte": version.lte,
    "withOption": with_option,
    "withoption": with_option,
    "runlog": runlog,
    "runas": runas,
    "storeRunnerCond": store_runner_cond,
}

# name -> function taking the piped value first (or only)
_DIRECT: dict[str, Callable[..., Any]] = {
    "jsonpath": jsonpath,
    "noop": noop,
    "randomize": randomize,
    "pick": pick,
    "first": first,
    "trim": trim,
    "quote": quote,
    "empty": is_empty,
    "toYaml": to_yaml,
    "fromYaml": from_yaml,
    "toJson": to_json,
    "toJsonObj": to_json_obj,
    "kubeVersionLabel": version.as_label_value,
    "run": run,
    "storeAt": store_at,
    "storeRunner": store_runner,
}


def _as_filter(fn: Callable[..., Any]) -> Callable[..., Any]:
    def piped(value: Any, *args: Any) -> Any:
        return fn(*args, value)

    piped.__name__ = fn.__name__
    piped.__doc__ = fn.__doc__
    return piped


def build_functions(runtime: CommandRuntime) -> tuple[dict[str, Any], dict[str, Any]]:
    """Return ``(globals, filters)`` for one run's template environment."""
    globals_: dict[str, Any] = {}
    filters: dict[str, Any] = {}
    for name, fn in _PIPED.items():
        globals_[name] = fn
        filters[name] = _as_filter(fn)
    for name, fn in _DIRECT.items():
        globals_[name] = fn
        filters[name] = fn

    for category in CommandCategory:
        globals_[category.value] = _category(category)
    globals_["select"] = select
    globals_["runAlways"] = run_always

    actions = {
        "get": CommandAction.GET,
        "list": CommandAction.LIST,
        "lst": CommandAction.LIST,
        "create": CommandAction.CREATE,
        "update": CommandAction.UPDATE,
        "patch": CommandAction.PATCH,
        "delete": CommandAction.DELETE,
        "post": CommandAction.POST,
        "put": CommandAction.PUT,
    }
    for name, action in actions.items():
        globals_[name] = _action_constructor(action, runtime)
    return globals_, filters
