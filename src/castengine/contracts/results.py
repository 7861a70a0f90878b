# src/castengine/contracts/results.py
"""Result types produced by run commands."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from castengine.contracts.enums import MsgType


@dataclass
class Msgs:
    """Ordered message buffer grouped by message class.

    Errors are kept as exception objects so the first one can be surfaced
    as the command's error; all other classes hold plain strings.
    """

    info: list[str] = field(default_factory=list)
    warn: list[str] = field(default_factory=list)
    skip: list[str] = field(default_factory=list)
    errors: list[BaseException] = field(default_factory=list)

    def add_info(self, msg: str) -> Msgs:
        self.info.append(msg)
        return self

    def add_warn(self, msg: str) -> Msgs:
        self.warn.append(msg)
        return self

    def add_skip(self, msg: str) -> Msgs:
        self.skip.append(msg)
        return self

    def add_error(self, err: BaseException) -> Msgs:
        self.errors.append(err)
        return self

    def merge(self, other: Msgs) -> Msgs:
        self.info.extend(other.info)
        self.warn.extend(other.warn)
        self.skip.extend(other.skip)
        self.errors.extend(other.errors)
        return self

    def has_error(self) -> bool:
        return bool(self.errors)

    def first_error(self) -> BaseException | None:
        return self.errors[0] if self.errors else None

    def reset(self) -> None:
        self.info.clear()
        self.warn.clear()
        self.skip.clear()
        self.errors.clear()

    def copy(self) -> Msgs:
        return Msgs(list(self.info), list(self.warn), list(self.skip), list(self.errors))

    def as_dict(self) -> dict[str, list[str]]:
        """Render as plain data; only non-empty classes are included."""
        out: dict[str, list[str]] = {}
        if self.info:
            out[MsgType.INFO.value] = list(self.info)
        if self.warn:
            out[MsgType.WARN.value] = list(self.warn)
        if self.errors:
            out[MsgType.ERROR.value] = [str(e) for e in self.errors]
        if self.skip:
            out[MsgType.SKIP.value] = list(self.skip)
        return out


@dataclass(frozen=True)
class RunCommandResult:
    """Outcome of one run command.

    Attributes:
        result: Command payload, decoded JSON where the transport returned JSON
        error: First error recorded while running, or None
        debug: Plain-data form of every message recorded
    """

    result: Any = None
    error: BaseException | None = None
    debug: dict[str, list[str]] = field(default_factory=dict)

    @classmethod
    def from_msgs(cls, result: Any, msgs: Msgs) -> RunCommandResult:
        return cls(result=result, error=msgs.first_error(), debug=msgs.as_dict())

    def as_dict(self) -> dict[str, Any]:
        return {
            "result": self.result,
            "error": None if self.error is None else str(self.error),
            "debug": self.debug,
        }
