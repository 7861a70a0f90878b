# src/castengine/volume/istgt.py
"""istgt control channel and the snapshot/resize commands built on it.

The control socket accepts a single line command and answers with
newline separated lines; ``ERR`` anywhere in the answer means failure.
Collaborators are passed in explicitly so tests can substitute doubles.
"""

from __future__ import annotations

import json
import socket
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog

from castengine.contracts.errors import RunCommandError

CMD_SNAP_CREATE = "SNAPCREATE"
CMD_SNAP_DESTROY = "SNAPDESTROY"
CMD_RESIZE = "RESIZE"

STORAGE_LINE_MARKER = "LUN0 Storage"
ERR_RESPONSE = "ERR"


class ControlSocket(Protocol):
    """Sends one command over the control channel and returns the answer lines."""

    def send_command(self, command: str) -> list[str]: ...


class FileOperator(Protocol):
    """Line oriented edits of a configuration file."""

    def get_line_details(self, path: Path, marker: str) -> tuple[int, str]: ...

    def update_file(self, path: Path, line: str, index: int) -> None: ...


class UnixControlSocket:
    """ControlSocket over a local stream socket."""

    def __init__(self, path: Path, timeout: float = 90.0) -> None:
        self._path = path
        self._timeout = timeout

    def send_command(self, command: str) -> list[str]:
        """Send ``command`` and read until a line starting with OK or ERR.

        Raises:
            RunCommandError: If the socket cannot be reached or closes early
        """
        try:
            with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
                sock.settimeout(self._timeout)
                sock.connect(str(self._path))
                sock.sendall((command + "\r\n").encode("utf-8"))
                buf = b""
                while True:
                    chunk = sock.recv(4096)
                    if not chunk:
                        break
                    buf += chunk
                    lines = _split_lines(buf)
                    if lines and lines[-1].startswith(("OK", ERR_RESPONSE)) and buf.endswith(b"\n"):
                        break
        except OSError as e:
            raise RunCommandError(f"failed to send '{command}' to '{self._path}': {e}") from e
        return _split_lines(buf)


def _split_lines(buf: bytes) -> list[str]:
    return [line.strip() for line in buf.decode("utf-8", errors="replace").splitlines() if line.strip()]


class RealFileOperator:
    """FileOperator over the local filesystem."""

    def get_line_details(self, path: Path, marker: str) -> tuple[int, str]:
        """Index and text of the first line containing ``marker``; (-1, "") if absent."""
        for index, line in enumerate(path.read_text().splitlines()):
            if marker in line:
                return index, line
        return -1, ""

    def update_file(self, path: Path, line: str, index: int) -> None:
        lines = path.read_text().splitlines()
        lines[index] = line
        path.write_text("\n".join(lines) + "\n")


def status_response(lines: list[str] | None) -> str:
    """The status word of an answer: its second line, or ERR when absent."""
    if lines and len(lines) > 1:
        return lines[1]
    return ERR_RESPONSE


def status_json(response: str) -> str:
    return json.dumps({"response": response}, separators=(",", ":"))


@dataclass(frozen=True)
class CommandOutcome:
    """Answer of one control command, as exchanged over the RPC endpoint."""

    status: str
    error: str | None = None

    @property
    def response(self) -> str:
        return json.loads(self.status).get("response", "")


class IstgtController:
    """Snapshot and resize commands against one istgt target.

    Example:
        controller = IstgtController(UnixControlSocket(sock_path), RealFileOperator(), conf_path)
        outcome = controller.create_snapshot("vol1", "snap1")
    """

    def __init__(
        self,
        control: ControlSocket,
        files: FileOperator,
        conf_path: Path,
        *,
        io_wait: int = 10,
        total_wait: int = 60,
    ) -> None:
        self._control = control
        self._files = files
        self._conf_path = conf_path
        self._io_wait = io_wait
        self._total_wait = total_wait

    def _send(self, command: str) -> tuple[list[str] | None, str | None]:
        try:
            return self._control.send_command(command), None
        except RunCommandError as e:
            return None, str(e)

    def create_snapshot(self, volume: str, snapshot: str) -> CommandOutcome:
        structlog.get_logger(__name__).info(
            "Received snapshot create request", volume=volume, snapshot=snapshot
        )
        lines, error = self._send(f"{CMD_SNAP_CREATE} {volume} {snapshot} {self._io_wait} {self._total_wait}")
        return CommandOutcome(status_json(status_response(lines)), error)

    def delete_snapshot(self, volume: str, snapshot: str) -> CommandOutcome:
        structlog.get_logger(__name__).info(
            "Received snapshot delete request", volume=volume, snapshot=snapshot
        )
        lines, error = self._send(f"{CMD_SNAP_DESTROY} {volume} {snapshot} {self._io_wait} {self._total_wait}")
        return CommandOutcome(status_json(status_response(lines)), error)

    @contextmanager
    def _storage_line(self, size: str) -> Iterator[dict[str, bool]]:
        """Rewrite the storage line, restoring it unless the caller commits."""
        index, old_line = self._files.get_line_details(self._conf_path, STORAGE_LINE_MARKER)
        if index == -1:
            raise RunCommandError(f"failed to get the Storage details from '{self._conf_path}'")
        self._files.update_file(self._conf_path, f"  {STORAGE_LINE_MARKER} {size} 32k", index)
        structlog.get_logger(__name__).info("Updated istgt config", path=str(self._conf_path), size=size)
        guard = {"committed": False}
        try:
            yield guard
        finally:
            if not guard["committed"]:
                structlog.get_logger(__name__).info("Reverting istgt config", path=str(self._conf_path))
                self._files.update_file(self._conf_path, old_line, index)

    def resize_volume(self, volume: str, size: str) -> CommandOutcome:
        """Resize by editing the istgt config then signalling the target.

        Raises:
            RunCommandError: If the config file has no storage line
        """
        structlog.get_logger(__name__).info("Received volume resize request", volume=volume, size=size)
        with self._storage_line(size) as guard:
            lines, error = self._send(f"{CMD_RESIZE} {self._io_wait} {self._total_wait}")
            if error is None and not any(ERR_RESPONSE in line for line in lines or []):
                guard["committed"] = True
        return CommandOutcome(status_json(status_response(lines)), error)
