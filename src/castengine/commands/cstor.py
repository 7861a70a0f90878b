# src/castengine/commands/cstor.py
"""Run commands against a cstor target through the volume RPC endpoint."""

from __future__ import annotations

from typing import Any

from castengine.commands.command import DEFAULT_RPC_PORT, CommandRunner, RunCommand, register_runner
from castengine.contracts.enums import CommandAction, CommandCategory
from castengine.contracts.errors import RunCommandError


def _required(cmd: RunCommand, key: str) -> str:
    value = cmd.text(key)
    if not value:
        raise RunCommandError(f"missing '{key}': can not execute {cmd.self_info()}")
    return value


def _port(cmd: RunCommand) -> int:
    port = cmd.text("port")
    try:
        return int(port) if port else DEFAULT_RPC_PORT
    except ValueError:
        raise RunCommandError(f"invalid rpc port '{port}'") from None


@register_runner(CommandCategory.CSTOR, CommandCategory.SNAPSHOT)
class CstorSnapshotCommand(CommandRunner):
    """Create or delete a cstor snapshot.

    Data keys:
        ip: Address of the target's RPC endpoint
        volname: Volume name
        snapname: Snapshot name
    """

    actions = {
        CommandAction.CREATE: "create",
        CommandAction.DELETE: "delete",
    }

    def create(self) -> Any:
        ip, volname, snapname = (_required(self.cmd, k) for k in ("ip", "volname", "snapname"))
        client = self.cmd.runtime.rpc(ip, _port(self.cmd))
        try:
            return client.create_snapshot(volname, snapname)
        finally:
            client.close()

    def delete(self) -> Any:
        ip, volname, snapname = (_required(self.cmd, k) for k in ("ip", "volname", "snapname"))
        client = self.cmd.runtime.rpc(ip, _port(self.cmd))
        try:
            return client.delete_snapshot(volname, snapname)
        finally:
            client.close()


@register_runner(CommandCategory.CSTOR, CommandCategory.VOLUME)
class CstorVolumeCommand(CommandRunner):
    """Resize a cstor volume.

    Data keys:
        ip: Address of the target's RPC endpoint
        volname: Volume name
        capacity: New size, e.g. ``10G``
    """

    actions = {CommandAction.UPDATE: "update"}

    def update(self) -> Any:
        ip, volname, capacity = (_required(self.cmd, k) for k in ("ip", "volname", "capacity"))
        client = self.cmd.runtime.rpc(ip, _port(self.cmd))
        try:
            return client.resize_volume(volname, capacity)
        finally:
            client.close()
