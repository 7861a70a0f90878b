# src/castengine/commands/jiva.py
"""Run commands against a jiva volume controller."""

from __future__ import annotations

from typing import Any

from castengine.commands.command import CommandRunner, register_runner
from castengine.commands.http import decode_response, validate_url
from castengine.contracts.enums import CommandAction, CommandCategory
from castengine.contracts.errors import RunCommandError
from castengine.core.jsonpath import JSONPath

VOLUMES_PATH = "/v1/volumes"


@register_runner(CommandCategory.JIVA, CommandCategory.VOLUME)
class JivaVolumeCommand(CommandRunner):
    """Jiva volume operations.

    Data keys:
        url: Controller base URL, e.g. ``http://10.0.0.5:9501``
        name: Volume name
    """

    actions = {CommandAction.DELETE: "delete"}

    def delete(self) -> Any:
        """Delete the named volume through its delete-action link."""
        base = str(validate_url(self.cmd.text("url"))).rstrip("/")
        name = self.cmd.text("name")
        if not name:
            raise RunCommandError("missing volume name: can not delete jiva volume")
        client = self.cmd.runtime.http()
        volumes = decode_response(client.get(base + VOLUMES_PATH), unmarshal=True)
        escaped = name.replace("'", "\\'")
        link = JSONPath(f"{{.data[?(@.name=='{escaped}')].actions.deletevolume}}").render(volumes)
        if not link:
            raise RunCommandError(f"failed to delete jiva volume '{name}': delete link not found")
        self.cmd.msgs.add_info(f"deleting jiva volume '{name}' via '{link}'")
        return decode_response(client.delete(link), unmarshal=self.cmd.flag("unmarshal", True))
