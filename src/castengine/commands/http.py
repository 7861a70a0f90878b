# src/castengine/commands/http.py
"""Generic HTTP run commands: ``verb x (url | url + name)``."""

from __future__ import annotations

import json
from typing import Any

import httpx

from castengine.commands.command import CommandRunner, register_runner
from castengine.contracts.enums import CommandAction, CommandCategory
from castengine.contracts.errors import RunCommandError


def validate_url(url: str) -> httpx.URL:
    """Parse ``url``; it must carry a scheme and a host.

    Raises:
        RunCommandError: If the URL is missing or incomplete
    """
    if not url:
        raise RunCommandError("missing url: can not invoke http request")
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise RunCommandError(f"invalid url '{url}': {e}") from e
    if not parsed.scheme or not parsed.host:
        raise RunCommandError(f"invalid url '{url}': scheme and host are required")
    return parsed


def decode_response(response: httpx.Response, unmarshal: bool) -> Any:
    """Raise on error status, then return the JSON or text body.

    Raises:
        RunCommandError: If the response status is not 2xx or the body is not JSON
    """
    if response.is_error:
        raise RunCommandError(
            f"http {response.request.method} '{response.request.url}' failed "
            f"with status {response.status_code}: {response.text.strip()}"
        )
    if not unmarshal:
        return response.text
    if not response.content:
        return None
    try:
        return response.json()
    except json.JSONDecodeError as e:
        raise RunCommandError(f"failed to unmarshal http response: {e}") from e


@register_runner(CommandCategory.HTTP)
class HttpCommand(CommandRunner):
    """Invokes ``data.url`` (joined with ``data.name`` when present).

    Data keys:
        url: Base URL, required
        name: Optional resource name appended as a path segment
        body: Request body for post, put and patch; non-text bodies are sent as JSON
        unmarshal: Decode the response as JSON (default true)
    """

    actions = {
        CommandAction.GET: "get",
        CommandAction.DELETE: "delete",
        CommandAction.POST: "post",
        CommandAction.PUT: "put",
        CommandAction.PATCH: "patch",
    }

    def _url(self) -> str:
        base = str(validate_url(self.cmd.text("url")))
        name = self.cmd.text("name")
        if name:
            return base.rstrip("/") + "/" + name.lstrip("/")
        return base

    def _send(self, method: str) -> Any:
        kwargs: dict[str, Any] = {}
        body = self.cmd.data.get("body")
        if body is not None and method in ("POST", "PUT", "PATCH"):
            if isinstance(body, (str, bytes)):
                kwargs["content"] = body
            else:
                kwargs["json"] = body
        response = self.cmd.runtime.http().request(method, self._url(), **kwargs)
        return decode_response(response, self.cmd.flag("unmarshal", True))

    def get(self) -> Any:
        return self._send("GET")

    def delete(self) -> Any:
        return self._send("DELETE")

    def post(self) -> Any:
        return self._send("POST")

    def put(self) -> Any:
        return self._send("PUT")

    def patch(self) -> Any:
        return self._send("PATCH")
