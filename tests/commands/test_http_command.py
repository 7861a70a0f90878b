"""Tests for generic HTTP run commands."""

import json

import httpx
import pytest


def _http_cmd(handler, action: str = "get", **data):
    from castengine.commands.command import CommandRuntime, RunCommand

    runtime = CommandRuntime(http_client=httpx.Client(transport=httpx.MockTransport(handler)))
    cmd = RunCommand(runtime).with_action(action).with_category("http")
    for key, value in data.items():
        cmd.with_data(key, value)
    return cmd


class TestValidateUrl:
    @pytest.mark.parametrize("url", ["", "10.0.0.5:9501/v1", "/v1/volumes"])
    def test_rejected(self, url: str) -> None:
        from castengine.commands.http import validate_url
        from castengine.contracts.errors import RunCommandError

        with pytest.raises(RunCommandError):
            validate_url(url)

    def test_accepted(self) -> None:
        from castengine.commands.http import validate_url

        assert validate_url("http://10.0.0.5:9501").host == "10.0.0.5"


class TestHttpCommand:
    """Verb x url invocations through a mock transport."""

    def test_get_joins_name(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"name": "pvc-1"})

        result = _http_cmd(handler, url="http://10.0.0.5:9501/v1/volumes/", name="pvc-1").run()
        assert result.error is None
        assert result.result == {"name": "pvc-1"}
        assert str(seen[0].url) == "http://10.0.0.5:9501/v1/volumes/pvc-1"
        assert seen[0].method == "GET"

    def test_post_sends_json_body(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"ok": True})

        result = _http_cmd(handler, "post", url="http://svc", body={"size": "5G"}).run()
        assert result.result == {"ok": True}
        assert json.loads(seen[0].content) == {"size": "5G"}

    def test_text_body_sent_verbatim(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        result = _http_cmd(handler, "put", url="http://svc", body="size=5G").run()
        assert result.result is None
        assert seen[0].content == b"size=5G"

    def test_without_unmarshal_returns_text(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="pong")

        result = _http_cmd(handler, url="http://svc/ping", unmarshal="false").run()
        assert result.result == "pong"

    def test_error_status_recorded(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, text="no such volume")

        result = _http_cmd(handler, "delete", url="http://svc/v1/volumes", name="pvc-9").run()
        assert result.result is None
        assert "status 404" in str(result.error)
        assert "no such volume" in result.debug["error"][0]

    def test_invalid_json_recorded(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="{not json")

        result = _http_cmd(handler, url="http://svc").run()
        assert "failed to unmarshal" in str(result.error)

    def test_transport_error_recorded(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = _http_cmd(handler, url="http://svc").run()
        assert isinstance(result.error, httpx.ConnectError)

    def test_missing_url_recorded(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        result = _http_cmd(handler).run()
        assert "missing url" in str(result.error)
