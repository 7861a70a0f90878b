"""Tests for the volume RPC endpoint and client."""

import json
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient


class ScriptedController:
    """Controller double returning canned outcomes."""

    def __init__(self, status: str = "OK", error: str | None = None, resize_error: str | None = None) -> None:
        self.status = status
        self.error = error
        self.resize_error = resize_error
        self.calls: list[tuple[str, ...]] = []

    def _outcome(self, *call: str):
        from castengine.volume.istgt import CommandOutcome, status_json

        self.calls.append(call)
        return CommandOutcome(status_json(self.status), self.error)

    def create_snapshot(self, volume: str, snapshot: str):
        return self._outcome("create", volume, snapshot)

    def delete_snapshot(self, volume: str, snapshot: str):
        return self._outcome("delete", volume, snapshot)

    def resize_volume(self, volume: str, size: str):
        from castengine.contracts.errors import RunCommandError

        if self.resize_error is not None:
            raise RunCommandError(self.resize_error)
        return self._outcome("resize", volume, size)


def _client(controller: ScriptedController) -> TestClient:
    from castengine.volume.rpc import create_app

    return TestClient(create_app(controller))  # type: ignore[arg-type]


class TestEndpoint:
    def test_create_snapshot(self) -> None:
        controller = ScriptedController("OK SNAPCREATE")
        response = _client(controller).post(
            "/v1alpha1/snapshot/create", json={"version": 1, "volume": "vol1", "snapname": "s1"}
        )
        assert response.status_code == 200
        assert json.loads(response.json()["status"]) == {"response": "OK SNAPCREATE"}
        assert controller.calls == [("create", "vol1", "s1")]

    def test_delete_snapshot(self) -> None:
        controller = ScriptedController("OK SNAPDESTROY")
        response = _client(controller).post("/v1alpha1/snapshot/delete", json={"volume": "vol1", "snapname": "s1"})
        assert response.status_code == 200
        assert controller.calls == [("delete", "vol1", "s1")]

    def test_resize(self) -> None:
        controller = ScriptedController("OK RESIZE")
        response = _client(controller).post("/v1alpha1/volume/resize", json={"volume": "vol1", "size": "10G"})
        assert response.status_code == 200
        assert controller.calls == [("resize", "vol1", "10G")]

    def test_empty_fields_rejected(self) -> None:
        response = _client(ScriptedController()).post(
            "/v1alpha1/snapshot/create", json={"volume": "", "snapname": "s1"}
        )
        assert response.status_code == 422

    def test_channel_error_is_bad_gateway(self) -> None:
        response = _client(ScriptedController("ERR", error="connection refused")).post(
            "/v1alpha1/snapshot/create", json={"volume": "vol1", "snapname": "s1"}
        )
        assert response.status_code == 502
        assert response.json()["detail"]["error"] == "connection refused"

    def test_resize_config_error(self) -> None:
        controller = ScriptedController(resize_error="failed to get the Storage details from 'x'")
        response = _client(controller).post("/v1alpha1/volume/resize", json={"volume": "vol1", "size": "10G"})
        assert response.status_code == 500
        assert "Storage details" in response.json()["detail"]


class TestVolumeRPCClient:
    """Client against a mock transport."""

    def _rpc(self, handler):
        from castengine.volume.rpc import VolumeRPCClient

        return VolumeRPCClient("10.0.0.7", transport=httpx.MockTransport(handler))

    def test_create_snapshot(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"status": '{"response":"OK SNAPCREATE"}'})

        with self._rpc(handler) as rpc:
            assert rpc.create_snapshot("vol1", "s1") == {"response": "OK SNAPCREATE"}
        assert str(seen[0].url) == "http://10.0.0.7:7777/v1alpha1/snapshot/create"
        assert json.loads(seen[0].content) == {"version": 1, "volume": "vol1", "snapname": "s1"}

    def test_resize_payload(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"status": '{"response":"OK RESIZE"}'})

        with self._rpc(handler) as rpc:
            rpc.resize_volume("vol1", "10G")
        assert seen[0].url.path == "/v1alpha1/volume/resize"
        assert json.loads(seen[0].content) == {"volume": "vol1", "size": "10G"}

    def test_err_response_raises(self) -> None:
        from castengine.contracts.errors import RunCommandError

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"status": '{"response":"ERR SNAPDESTROY"}'})

        with self._rpc(handler) as rpc, pytest.raises(RunCommandError, match="Snapshot deletion failed"):
            rpc.delete_snapshot("vol1", "s1")

    def test_error_status_raises(self) -> None:
        from castengine.contracts.errors import RunCommandError

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, json={"detail": {"status": '{"response":"ERR"}'}})

        with self._rpc(handler) as rpc, pytest.raises(RunCommandError, match="status 502"):
            rpc.create_snapshot("vol1", "s1")

    @pytest.mark.parametrize(
        "body",
        [{"detail": "ok"}, {"status": "not json"}, {"status": "[1, 2]"}, [1, 2], {"status": None}],
    )
    def test_malformed_reply_raises(self, body: object) -> None:
        from castengine.contracts.errors import RunCommandError

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=body)

        with self._rpc(handler) as rpc, pytest.raises(RunCommandError, match="Snapshot create failed: malformed"):
            rpc.create_snapshot("vol1", "s1")

    def test_malformed_reply_recorded_by_command(self) -> None:
        from castengine.commands.command import CommandRuntime, RunCommand
        from castengine.volume.rpc import VolumeRPCClient

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>proxy</html>")

        runtime = CommandRuntime(
            rpc_client_factory=lambda ip, port: VolumeRPCClient(ip, port, transport=httpx.MockTransport(handler))
        )
        cmd = RunCommand(runtime).with_action("delete").with_category("cstor").with_category("snapshot")
        for key, value in {"ip": "10.0.0.7", "volname": "vol1", "snapname": "s1"}.items():
            cmd.with_data(key, value)
        result = cmd.run()
        assert result.result is None
        assert "malformed reply" in str(result.error)


class TestEndToEnd:
    def test_resize_edits_config(self, tmp_path: Path) -> None:
        from castengine.volume.istgt import IstgtController, RealFileOperator
        from castengine.volume.rpc import create_app

        class Control:
            def send_command(self, command: str) -> list[str]:
                return ["RESIZE", "OK RESIZE"]

        conf = tmp_path / "istgt.conf"
        conf.write_text("[LogicalUnit1]\n  LUN0 Storage 5G 32k\n")
        with TestClient(create_app(IstgtController(Control(), RealFileOperator(), conf))) as http:
            response = http.post("/v1alpha1/volume/resize", json={"volume": "vol1", "size": "10G"})
        assert json.loads(response.json()["status"]) == {"response": "OK RESIZE"}
        assert "LUN0 Storage 10G 32k" in conf.read_text()
