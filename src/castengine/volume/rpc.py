# src/castengine/volume/rpc.py
"""JSON-over-HTTP endpoint for block-volume commands, and its client.

The endpoint listens on port 7777 and exposes CreateSnapshot,
DeleteSnapshot and ResizeVolume. Each reply carries ``status``, a JSON
string of the form ``{"response": "<status word>"}``.
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from castengine.contracts.errors import RunCommandError
from castengine.volume.istgt import ERR_RESPONSE, CommandOutcome, IstgtController

PROTOCOL_VERSION = 1
VOLUME_RPC_PORT = 7777

SNAPSHOT_CREATE_PATH = "/v1alpha1/snapshot/create"
SNAPSHOT_DELETE_PATH = "/v1alpha1/snapshot/delete"
VOLUME_RESIZE_PATH = "/v1alpha1/volume/resize"


class SnapshotRequest(BaseModel):
    version: int = PROTOCOL_VERSION
    volume: str = Field(min_length=1)
    snapname: str = Field(min_length=1)


class ResizeRequest(BaseModel):
    volume: str = Field(min_length=1)
    size: str = Field(min_length=1)


class CommandReply(BaseModel):
    status: str


def _reply(outcome: CommandOutcome) -> CommandReply:
    if outcome.error is not None:
        raise HTTPException(status_code=502, detail={"status": outcome.status, "error": outcome.error})
    return CommandReply(status=outcome.status)


def create_app(controller: IstgtController) -> FastAPI:
    """Build the RPC application around an explicit controller."""
    app = FastAPI(title="castengine volume commands", version="0.1.0")

    @app.post(SNAPSHOT_CREATE_PATH, response_model=CommandReply)
    def create_snapshot(request: SnapshotRequest) -> CommandReply:
        return _reply(controller.create_snapshot(request.volume, request.snapname))

    @app.post(SNAPSHOT_DELETE_PATH, response_model=CommandReply)
    def delete_snapshot(request: SnapshotRequest) -> CommandReply:
        return _reply(controller.delete_snapshot(request.volume, request.snapname))

    @app.post(VOLUME_RESIZE_PATH, response_model=CommandReply)
    def resize_volume(request: ResizeRequest) -> CommandReply:
        try:
            outcome = controller.resize_volume(request.volume, request.size)
        except RunCommandError as e:
            raise HTTPException(status_code=500, detail=str(e)) from e
        return _reply(outcome)

    return app


class VolumeRPCClient:
    """Client of the block-volume RPC endpoint.

    Each call returns the decoded status mapping. A status whose response
    contains ERR raises RunCommandError; transport failures propagate as
    httpx errors.
    """

    def __init__(
        self,
        ip: str,
        port: int = VOLUME_RPC_PORT,
        *,
        timeout: float = 90.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=f"http://{ip}:{port}",
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> VolumeRPCClient:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _call(self, path: str, payload: dict[str, Any], failure: str) -> dict[str, Any]:
        response = self._client.post(path, json=payload)
        if response.is_error:
            raise RunCommandError(f"{failure} with status {response.status_code}: {response.text.strip()}")
        try:
            status = json.loads(response.json()["status"])
        except (KeyError, TypeError, ValueError) as e:
            raise RunCommandError(f"{failure}: malformed reply {response.text.strip()!r}") from e
        if not isinstance(status, dict):
            raise RunCommandError(f"{failure}: malformed status {status!r}")
        if ERR_RESPONSE in status.get("response", ""):
            raise RunCommandError(f"{failure} with error : {status.get('response')}")
        structlog.get_logger(__name__).debug("Volume command succeeded", path=path, status=status)
        return status

    def create_snapshot(self, volume: str, snapshot: str) -> dict[str, Any]:
        return self._call(
            SNAPSHOT_CREATE_PATH,
            {"version": PROTOCOL_VERSION, "volume": volume, "snapname": snapshot},
            "Snapshot create failed",
        )

    def delete_snapshot(self, volume: str, snapshot: str) -> dict[str, Any]:
        return self._call(
            SNAPSHOT_DELETE_PATH,
            {"version": PROTOCOL_VERSION, "volume": volume, "snapname": snapshot},
            "Snapshot deletion failed",
        )

    def resize_volume(self, volume: str, size: str) -> dict[str, Any]:
        return self._call(VOLUME_RESIZE_PATH, {"volume": volume, "size": size}, "Volume resize failed")
