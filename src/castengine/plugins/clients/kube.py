# src/castengine/plugins/clients/kube.py
"""Cluster client: typed operations against the Kubernetes REST API.

Every operation returns the raw JSON bytes of the API response so the
engine's projections stay uniform across resource kinds. A client is
scoped to one namespace; clients built by the same factory share one
connection pool.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

import httpx
import structlog

from castengine.contracts.enums import PatchType
from castengine.contracts.errors import ClusterClientError, ResourceNotFoundError
from castengine.core.cancel import CancelToken
from castengine.core.config import ClusterSettings

OPENEBS_API_VERSION = "openebs.io/v1alpha1"

LIST_OPTION_PARAMS = ("labelSelector", "fieldSelector", "limit", "resourceVersion")


@runtime_checkable
class ClusterClient(Protocol):
    """Typed CRUD, list, and patch operations scoped to one namespace.

    Errors are raised as ClusterClientError (ResourceNotFoundError for a
    missing resource) and surface verbatim to the meta-task executor.
    """

    namespace: str

    def create_deployment(self, api_version: str, deployment: Mapping[str, Any]) -> bytes: ...

    def get_deployment(self, api_version: str, name: str) -> bytes: ...

    def patch_deployment(self, api_version: str, name: str, patch_type: PatchType, body: bytes) -> bytes: ...

    def delete_deployment(self, api_version: str, name: str) -> None: ...

    def list_deployments(self, api_version: str, options: Mapping[str, Any]) -> bytes: ...

    def create_service(self, service: Mapping[str, Any]) -> bytes: ...

    def patch_service(self, name: str, patch_type: PatchType, body: bytes) -> bytes: ...

    def delete_service(self, name: str) -> None: ...

    def list_services(self, options: Mapping[str, Any]) -> bytes: ...

    def list_pods(self, options: Mapping[str, Any]) -> bytes: ...

    def get_pvc(self, name: str) -> bytes: ...

    def list_pvcs(self, options: Mapping[str, Any]) -> bytes: ...

    def get_storage_pool(self, name: str) -> bytes: ...

    def get_config_map(self, name: str) -> bytes: ...

    def get_run_task(self, name: str) -> bytes: ...

    def get_cas_template(self, name: str) -> bytes: ...


ClusterClientFactory = Callable[[str], ClusterClient]


def api_prefix(api_version: str) -> str:
    """``v1`` lives under ``/api``; grouped versions under ``/apis/<group>``."""
    api_version = api_version.strip().strip("/")
    if "/" not in api_version:
        return f"/api/{api_version}"
    return f"/apis/{api_version}"


def list_params(options: Mapping[str, Any]) -> dict[str, str]:
    return {key: str(options[key]) for key in LIST_OPTION_PARAMS if options.get(key) not in (None, "")}


class KubeHTTPClient:
    """ClusterClient over httpx.

    Example:
        client = KubeHTTPClient("openebs", ClusterSettings(api_server="https://10.0.0.1:6443"))
        raw = client.list_pods({"labelSelector": "openebs.io/controller=jiva-controller"})
    """

    def __init__(
        self,
        namespace: str,
        settings: ClusterSettings | None = None,
        *,
        http_client: httpx.Client | None = None,
        cancel: CancelToken | None = None,
    ) -> None:
        self.namespace = namespace
        self._settings = settings or ClusterSettings()
        self._client = http_client or build_http_client(self._settings)
        self._cancel = cancel or CancelToken()

    def _path(self, api_version: str, plural: str, name: str = "", *, namespaced: bool = True) -> str:
        path = api_prefix(api_version)
        if namespaced:
            path += f"/namespaces/{self.namespace}"
        path += f"/{plural}"
        if name:
            path += f"/{name}"
        return path

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        content: bytes | None = None,
        content_type: str | None = None,
    ) -> bytes:
        self._cancel.raise_if_cancelled()
        headers = {"Content-Type": content_type} if content_type else None
        logger = structlog.get_logger(__name__)
        logger.debug("Cluster request", method=method, path=path, namespace=self.namespace)
        try:
            response = self._client.request(
                method, path, params=params, json=json, content=content, headers=headers
            )
        except httpx.HTTPError as e:
            raise ClusterClientError(f"{method} {path} failed: {e}") from e
        if response.status_code == 404:
            raise ResourceNotFoundError(f"{method} {path}: not found: {response.text.strip()}")
        if response.is_error:
            raise ClusterClientError(
                f"{method} {path} failed with status {response.status_code}: {response.text.strip()}",
                status_code=response.status_code,
            )
        return response.content

    # -- deployments -----------------------------------------------------------

    def create_deployment(self, api_version: str, deployment: Mapping[str, Any]) -> bytes:
        return self._request("POST", self._path(api_version, "deployments"), json=dict(deployment))

    def get_deployment(self, api_version: str, name: str) -> bytes:
        return self._request("GET", self._path(api_version, "deployments", name))

    def patch_deployment(self, api_version: str, name: str, patch_type: PatchType, body: bytes) -> bytes:
        return self._request(
            "PATCH",
            self._path(api_version, "deployments", name),
            content=body,
            content_type=patch_type.media_type,
        )

    def delete_deployment(self, api_version: str, name: str) -> None:
        self._request("DELETE", self._path(api_version, "deployments", name))

    def list_deployments(self, api_version: str, options: Mapping[str, Any]) -> bytes:
        return self._request("GET", self._path(api_version, "deployments"), params=list_params(options))

    # -- services --------------------------------------------------------------

    def create_service(self, service: Mapping[str, Any]) -> bytes:
        return self._request("POST", self._path("v1", "services"), json=dict(service))

    def patch_service(self, name: str, patch_type: PatchType, body: bytes) -> bytes:
        return self._request(
            "PATCH",
            self._path("v1", "services", name),
            content=body,
            content_type=patch_type.media_type,
        )

    def delete_service(self, name: str) -> None:
        self._request("DELETE", self._path("v1", "services", name))

    def list_services(self, options: Mapping[str, Any]) -> bytes:
        return self._request("GET", self._path("v1", "services"), params=list_params(options))

    # -- pods, claims, pools ---------------------------------------------------

    def list_pods(self, options: Mapping[str, Any]) -> bytes:
        return self._request("GET", self._path("v1", "pods"), params=list_params(options))

    def get_pvc(self, name: str) -> bytes:
        return self._request("GET", self._path("v1", "persistentvolumeclaims", name))

    def list_pvcs(self, options: Mapping[str, Any]) -> bytes:
        return self._request("GET", self._path("v1", "persistentvolumeclaims"), params=list_params(options))

    def get_storage_pool(self, name: str) -> bytes:
        return self._request("GET", self._path(OPENEBS_API_VERSION, "storagepools", name, namespaced=False))

    # -- task specs ------------------------------------------------------------

    def get_config_map(self, name: str) -> bytes:
        return self._request("GET", self._path("v1", "configmaps", name))

    def get_run_task(self, name: str) -> bytes:
        return self._request("GET", self._path(OPENEBS_API_VERSION, "runtasks", name))

    def get_cas_template(self, name: str) -> bytes:
        return self._request("GET", self._path(OPENEBS_API_VERSION, "castemplates", name, namespaced=False))


def build_http_client(settings: ClusterSettings) -> httpx.Client:
    """HTTP client for the API server described by ``settings``."""
    headers: dict[str, str] = {"Accept": "application/json"}
    token = settings.bearer_token()
    if token:
        headers["Authorization"] = f"Bearer {token}"
    verify: bool | str = settings.verify_tls
    if settings.verify_tls and settings.ca_file is not None:
        verify = str(settings.ca_file)
    return httpx.Client(
        base_url=settings.api_server,
        headers=headers,
        verify=verify,
        timeout=settings.timeout_seconds,
    )


def kube_client_factory(
    settings: ClusterSettings,
    *,
    http_client: httpx.Client | None = None,
    cancel: CancelToken | None = None,
) -> ClusterClientFactory:
    """Factory of namespace-scoped clients sharing one connection pool."""
    shared = http_client or build_http_client(settings)

    def factory(namespace: str) -> ClusterClient:
        return KubeHTTPClient(namespace, settings, http_client=shared, cancel=cancel)

    return factory
