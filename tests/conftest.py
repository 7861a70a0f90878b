# tests/conftest.py
"""Shared test fixtures and helpers.

This module provides an in-memory cluster double that records every
client call, so engine tests can run whole templates without an API
server.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/
"""

import json
import os
from collections.abc import Mapping
from typing import Any, NamedTuple

import pytest
from hypothesis import Phase, Verbosity, settings

from castengine.contracts.enums import PatchType
from castengine.contracts.errors import ResourceNotFoundError
from castengine.core.values import ValueContext
from castengine.engine.executors import TaskRuntime

# =============================================================================
# Hypothesis Configuration
# =============================================================================

# CI profile: Fast tests for continuous integration
settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

# Nightly profile: Thorough testing for scheduled runs
settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Debug profile: Minimal examples with verbose output for debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

# Load profile from environment, default to "ci"
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Cluster double
# =============================================================================


class Call(NamedTuple):
    operation: str
    namespace: str
    args: tuple[Any, ...]


class FakeCluster:
    """In-memory cluster shared by the namespace-scoped FakeClusterClients.

    Usage:
        cluster.respond("get_deployment", {"metadata": {"name": "d1"}})
        cluster.respond("list_pods", {"items": []}, namespace="b")
        cluster.respond("delete_deployment", ClusterClientError("boom"))

    Several payloads for one operation are served in turn, the last one
    repeating. Exceptions are raised instead of returned.
    """

    def __init__(self) -> None:
        self.calls: list[Call] = []
        self._responses: dict[tuple[str, str | None], list[Any]] = {}

    def respond(self, operation: str, *payloads: Any, namespace: str | None = None) -> None:
        self._responses[(operation, namespace)] = list(payloads)

    def factory(self, namespace: str) -> "FakeClusterClient":
        return FakeClusterClient(self, namespace)

    def calls_to(self, operation: str) -> list[Call]:
        return [call for call in self.calls if call.operation == operation]

    def answer(self, operation: str, namespace: str, args: tuple[Any, ...], default: Any) -> bytes | None:
        self.calls.append(Call(operation, namespace, args))
        queue = self._responses.get((operation, namespace)) or self._responses.get((operation, None))
        if not queue:
            payload = default
        elif len(queue) > 1:
            payload = queue.pop(0)
        else:
            payload = queue[0]
        if isinstance(payload, BaseException):
            raise payload
        if payload is None:
            return None
        return json.dumps(payload).encode("utf-8")


class FakeClusterClient:
    """ClusterClient double answering from a FakeCluster."""

    def __init__(self, cluster: FakeCluster, namespace: str) -> None:
        self.cluster = cluster
        self.namespace = namespace

    def _answer(self, operation: str, *args: Any, default: Any = None) -> bytes | None:
        return self.cluster.answer(operation, self.namespace, args, default)

    def _missing(self, name: str) -> ResourceNotFoundError:
        return ResourceNotFoundError(f"'{name}' not found in '{self.namespace}'")

    def create_deployment(self, api_version: str, deployment: Mapping[str, Any]) -> bytes:
        return self._answer("create_deployment", api_version, dict(deployment), default=dict(deployment))

    def get_deployment(self, api_version: str, name: str) -> bytes:
        return self._answer("get_deployment", api_version, name, default=self._missing(name))

    def patch_deployment(self, api_version: str, name: str, patch_type: PatchType, body: bytes) -> bytes:
        return self._answer(
            "patch_deployment", api_version, name, patch_type, body, default={"metadata": {"name": name}}
        )

    def delete_deployment(self, api_version: str, name: str) -> None:
        self._answer("delete_deployment", api_version, name)

    def list_deployments(self, api_version: str, options: Mapping[str, Any]) -> bytes:
        return self._answer("list_deployments", api_version, dict(options), default={"items": []})

    def create_service(self, service: Mapping[str, Any]) -> bytes:
        return self._answer("create_service", dict(service), default=dict(service))

    def patch_service(self, name: str, patch_type: PatchType, body: bytes) -> bytes:
        return self._answer("patch_service", name, patch_type, body, default={"metadata": {"name": name}})

    def delete_service(self, name: str) -> None:
        self._answer("delete_service", name)

    def list_services(self, options: Mapping[str, Any]) -> bytes:
        return self._answer("list_services", dict(options), default={"items": []})

    def list_pods(self, options: Mapping[str, Any]) -> bytes:
        return self._answer("list_pods", dict(options), default={"items": []})

    def get_pvc(self, name: str) -> bytes:
        return self._answer("get_pvc", name, default=self._missing(name))

    def list_pvcs(self, options: Mapping[str, Any]) -> bytes:
        return self._answer("list_pvcs", dict(options), default={"items": []})

    def get_storage_pool(self, name: str) -> bytes:
        return self._answer("get_storage_pool", name, default=self._missing(name))

    def get_config_map(self, name: str) -> bytes:
        return self._answer("get_config_map", name, default=self._missing(name))

    def get_run_task(self, name: str) -> bytes:
        return self._answer("get_run_task", name, default=self._missing(name))

    def get_cas_template(self, name: str) -> bytes:
        return self._answer("get_cas_template", name, default=self._missing(name))


@pytest.fixture
def cluster() -> FakeCluster:
    """Fresh in-memory cluster."""
    return FakeCluster()


@pytest.fixture
def runtime(cluster: FakeCluster) -> TaskRuntime:
    """Task runtime whose clients answer from ``cluster``."""
    return TaskRuntime.create(cluster.factory)


@pytest.fixture
def values() -> ValueContext:
    return ValueContext()


# Re-export for convenient import
__all__ = ["Call", "FakeCluster", "FakeClusterClient"]
