# src/castengine/plugins/clients/__init__.py
"""Clients the engine consumes: the cluster client and task-spec fetchers.

Example:
    from castengine.plugins.clients import KubeHTTPClient, ClusterTaskSpecFetcher

    client = KubeHTTPClient("openebs", settings.cluster)
    fetcher = ClusterTaskSpecFetcher("openebs", client)
    task = fetcher.fetch("jiva-volume-create-listtargetservice-default")
"""

from castengine.plugins.clients.fetcher import (
    ClusterTaskSpecFetcher,
    DictTaskSpecFetcher,
    FileTaskSpecFetcher,
    TaskSpecFetcher,
)
from castengine.plugins.clients.kube import (
    ClusterClient,
    ClusterClientFactory,
    KubeHTTPClient,
    kube_client_factory,
)

__all__ = [
    "ClusterClient",
    "ClusterClientFactory",
    "ClusterTaskSpecFetcher",
    "DictTaskSpecFetcher",
    "FileTaskSpecFetcher",
    "KubeHTTPClient",
    "TaskSpecFetcher",
    "kube_client_factory",
]
