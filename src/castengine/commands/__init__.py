"""Run-command DSL: commands built in templates and the runners executing them.

Importing this package registers every runner (jiva volume, http, cstor
snapshot, cstor volume).
"""

from castengine.commands import jiva  # noqa: F401
from castengine.commands import http  # noqa: F401
from castengine.commands import cstor  # noqa: F401
from castengine.commands.command import CommandRuntime, RunCommand, query_selects
from castengine.commands.store import KVStore, RunAlways, StoreCommand

__all__ = [
    "CommandRuntime",
    "KVStore",
    "RunAlways",
    "RunCommand",
    "StoreCommand",
    "query_selects",
]
