# src/castengine/engine/query.py
"""Projection of raw task results into the value context.

Each query names an alias and a JSONPath. The path may be left empty when
the alias is a well-known key with a registered path (``objectName``).
An optional verify clause checks the projected value's count.
"""

from __future__ import annotations

from typing import Any

from castengine.contracts.enums import TaskResultKey
from castengine.contracts.errors import TemplateError, VerifyError
from castengine.contracts.task import Query
from castengine.core.jsonpath import NO_VALUE, JSONPath, load_document

WELL_KNOWN_PATHS: dict[str, str] = {
    TaskResultKey.OBJECT_NAME.value: "{.metadata.name}",
}


def resolve_path(query: Query) -> str:
    """Explicit path first, then the well-known registry.

    Raises:
        TemplateError: If neither yields a path
    """
    path = query.path.strip()
    if path:
        return path
    registered = WELL_KNOWN_PATHS.get(query.alias)
    if registered:
        return registered
    raise TemplateError(f"empty path for query alias '{query.alias}'")


def _verify(query: Query, value: str) -> None:
    verify = query.verify
    if verify is None or not verify.count.strip():
        return
    try:
        expected = int(verify.count)
    except ValueError:
        raise TemplateError(f"invalid verify count '{verify.count}' for alias '{query.alias}'") from None
    if verify.split:
        actual = len(value.strip(verify.split).split(verify.split))
    else:
        try:
            actual = int(value.strip())
        except ValueError:
            raise VerifyError(
                f"verify failed for alias '{query.alias}': value '{value}' is not a count"
            ) from None
    if actual != expected:
        raise VerifyError(
            f"verify failed for alias '{query.alias}': expected count {expected}, got {actual} (value '{value}')"
        )


def query_result(raw: Any, queries: list[Query], *, with_object_name: bool = True) -> dict[str, str]:
    """Run ``queries`` against a raw JSON result.

    Unmatched paths record ``<no value>``. For non-list actions the
    ``objectName`` alias is added when no query provides it.

    Raises:
        TemplateError: If a path is empty or malformed
        VerifyError: If a verify clause fails
    """
    document = load_document(raw)
    results: dict[str, str] = {}
    for query in queries:
        text, matched = JSONPath(resolve_path(query)).execute(document)
        value = text if matched else NO_VALUE
        _verify(query, value)
        results[query.alias] = value
    object_name = TaskResultKey.OBJECT_NAME.value
    if with_object_name and object_name not in results:
        text, matched = JSONPath(WELL_KNOWN_PATHS[object_name]).execute(document)
        results[object_name] = text if matched else NO_VALUE
    return results
