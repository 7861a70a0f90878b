# src/castengine/engine/patch.py
"""Normalizes YAML patch documents into wire bytes and a media type."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import yaml

from castengine.contracts.enums import PatchType
from castengine.contracts.errors import TemplateError
from castengine.contracts.task import TaskPatch
from castengine.core.canonical import canonical_json_bytes


@dataclass(frozen=True)
class PatchRequest:
    """A patch ready to send: canonical JSON body plus its patch type."""

    patch_type: PatchType
    body: bytes

    @property
    def media_type(self) -> str:
        return self.patch_type.media_type


def build_patch(patch_type: PatchType | str, specs: str) -> PatchRequest:
    """Parse ``specs`` as YAML and re-serialize it as canonical JSON.

    JSON patches are lists of operations; merge and strategic patches are
    mappings.

    Raises:
        TemplateError: If the patch type is unknown or the document is invalid
    """
    try:
        kind = PatchType(patch_type)
    except ValueError:
        raise TemplateError(f"unsupported patch type '{patch_type}'") from None
    try:
        document: Any = yaml.safe_load(specs)
    except yaml.YAMLError as e:
        raise TemplateError(f"invalid patch yaml: {e}") from e
    if document is None:
        raise TemplateError("empty patch document")
    expected = list if kind == PatchType.JSON else dict
    if not isinstance(document, expected):
        raise TemplateError(
            f"invalid {kind.value} patch: expected a {expected.__name__}, got {type(document).__name__}"
        )
    try:
        body = canonical_json_bytes(document)
    except ValueError as e:
        raise TemplateError(f"invalid patch document: {e}") from e
    return PatchRequest(patch_type=kind, body=body)


def from_task_patch(patch: TaskPatch) -> PatchRequest:
    return build_patch(patch.type, patch.pspec)
