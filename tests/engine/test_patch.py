"""Tests for patch normalization."""

import json

import pytest


class TestBuildPatch:
    def test_strategic_patch_is_canonical_json(self) -> None:
        from castengine.contracts.enums import PatchType
        from castengine.engine.patch import build_patch

        request = build_patch(
            "strategic",
            """
spec:
  template:
    metadata:
      labels:
        b: "2"
        a: "1"
""",
        )
        assert request.patch_type == PatchType.STRATEGIC
        assert request.media_type == "application/strategic-merge-patch+json"
        assert request.body == b'{"spec":{"template":{"metadata":{"labels":{"a":"1","b":"2"}}}}}'

    def test_json_patch_is_a_list(self) -> None:
        from castengine.engine.patch import build_patch

        request = build_patch("json", "- op: replace\n  path: /spec/replicas\n  value: 2\n")
        assert json.loads(request.body) == [{"op": "replace", "path": "/spec/replicas", "value": 2}]
        assert request.media_type == "application/json-patch+json"

    @pytest.mark.parametrize(
        ("patch_type", "specs", "message"),
        [
            ("json", "spec: {}", "expected a list"),
            ("merge", "- a", "expected a dict"),
            ("strategic", "", "empty patch document"),
            ("xml", "a: 1", "unsupported patch type"),
            ("merge", "a: [1", "invalid patch yaml"),
            ("merge", "a: .nan", "invalid patch document"),
        ],
    )
    def test_invalid(self, patch_type: str, specs: str, message: str) -> None:
        from castengine.contracts.errors import TemplateError
        from castengine.engine.patch import build_patch

        with pytest.raises(TemplateError, match=message):
            build_patch(patch_type, specs)

    def test_from_task_patch(self) -> None:
        from castengine.contracts.task import TaskPatch
        from castengine.engine.patch import from_task_patch

        patch = TaskPatch.from_dict({"type": "merge", "pspec": "metadata:\n  labels:\n    x: y\n"})
        assert from_task_patch(patch).body == b'{"metadata":{"labels":{"x":"y"}}}'
