"""Tests for post operations."""

import pytest

from castengine.core.values import ValueContext

DEPLOYMENTS = {
    "kind": "DeploymentList",
    "items": [
        {
            "metadata": {
                "name": "pvc-1-ctrl",
                "namespace": "openebs",
                "labels": {"openebs.io/controller": "jiva-controller"},
            }
        },
        {
            "metadata": {
                "name": "pvc-1-rep",
                "namespace": "openebs",
                "labels": {"openebs.io/replica": "jiva-replica"},
            }
        },
    ],
}

POST = """
operations:
  - run: getTupleList
    for: [--objectPath=RuntimeObject]
    withFilter: [--isLabel=openebs.io/controller=jiva-controller]
    withOutput: [--name, --namespace]
    as: deploys.controllers
"""


class TestParseFlags:
    def test_forms(self) -> None:
        from castengine.engine.post import parse_flags

        flags = parse_flags(["--kind=deploymentlist", "--jsonPath", "a.b", "--name"], frozenset({"name"}))
        assert flags == {"kind": ["deploymentlist"], "jsonPath": ["a.b"], "name": ["true"]}

    def test_repeated_flags_accumulate(self) -> None:
        from castengine.engine.post import parse_flags

        assert parse_flags(["--isLabel=a=b", "--isLabel=c:d"]) == {"isLabel": ["a=b", "c:d"]}

    def test_missing_value(self) -> None:
        from castengine.contracts.errors import TemplateError
        from castengine.engine.post import parse_flags

        with pytest.raises(TemplateError, match="missing value"):
            parse_flags(["--kind"])

    def test_not_a_flag(self) -> None:
        from castengine.contracts.errors import TemplateError
        from castengine.engine.post import parse_flags

        with pytest.raises(TemplateError, match="invalid post flag"):
            parse_flags(["kind"])


class TestPostExecutor:
    """Operations on a list task's result."""

    @pytest.mark.parametrize("rendered", ["", "  \n", "''", "some text", "a: 1"])
    def test_template_only_posts(self, rendered: str) -> None:
        from castengine.engine.post import PostExecutor

        assert PostExecutor.parse(rendered) is None

    def test_tuple_list(self, values: ValueContext) -> None:
        from castengine.contracts.enums import TaskAction
        from castengine.engine.post import PostExecutor

        values.set("RuntimeObject", DEPLOYMENTS)
        PostExecutor("deploys", "Deployment", TaskAction.LIST, values).execute(POST)
        assert values.get("TaskResult.deploys.controllers") == [
            {"name": "pvc-1-ctrl", "namespace": "openebs"}
        ]

    def test_label_filter_with_colon(self, values: ValueContext) -> None:
        from castengine.contracts.enums import TaskAction
        from castengine.engine.post import PostExecutor

        values.set("ListItems.deploys", DEPLOYMENTS)
        post = """
operations:
  - run: getTupleList
    for: [--kind=deploymentList, --jsonPath=.ListItems.deploys]
    withFilter: ["--isLabel=openebs.io/replica:jiva-replica"]
    withOutput: [--name]
    as: replicas
"""
        PostExecutor("deploys", "Deployment", TaskAction.GET, values).execute(post)
        assert values.get("TaskResult.replicas") == [{"name": "pvc-1-rep"}]

    def test_unsupported_kind(self, values: ValueContext) -> None:
        from castengine.contracts.enums import TaskAction
        from castengine.contracts.errors import TemplateError
        from castengine.engine.post import PostExecutor

        post = "operations:\n  - run: getTupleList\n    as: x\n"
        with pytest.raises(TemplateError, match="unsupported kind for runtask post operation: podlist"):
            PostExecutor("pods", "Pod", TaskAction.LIST, values).execute(post)

    def test_unsupported_run(self, values: ValueContext) -> None:
        from castengine.contracts.enums import TaskAction
        from castengine.contracts.errors import TemplateError
        from castengine.engine.post import PostExecutor

        values.set("RuntimeObject", DEPLOYMENTS)
        post = "operations:\n  - run: getNames\n    as: x\n"
        with pytest.raises(TemplateError, match="unsupported runtask post operation"):
            PostExecutor("d", "Deployment", TaskAction.LIST, values).execute(post)

    def test_missing_list(self, values: ValueContext) -> None:
        from castengine.contracts.enums import TaskAction
        from castengine.contracts.errors import TemplateError
        from castengine.engine.post import PostExecutor

        post = "operations:\n  - run: getTupleList\n    as: x\n"
        with pytest.raises(TemplateError, match="no deployment list"):
            PostExecutor("d", "Deployment", TaskAction.LIST, values).execute(post)

    def test_result_without_as_is_not_saved(self, values: ValueContext) -> None:
        from castengine.contracts.enums import TaskAction
        from castengine.engine.post import PostExecutor

        values.set("RuntimeObject", DEPLOYMENTS)
        PostExecutor("d", "Deployment", TaskAction.LIST, values).execute(
            "operations:\n  - run: getTupleList\n    withOutput: [--name]\n"
        )
        assert values.get("TaskResult") == {}
