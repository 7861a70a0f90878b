"""Tests for task records parsed from YAML."""

import pytest

META = """
id: ctrl
apiVersion: apps/v1beta1
kind: Deployment
action: put
runNamespace: openebs
objectName: d1,d2
options: |-
  labelSelector: app=jiva
queries:
  - alias: objectName
  - alias: replicas
    path: "{.spec.replicas}"
    verify:
      count: 2
      split: ","
"""


class TestMeta:
    """Meta parsing."""

    def test_parse(self) -> None:
        from castengine.contracts.enums import TaskAction
        from castengine.contracts.task import Meta

        meta = Meta.from_yaml(META)
        assert meta.identity == "ctrl"
        assert meta.action == TaskAction.PUT
        assert meta.api_version == "apps/v1beta1"
        assert meta.options == {"labelSelector": "app=jiva"}
        assert meta.queries[1].verify is not None
        assert meta.queries[1].verify.count == "2"
        assert meta.retry == "1,0s"

    def test_names_and_namespaces_split_on_commas(self) -> None:
        from castengine.contracts.task import Meta

        meta = Meta.from_yaml("action: list\nrunNamespace: 'a, b,'\nobjectName: ' x ,y'\n")
        assert meta.namespaces() == ["a", "b"]
        assert meta.object_names() == ["x", "y"]

    def test_identity_alias(self) -> None:
        from castengine.contracts.task import Meta

        assert Meta.from_yaml("identity: pool\naction: get\n").identity == "pool"

    def test_blank_retry_defaults(self) -> None:
        from castengine.contracts.task import Meta

        assert Meta.from_yaml("action: get\nretry: ''\n").retry == "1,0s"

    def test_unknown_action_rejected(self) -> None:
        from castengine.contracts.errors import TemplateError
        from castengine.contracts.task import Meta

        with pytest.raises(TemplateError):
            Meta.from_yaml("action: explode\n")

    def test_non_mapping_rejected(self) -> None:
        from castengine.contracts.errors import TemplateError
        from castengine.contracts.task import Meta

        with pytest.raises(TemplateError, match="expected a mapping"):
            Meta.from_yaml("- a\n- b\n")

    def test_invalid_yaml_rejected(self) -> None:
        from castengine.contracts.errors import TemplateError
        from castengine.contracts.task import Meta

        with pytest.raises(TemplateError, match="invalid meta yaml"):
            Meta.from_yaml("action: [put\n")

    def test_as_rollback(self) -> None:
        from castengine.contracts.enums import TaskAction
        from castengine.contracts.task import Meta

        rollback = Meta.from_yaml(META).as_rollback("d1")
        assert rollback is not None
        assert rollback.action == TaskAction.DELETE
        assert rollback.object_name == "d1"
        assert rollback.queries == []
        assert rollback.run_namespace == "openebs"

    def test_as_rollback_only_for_put(self) -> None:
        from castengine.contracts.task import Meta

        assert Meta.from_yaml("action: get\n").as_rollback("x") is None


class TestRunTask:
    def test_from_runtask_resource(self) -> None:
        from castengine.contracts.task import RunTask

        task = RunTask.from_document(
            {
                "kind": "RunTask",
                "metadata": {"name": "pool-get"},
                "spec": {"meta": "action: get", "post": None},
            }
        )
        assert task.name == "pool-get"
        assert task.meta == "action: get"
        assert task.task == ""
        assert task.post == ""

    def test_from_config_map(self) -> None:
        from castengine.contracts.task import RunTask

        task = RunTask.from_document(
            {
                "kind": "ConfigMap",
                "metadata": {"name": "svc-put"},
                "data": {"meta": "action: put", "task": "kind: Service"},
            }
        )
        assert task.task == "kind: Service"


class TestCompositeTemplate:
    def test_from_yaml(self) -> None:
        from castengine.contracts.task import CompositeTemplate

        template = CompositeTemplate.from_yaml(
            """
apiVersion: openebs.io/v1alpha1
kind: CASTemplate
metadata:
  name: jiva-volume-create
  labels:
    openebs.io/version: 0.7.0
spec:
  taskNamespace: openebs
  defaultConfig:
    - name: ReplicaCount
      value: "3"
  run:
    tasks:
      - svc-put
      - ctrl-put
  output: volume-output
  fallback: jiva-volume-create-legacy
"""
        )
        assert template.name == "jiva-volume-create"
        assert template.labels == {"openebs.io/version": "0.7.0"}
        assert template.run_tasks == ["svc-put", "ctrl-put"]
        assert template.output_task == "volume-output"
        assert template.fallback == "jiva-volume-create-legacy"
        assert template.defaults[0].value == "3"
