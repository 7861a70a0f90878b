"""Tests for castengine CLI."""

from pathlib import Path

import pytest
import structlog
from typer.testing import CliRunner

runner = CliRunner()


@pytest.fixture(autouse=True)
def reset_structlog():
    """Commands configure structlog globally; restore defaults after each test."""
    yield
    structlog.reset_defaults()


TEMPLATE = """
apiVersion: openebs.io/v1alpha1
kind: CASTemplate
metadata:
  name: volume-read-default
spec:
  taskNamespace: openebs
  defaultConfig:
    - name: ReplicaCount
      value: "3"
  run:
    tasks:
      - pool-get
  output: volume-out
"""

OUTPUT_ONLY_TEMPLATE = """
kind: CASTemplate
metadata:
  name: volume-echo
spec:
  defaultConfig:
    - name: ReplicaCount
      value: "3"
  output: volume-out
"""

TASKS = """
kind: RunTask
metadata:
  name: pool-get
spec:
  meta: |
    id: pool
    apiVersion: openebs.io/v1alpha1
    kind: StoragePool
    action: get
    objectName: pool1
---
kind: RunTask
metadata:
  name: volume-out
spec:
  meta: "action: get"
  task: "{{ Volume.owner }} x{{ Config.ReplicaCount.value }}"
"""


def _write(tmp_path: Path, template: str = TEMPLATE) -> tuple[Path, Path]:
    template_file = tmp_path / "cast.yaml"
    template_file.write_text(template)
    tasks_dir = tmp_path / "tasks"
    tasks_dir.mkdir()
    (tasks_dir / "tasks.yaml").write_text(TASKS)
    return template_file, tasks_dir


class TestCLIBasics:
    """Test basic CLI functionality."""

    def test_version_flag(self) -> None:
        from castengine.cli import app

        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert result.stdout.startswith("castengine version")

    def test_help_flag(self) -> None:
        from castengine.cli import app

        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("run", "validate", "version-compare", "serve-volume-rpc"):
            assert command in result.stdout


class TestVersionCompare:
    def test_compare(self) -> None:
        from castengine.cli import app

        assert runner.invoke(app, ["version-compare", "v1.9.7", "v1.10.0"]).stdout.strip() == "-1"
        assert runner.invoke(app, ["version-compare", "v1.10.0", "v1.9.7"]).stdout.strip() == "1"
        assert runner.invoke(app, ["version-compare", "v1.9.7", "v1.9.7"]).stdout.strip() == "0"


class TestValidate:
    def test_valid_template(self, tmp_path: Path) -> None:
        from castengine.cli import app

        template_file, tasks_dir = _write(tmp_path)
        result = runner.invoke(app, ["validate", "--template", str(template_file), "--tasks", str(tasks_dir)])
        assert result.exit_code == 0
        assert "Template 'volume-read-default' is valid: 1 tasks" in result.stdout
        assert "pool (pool-get)" in result.stdout
        assert "output: volume-out" in result.stdout

    def test_missing_task(self, tmp_path: Path) -> None:
        from castengine.cli import app

        template_file, tasks_dir = _write(tmp_path, TEMPLATE.replace("- pool-get", "- pool-list"))
        result = runner.invoke(app, ["validate", "--template", str(template_file), "--tasks", str(tasks_dir)])
        assert result.exit_code == 1
        assert "Validation failed" in result.output

    def test_missing_template_file(self, tmp_path: Path) -> None:
        from castengine.cli import app

        _, tasks_dir = _write(tmp_path)
        result = runner.invoke(
            app, ["validate", "--template", str(tmp_path / "nope.yaml"), "--tasks", str(tasks_dir)]
        )
        assert result.exit_code == 1
        assert "Template file not found" in result.output


class TestRun:
    def test_run_prints_output(self, tmp_path: Path) -> None:
        from castengine.cli import app

        template_file, tasks_dir = _write(tmp_path, OUTPUT_ONLY_TEMPLATE)
        values_file = tmp_path / "values.yaml"
        values_file.write_text("owner: pvc-1\n")
        result = runner.invoke(
            app,
            [
                "run",
                "--template",
                str(template_file),
                "--tasks",
                str(tasks_dir),
                "--key",
                "Volume",
                "--values",
                str(values_file),
                "--set",
                "ReplicaCount=2",
            ],
        )
        assert result.exit_code == 0, result.output
        assert result.stdout.endswith("pvc-1 x2")

    def test_values_require_key(self, tmp_path: Path) -> None:
        from castengine.cli import app

        template_file, tasks_dir = _write(tmp_path, OUTPUT_ONLY_TEMPLATE)
        values_file = tmp_path / "values.yaml"
        values_file.write_text("owner: pvc-1\n")
        result = runner.invoke(
            app,
            ["run", "--template", str(template_file), "--tasks", str(tasks_dir), "--values", str(values_file)],
        )
        assert result.exit_code == 1
        assert "--values requires --key" in result.output

    def test_invalid_set(self, tmp_path: Path) -> None:
        from castengine.cli import app

        template_file, tasks_dir = _write(tmp_path, OUTPUT_ONLY_TEMPLATE)
        result = runner.invoke(
            app,
            ["run", "--template", str(template_file), "--tasks", str(tasks_dir), "--set", "ReplicaCount"],
        )
        assert result.exit_code == 1
        assert "invalid --set" in result.output

    def test_missing_settings_file(self, tmp_path: Path) -> None:
        from castengine.cli import app

        template_file, tasks_dir = _write(tmp_path, OUTPUT_ONLY_TEMPLATE)
        result = runner.invoke(
            app,
            [
                "run",
                "--template",
                str(template_file),
                "--tasks",
                str(tasks_dir),
                "--settings",
                str(tmp_path / "settings.yaml"),
            ],
        )
        assert result.exit_code == 1
        assert "Settings file not found" in result.output
