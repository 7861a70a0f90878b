# src/castengine/cli.py
"""castengine Command Line Interface.

Entry point for the castengine CLI tool.
"""

from pathlib import Path
from typing import Any

import typer
import yaml
from pydantic import ValidationError

from castengine import __version__
from castengine.contracts.errors import CasEngineError, TaskError
from castengine.contracts.task import CompositeTemplate, ConfigEntry
from castengine.core import version as kube_version
from castengine.core.config import EngineSettings, load_settings
from castengine.core.logging import configure_logging
from castengine.engine.engine import CasEngine
from castengine.engine.executors import TaskRuntime
from castengine.plugins.clients.fetcher import (
    ClusterTaskSpecFetcher,
    FileTaskSpecFetcher,
    TaskSpecFetcher,
)
from castengine.plugins.clients.kube import KubeHTTPClient, build_http_client, kube_client_factory

app = typer.Typer(
    name="castengine",
    help="castengine: template-driven task orchestration for cluster storage.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"castengine version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """castengine: template-driven task orchestration for cluster storage."""
    pass


def _load_engine_settings(settings: Path | None) -> EngineSettings:
    if settings is None:
        return EngineSettings()
    try:
        return load_settings(settings)
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


def _read_yaml(path: Path, what: str) -> Any:
    if not path.exists():
        typer.echo(f"Error: {what} file not found: {path}", err=True)
        raise typer.Exit(1)
    try:
        return yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        typer.echo(f"Error: invalid {what} yaml: {e}", err=True)
        raise typer.Exit(1) from None


def _load_template(path: Path) -> CompositeTemplate:
    try:
        return CompositeTemplate.from_yaml(path.read_text())
    except FileNotFoundError:
        typer.echo(f"Error: Template file not found: {path}", err=True)
        raise typer.Exit(1) from None
    except CasEngineError as e:
        typer.echo(f"Template error: {e}", err=True)
        raise typer.Exit(1) from None


def _config_entries(config: Path | None, overrides: list[str]) -> list[ConfigEntry] | None:
    """Entries from ``--set name=value`` (highest priority) then ``--config``."""
    entries: list[ConfigEntry] = []
    for item in overrides:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            typer.echo(f"Error: invalid --set '{item}', expected name=value", err=True)
            raise typer.Exit(1)
        entries.append(ConfigEntry(name=name.strip(), value=value))
    if config is not None:
        raw = _read_yaml(config, "config") or []
        try:
            entries.extend(ConfigEntry.from_dict(item) for item in raw)
        except (CasEngineError, TypeError) as e:
            typer.echo(f"Config error: {e}", err=True)
            raise typer.Exit(1) from None
    return entries or None


def _fetcher(tasks: Path | None, namespace: str, settings: EngineSettings) -> TaskSpecFetcher:
    if tasks is not None:
        try:
            return FileTaskSpecFetcher(tasks)
        except FileNotFoundError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from None
        except CasEngineError as e:
            typer.echo(f"Task file error: {e}", err=True)
            raise typer.Exit(1) from None
    client = KubeHTTPClient(namespace, settings.cluster, http_client=build_http_client(settings.cluster))
    return ClusterTaskSpecFetcher(namespace, client, settings.fetcher.strategies)


@app.command()
def run(
    template: Path = typer.Option(..., "--template", "-t", help="CASTemplate YAML file."),
    tasks: Path | None = typer.Option(
        None,
        "--tasks",
        help="Directory of run-task YAML files. Fetched from the cluster when omitted.",
    ),
    config: Path | None = typer.Option(None, "--config", "-c", help="YAML list of config entries."),
    overrides: list[str] = typer.Option(
        [],
        "--set",
        help="Override a config entry value (name=value). Repeatable.",
    ),
    key: str = typer.Option("", "--key", "-k", help="Top-level key for --values, e.g. Volume."),
    values: Path | None = typer.Option(None, "--values", help="YAML mapping installed at --key."),
    settings: Path | None = typer.Option(None, "--settings", "-s", help="Engine settings YAML file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show detailed output."),
) -> None:
    """Run a composite template and print its output."""
    engine_settings = _load_engine_settings(settings)
    configure_logging("debug" if verbose else engine_settings.log.level, engine_settings.log.json_output)

    cas_template = _load_template(template)
    namespace = cas_template.task_namespace or engine_settings.fetcher.namespace
    runtime_values: dict[str, Any] = {}
    if values is not None:
        loaded = _read_yaml(values, "values") or {}
        if not isinstance(loaded, dict):
            typer.echo("Error: --values must hold a YAML mapping", err=True)
            raise typer.Exit(1)
        runtime_values = loaded
    if runtime_values and not key.strip():
        typer.echo("Error: --values requires --key", err=True)
        raise typer.Exit(1)

    fetcher = _fetcher(tasks, namespace, engine_settings)
    runtime = TaskRuntime.create(
        kube_client_factory(engine_settings.cluster),
        default_namespace=namespace,
    )
    engine = CasEngine(
        cas_template,
        fetcher,
        runtime,
        config=_config_entries(config, overrides),
        runtime_key=key,
        runtime_values=runtime_values,
    )
    try:
        output = engine.run()
    except TaskError as e:
        typer.echo(f"Run failed: {e}", err=True)
        if verbose:
            typer.echo(e.snapshot, err=True)
        raise typer.Exit(1) from None
    except CasEngineError as e:
        typer.echo(f"Run failed: {e}", err=True)
        raise typer.Exit(1) from None
    finally:
        runtime.renderer.runtime.close()
    typer.echo(output.decode("utf-8"), nl=False)


@app.command()
def validate(
    template: Path = typer.Option(..., "--template", "-t", help="CASTemplate YAML file."),
    tasks: Path = typer.Option(..., "--tasks", help="Directory of run-task YAML files."),
) -> None:
    """Check that a template's tasks exist and have unique identities."""
    cas_template = _load_template(template)
    fetcher = _fetcher(tasks, cas_template.task_namespace or "default", EngineSettings())
    runtime = TaskRuntime.create(kube_client_factory(EngineSettings().cluster))
    try:
        runner = CasEngine(cas_template, fetcher, runtime).prepare()
    except CasEngineError as e:
        typer.echo(f"Validation failed: {e}", err=True)
        raise typer.Exit(1) from None
    typer.echo(f"Template '{cas_template.name}' is valid: {len(runner.tasks)} tasks")
    for planned in runner.tasks:
        typer.echo(f"  - {planned.identity} ({planned.task.name})")
    if runner.output_task is not None:
        typer.echo(f"  output: {runner.output_task.name}")
    if cas_template.fallback:
        typer.echo(f"  fallback: {cas_template.fallback}")


@app.command("version-compare")
def version_compare(
    v1: str = typer.Argument(..., help="First kubernetes version, e.g. v1.9.7."),
    v2: str = typer.Argument(..., help="Second kubernetes version."),
) -> None:
    """Print -1, 0 or 1 comparing two kubernetes versions."""
    typer.echo(str(kube_version.compare(v1, v2)))


@app.command("serve-volume-rpc")
def serve_volume_rpc(
    settings: Path | None = typer.Option(None, "--settings", "-s", help="Engine settings YAML file."),
) -> None:
    """Serve the block-volume RPC endpoint over the local istgt control socket."""
    import uvicorn

    from castengine.volume.istgt import IstgtController, RealFileOperator, UnixControlSocket
    from castengine.volume.rpc import create_app

    engine_settings = _load_engine_settings(settings)
    configure_logging(engine_settings.log.level, engine_settings.log.json_output)
    rpc = engine_settings.volume_rpc
    controller = IstgtController(
        UnixControlSocket(rpc.control_socket, timeout=rpc.timeout_seconds),
        RealFileOperator(),
        rpc.istgt_conf,
        io_wait=rpc.io_wait,
        total_wait=rpc.total_wait,
    )
    uvicorn.run(create_app(controller), host=rpc.host, port=rpc.port)


if __name__ == "__main__":
    app()
