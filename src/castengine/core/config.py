# src/castengine/core/config.py
"""
Engine settings and composite-template configuration layering.

Engine settings use Pydantic for validation and Dynaconf for multi-source
loading. Settings are frozen (immutable) after construction.
"""

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field

from castengine.contracts.errors import TemplateError
from castengine.contracts.task import ConfigEntry


class ClusterSettings(BaseModel):
    """Connection details for the Kubernetes API server."""

    model_config = {"frozen": True}

    api_server: str = Field(
        default="https://kubernetes.default.svc",
        description="Base URL of the API server",
    )
    token: str | None = Field(default=None, description="Bearer token")
    token_file: Path | None = Field(
        default=None,
        description="File holding the bearer token (service account mount)",
    )
    ca_file: Path | None = Field(default=None, description="CA bundle for TLS verification")
    verify_tls: bool = True
    timeout_seconds: float = Field(default=30.0, gt=0)

    def bearer_token(self) -> str | None:
        if self.token:
            return self.token
        if self.token_file is not None and self.token_file.exists():
            return self.token_file.read_text().strip()
        return None


class FetcherSettings(BaseModel):
    """Where run-tasks and templates are looked up."""

    model_config = {"frozen": True}

    namespace: str = "default"
    strategies: list[Literal["runtask", "configmap"]] = Field(
        default_factory=lambda: ["runtask", "configmap"],
        min_length=1,
    )


class VolumeRPCSettings(BaseModel):
    """Block-volume RPC endpoint and the control channel it drives."""

    model_config = {"frozen": True}

    host: str = "0.0.0.0"
    port: int = Field(default=7777, gt=0, lt=65536)
    control_socket: Path = Path("/var/run/istgt_ctl_sock")
    istgt_conf: Path = Path("/usr/local/etc/istgt/istgt.conf")
    io_wait: int = Field(default=10, ge=0)
    total_wait: int = Field(default=60, ge=0)
    timeout_seconds: float = Field(default=90.0, gt=0)


class LogSettings(BaseModel):
    model_config = {"frozen": True}

    level: Literal["debug", "info", "warning", "error"] = "info"
    json_output: bool = False


class EngineSettings(BaseModel):
    """Top-level engine settings.

    Example YAML:
        cluster:
          api_server: https://10.0.0.1:6443
          token_file: /var/run/secrets/kubernetes.io/serviceaccount/token
        fetcher:
          namespace: openebs
    """

    model_config = {"frozen": True}

    cluster: ClusterSettings = Field(default_factory=ClusterSettings)
    fetcher: FetcherSettings = Field(default_factory=FetcherSettings)
    volume_rpc: VolumeRPCSettings = Field(default_factory=VolumeRPCSettings)
    log: LogSettings = Field(default_factory=LogSettings)


def load_settings(config_path: Path) -> EngineSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (CASTENGINE_*) - highest priority
    2. Config file
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: CASTENGINE_CLUSTER__API_SERVER for nested keys.

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="CASTENGINE",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {
        k.lower(): _lower_keys(v)
        for k, v in dynaconf_settings.as_dict().items()
        if k not in internal_keys
    }
    return EngineSettings(**raw_config)


def _lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    return value


# =============================================================================
# Composite-template configuration layering
# =============================================================================


def merge_config(high: list[ConfigEntry], low: list[ConfigEntry]) -> list[ConfigEntry]:
    """Merge two configuration layers; high-priority entries win by name.

    Order is preserved: all high-priority entries first, then the
    low-priority entries whose (trimmed) names were not overridden.
    """
    final = list(high)
    taken = {entry.name.strip() for entry in high}
    final.extend(entry for entry in low if entry.name.strip() not in taken)
    return final


def config_to_map(entries: list[ConfigEntry]) -> dict[str, Any]:
    """Transform configuration entries into ``{name: {enabled, value, data}}``.

    The first entry for a name wins.

    Raises:
        TemplateError: If an entry has an empty name
    """
    result: dict[str, Any] = {}
    for entry in entries:
        name = entry.name.strip()
        if not name:
            raise TemplateError(f"failed to transform cas config to map: missing config name: {entry!r}")
        if name in result:
            continue
        item: dict[str, Any] = {"enabled": entry.enabled, "value": entry.value}
        if entry.data:
            item["data"] = dict(entry.data)
        result[name] = item
    return result
