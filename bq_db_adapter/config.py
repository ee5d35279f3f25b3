"""
Configuration for the BigQuery adapter.

An AdapterConfig is either built in code by the embedding service (with
its own resolver callables) or loaded from a YAML file:

    # $BQ_ADAPTER_HOME/config.yaml
    project_id: proof-of-impact
    id_key: Contacto__c
    region: US
    table_template: "Impact_{impact}.compiled"
    query_blacklist: [password_hash]
    show_logs: false
    job_timeout: 120
    env_file: ~/.config/bq-db-adapter/.env
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import yaml
from dotenv import load_dotenv

from bq_db_adapter.context import TenantContext
from bq_db_adapter.errors import ConfigurationError
from bq_db_adapter.gateway import DEFAULT_LOCATION


@dataclass
class AdapterConfig:
    """Settings consumed by BigQueryDbAdapter.

    Attributes:
        project_id: GCP project the query jobs run in
        get_table_name: TenantContext -> fully qualified table name
        get_id_key: TenantContext -> primary key column name
        get_region: TenantContext -> BigQuery location (None falls back
            to default_location)
        query_wrapper: Optional (sql, region) -> sql rewrite applied to
            every submission right before it runs
        query_blacklist: Columns always stripped from where clauses
        show_logs: Log submitted SQL at INFO
        default_location: Location used when no region is resolved
        job_timeout: Seconds before a running job is cancelled
    """
    project_id: str = ""
    get_table_name: Optional[Callable[[TenantContext], str]] = None
    get_id_key: Optional[Callable[[Optional[TenantContext]], str]] = None
    get_region: Optional[Callable[[TenantContext], Optional[str]]] = None
    query_wrapper: Optional[Callable[[str, str], str]] = None
    query_blacklist: list[str] = field(default_factory=list)
    show_logs: bool = False
    default_location: str = DEFAULT_LOCATION
    job_timeout: Optional[float] = None

    def validate(self) -> None:
        """Fail fast on missing settings.

        Raises:
            ConfigurationError: If a required setting is missing
        """
        if not self.project_id:
            raise ConfigurationError("Missing BigQuery setting 'project_id'")

        for name in ("get_table_name", "get_id_key", "get_region"):
            if not callable(getattr(self, name)):
                raise ConfigurationError(f"BigQuery setting '{name}' must be a callable")

        if self.query_wrapper is not None and not callable(self.query_wrapper):
            raise ConfigurationError("BigQuery setting 'query_wrapper' must be a callable")

        if self.job_timeout is not None and self.job_timeout <= 0:
            raise ConfigurationError("BigQuery setting 'job_timeout' must be positive")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AdapterConfig":
        """Build a config with static resolvers from plain settings."""
        template = data.get("table_template")
        id_key = data.get("id_key")
        region = data.get("region")

        return cls(
            project_id=data.get("project_id") or os.environ.get("GCP_PROJECT", ""),
            get_table_name=table_name_from_template(template) if template else None,
            get_id_key=(lambda ctx=None: id_key) if id_key else None,
            get_region=lambda ctx: region,
            query_blacklist=list(data.get("query_blacklist") or []),
            show_logs=bool(data.get("show_logs", False)),
            default_location=data.get("default_location") or DEFAULT_LOCATION,
            job_timeout=data.get("job_timeout"),
        )


def table_name_from_template(template: str) -> Callable[[TenantContext], str]:
    """Build a get_table_name resolver from a format string.

    Available fields: {org}, {impact} (dashes replaced by underscores so
    it is a valid dataset name) and {table} (the context's override).
    """
    def get_table_name(context: TenantContext) -> str:
        return template.format(
            org=context.org,
            impact=context.impact.replace("-", "_"),
            table=context.table_name or "",
        )

    return get_table_name


def get_adapter_home() -> Path:
    """Directory holding config.yaml ($BQ_ADAPTER_HOME or ~/.config/bq-db-adapter)."""
    home = os.environ.get("BQ_ADAPTER_HOME")
    if home:
        return Path(home)
    return Path("~/.config/bq-db-adapter").expanduser()


def load_config(config_path: Optional[Path] = None) -> AdapterConfig:
    """
    Load adapter configuration from YAML file.

    Args:
        config_path: Path to config file. Defaults to $BQ_ADAPTER_HOME/config.yaml

    Returns:
        Validated AdapterConfig

    Raises:
        ConfigurationError: If config is missing or invalid
    """
    if config_path is None:
        config_path = get_adapter_home() / "config.yaml"

    if not config_path.exists():
        raise ConfigurationError(f"bq-db-adapter config.yaml not found: {config_path}")

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML syntax: {e}") from e

    if not data:
        raise ConfigurationError("Configuration file is empty")

    env_file = data.get("env_file")
    if env_file:
        load_dotenv(Path(env_file).expanduser(), override=False)

    config = AdapterConfig.from_dict(data)
    config.validate()
    return config
