"""
CLI interface for bq-db-adapter.

Developer tooling around the adapter: render the SQL an operation would
submit for a tenant (no BigQuery access), or run read operations against
the configured project.
"""

import json
import logging

import click

from bq_db_adapter import __version__


READ_OPERATIONS = ["find", "find-one", "count"]


def _call(adapter, operation: str, context, filters: dict):
    if operation == "find":
        return adapter.find(context, filters)
    if operation == "find-one":
        return adapter.find_one(context, filters.get("query", filters))
    return adapter.count(context, filters)


def _parse_filters(filters: str | None) -> dict:
    if not filters:
        return {}
    try:
        parsed = json.loads(filters)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"Filters must be JSON: {e}", param_hint="--filters")
    if not isinstance(parsed, dict):
        raise click.BadParameter("Filters must be a JSON object", param_hint="--filters")
    return parsed


def _require_config(ctx):
    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo("Run 'bq-db-adapter init' to create a configuration file.", err=True)
        raise SystemExit(1)
    return ctx.obj["config"]


def _context_options(func):
    func = click.option("--region", default=None, help="Override the configured region")(func)
    func = click.option("--org", default="", help="Organization id")(func)
    func = click.option("--tenant", "impact", required=True, help="Tenant (impact) key")(func)
    func = click.option("--filters", default=None, help="Filters as a JSON object")(func)
    return func


@click.group()
@click.version_option(version=__version__, prog_name="bq-db-adapter")
@click.option("-v", "--verbose", is_flag=True, help="Log submitted SQL and job ids")
@click.pass_context
def main(ctx, verbose: bool):
    """
    bq-db-adapter - Multi-tenant BigQuery CRUD adapter.
    """
    from bq_db_adapter.config import load_config

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config()
    except Exception as e:
        # init does not need a config; the other commands check for it
        ctx.obj["config_error"] = str(e)


@main.command("render")
@click.argument("operation", type=click.Choice(READ_OPERATIONS))
@_context_options
@click.pass_context
def render(ctx, operation: str, filters: str | None, impact: str, org: str, region: str | None):
    """Print the SQL and parameters an operation would submit."""
    from bq_db_adapter.adapter import BigQueryDbAdapter
    from bq_db_adapter.context import TenantContext
    from bq_db_adapter.gateway import RecordingEngine

    config = _require_config(ctx)
    engine = RecordingEngine()
    adapter = BigQueryDbAdapter()
    adapter.init(config, engine=engine)

    context = TenantContext(org=org, impact=impact, region=region)
    _call(adapter, operation, context, _parse_filters(filters))

    for sql, location, params in engine.submissions:
        click.echo(f"-- location: {location}")
        click.echo(sql)
        for p in params:
            click.echo(f"--   @{p.name} {p.type}{'[]' if p.array_type else ''} = {p.value!r}")


@main.command("run")
@click.argument("operation", type=click.Choice(READ_OPERATIONS))
@_context_options
@click.pass_context
def run(ctx, operation: str, filters: str | None, impact: str, org: str, region: str | None):
    """Run a read operation against BigQuery and print the result as JSON."""
    from bq_db_adapter.adapter import BigQueryDbAdapter
    from bq_db_adapter.context import TenantContext
    from bq_db_adapter.errors import AdapterError

    config = _require_config(ctx)
    adapter = BigQueryDbAdapter()
    adapter.init(config)

    context = TenantContext(org=org, impact=impact, region=region)
    try:
        result = _call(adapter, operation, context, _parse_filters(filters))
    except AdapterError as e:
        click.echo(f"✗ {operation} failed: {e}", err=True)
        raise SystemExit(1)

    click.echo(json.dumps(result, indent=2, default=str))


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize bq-db-adapter configuration."""
    from bq_db_adapter.config import get_adapter_home
    import yaml

    home = get_adapter_home()
    if not home.exists():
        home.mkdir(parents=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    default_cfg = {
        "project_id": "my-gcp-project",
        "id_key": "id",
        "region": "US",
        "table_template": "Impact_{impact}.compiled",
        "query_blacklist": [],
        "show_logs": False,
        "job_timeout": None,
        "env_file": str(home / ".env"),
    }
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))

    env_path = home / ".env"
    if not env_path.exists():
        env_path.write_text("# GCP_PROJECT=...\n# GOOGLE_APPLICATION_CREDENTIALS=...\n")

    click.echo(f"Initialized bq-db-adapter config at {cfg_path}")


if __name__ == "__main__":
    main()
