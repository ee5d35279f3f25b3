"""
bq_db_adapter - Multi-tenant BigQuery adapter for service DB layers.

Translates find/count/insert/update/remove calls with a small filter DSL
into parameterized BigQuery SQL and runs them in the tenant's table and
region.
"""

__version__ = "0.1.0"


__all__ = [
    "AdapterConfig",
    "BigQueryDbAdapter",
    "TenantContext",
    "attach_context",
    "load_config",
]

from .adapter import BigQueryDbAdapter
from .config import AdapterConfig, load_config
from .context import TenantContext, attach_context
