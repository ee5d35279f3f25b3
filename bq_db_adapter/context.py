"""
Tenant context - per-call routing metadata.

Every adapter call runs against a tenant-specific table in a specific
BigQuery location. The host service attaches a context to each call,
either explicitly or through a hook that stores it in the call payload
under ``adapter_private_context``. This module reads that context back,
strips the private key from the payload and resolves the concrete table
name via the configured ``get_table_name`` callable.
"""

from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping

from bq_db_adapter.errors import ConfigurationError, MissingContextError


PRIVATE_CONTEXT_KEY = "adapter_private_context"


@dataclass(frozen=True)
class TenantContext:
    """Routing metadata for a single call.

    Attributes:
        org: Organization id
        impact: Tenant key used to pick the tenant's table
        table_name: Table override, or the resolved table once resolved
        region: BigQuery location of the tenant's dataset
    """
    org: str = ""
    impact: str = ""
    table_name: str | None = None
    region: str | None = None

    @classmethod
    def from_carrier(cls, value: Any) -> "TenantContext":
        """Build a context from a TenantContext or a mapping carrier.

        Accepts both the camelCase keys host services send (``orgId``,
        ``tableName``) and snake_case keys.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise MissingContextError(
                f"Private context must be a mapping, got {type(value).__name__}"
            )
        if PRIVATE_CONTEXT_KEY in value:
            # A hook-prepared params dict passed where the context belongs
            if value[PRIVATE_CONTEXT_KEY] is None:
                raise MissingContextError()
            return cls.from_carrier(value[PRIVATE_CONTEXT_KEY])
        return cls(
            org=value.get("org") or value.get("orgId") or "",
            impact=value.get("impact") or "",
            table_name=value.get("tableName") or value.get("table_name"),
            region=value.get("region"),
        )


def attach_context(payload: Any, context: TenantContext | Mapping) -> Any:
    """Return a copy of payload with the private context attached.

    This is what a service hook does before handing params to the
    adapter. Lists get the context attached to every element.
    """
    if isinstance(payload, list):
        return [{PRIVATE_CONTEXT_KEY: context, **item} for item in payload]
    return {PRIVATE_CONTEXT_KEY: context, **(payload or {})}


def extract_context(payload: Any) -> tuple[TenantContext | None, Any]:
    """Read the attached context and strip the private key.

    Returns (context or None, payload copy without the private key). For
    list payloads the first element carrying a context is used. The input
    payload is left untouched.
    """
    if isinstance(payload, list):
        carriers = [
            item.get(PRIVATE_CONTEXT_KEY) for item in payload if isinstance(item, Mapping)
        ]
        stripped = [_strip(item) for item in payload]
        carrier = next((c for c in carriers if c is not None), None)
    elif isinstance(payload, Mapping):
        carrier = payload.get(PRIVATE_CONTEXT_KEY)
        stripped = _strip(payload)
    else:
        return None, payload

    if carrier is None:
        return None, stripped
    return TenantContext.from_carrier(carrier), stripped


def _strip(item: Any) -> Any:
    if not isinstance(item, Mapping):
        return item
    return {k: v for k, v in item.items() if k != PRIVATE_CONTEXT_KEY}


def resolve_context(
    context: TenantContext | Mapping | None,
    get_table_name: Callable[[TenantContext], str],
    *payloads: Any,
) -> tuple[TenantContext, list[Any]]:
    """Resolve the call's context and its concrete table name.

    An explicit context wins; otherwise the first payload carrying an
    attached context provides it. The private key is stripped from every
    returned payload copy.

    Returns:
        (resolved context with table_name set, stripped payloads in order)

    Raises:
        MissingContextError: If neither an explicit nor an attached
            context is present
        ConfigurationError: If get_table_name resolves to an empty name
    """
    resolved = TenantContext.from_carrier(context) if context is not None else None
    stripped = []
    for payload in payloads:
        attached, clean = extract_context(payload)
        if resolved is None and attached is not None:
            resolved = attached
        stripped.append(clean)

    if resolved is None:
        raise MissingContextError()

    table_name = get_table_name(resolved)
    if not table_name:
        raise ConfigurationError(
            f"get_table_name returned an empty table name for tenant '{resolved.impact}'"
        )
    return replace(resolved, table_name=table_name), stripped
