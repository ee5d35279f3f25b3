"""Tests for tenant context resolution."""

import pytest
from bq_db_adapter.context import (
    PRIVATE_CONTEXT_KEY,
    TenantContext,
    attach_context,
    extract_context,
    resolve_context,
)
from bq_db_adapter.errors import ConfigurationError, MissingContextError


def _table_name(ctx: TenantContext) -> str:
    return f"Impact_{ctx.impact.replace('-', '_')}.compiled"


class TestFromCarrier:

    def test_camel_case_keys(self):
        ctx = TenantContext.from_carrier(
            {"orgId": "o1", "impact": "i-1", "tableName": "x.y", "region": "EU"}
        )
        assert ctx == TenantContext(org="o1", impact="i-1", table_name="x.y", region="EU")

    def test_snake_case_keys(self):
        ctx = TenantContext.from_carrier({"org": "o1", "impact": "i-1", "table_name": "x.y"})
        assert ctx.org == "o1"
        assert ctx.table_name == "x.y"
        assert ctx.region is None

    def test_passthrough(self):
        ctx = TenantContext(org="o", impact="i")
        assert TenantContext.from_carrier(ctx) is ctx

    def test_hook_prepared_params(self):
        ctx = TenantContext.from_carrier({PRIVATE_CONTEXT_KEY: {"impact": "i-1"}})
        assert ctx.impact == "i-1"

    def test_hook_prepared_params_without_context(self):
        with pytest.raises(MissingContextError):
            TenantContext.from_carrier({PRIVATE_CONTEXT_KEY: None})

    def test_non_mapping_rejected(self):
        with pytest.raises(MissingContextError):
            TenantContext.from_carrier("i-1")


class TestAttachExtract:

    def test_attach_does_not_modify_payload(self):
        payload = {"query": {"a": 1}}
        attached = attach_context(payload, {"impact": "i"})
        assert PRIVATE_CONTEXT_KEY in attached
        assert PRIVATE_CONTEXT_KEY not in payload

    def test_extract_strips_key_from_copy(self):
        payload = attach_context({"query": {"a": 1}}, {"impact": "i"})
        ctx, stripped = extract_context(payload)
        assert ctx.impact == "i"
        assert stripped == {"query": {"a": 1}}
        assert PRIVATE_CONTEXT_KEY in payload

    def test_extract_list_payload(self):
        payload = attach_context([{"pk": 1}, {"pk": 2}], {"impact": "i"})
        ctx, stripped = extract_context(payload)
        assert ctx.impact == "i"
        assert stripped == [{"pk": 1}, {"pk": 2}]

    def test_extract_list_payload_skips_elements_without_context(self):
        payload = [{"pk": 1}, *attach_context([{"pk": 2}], {"impact": "i"})]
        ctx, stripped = extract_context(payload)
        assert ctx.impact == "i"
        assert stripped == [{"pk": 1}, {"pk": 2}]

    def test_extract_without_context(self):
        ctx, stripped = extract_context({"a": 1})
        assert ctx is None
        assert stripped == {"a": 1}

    def test_extract_none_payload(self):
        assert extract_context(None) == (None, None)


class TestResolveContext:

    def test_missing_context_raises(self):
        with pytest.raises(MissingContextError, match="apply one via a hook"):
            resolve_context(None, _table_name, {"query": {}})

    def test_explicit_context_resolves_table(self):
        ctx, payloads = resolve_context({"impact": "a-b"}, _table_name)
        assert ctx.table_name == "Impact_a_b.compiled"
        assert payloads == []

    def test_attached_context_used(self):
        payload = attach_context({"query": {"a": 1}}, {"impact": "a-b"})
        ctx, (stripped,) = resolve_context(None, _table_name, payload)
        assert ctx.table_name == "Impact_a_b.compiled"
        assert stripped == {"query": {"a": 1}}

    def test_explicit_context_wins(self):
        payload = attach_context({}, {"impact": "attached"})
        ctx, (stripped,) = resolve_context({"impact": "explicit"}, _table_name, payload)
        assert ctx.impact == "explicit"
        assert PRIVATE_CONTEXT_KEY not in stripped

    def test_context_taken_from_any_payload(self):
        where = {"a": 1}
        update = attach_context({"b": 2}, {"impact": "u"})
        ctx, (w, u) = resolve_context(None, _table_name, where, update)
        assert ctx.impact == "u"
        assert (w, u) == ({"a": 1}, {"b": 2})

    def test_table_override_passed_to_resolver(self):
        ctx, _ = resolve_context(
            {"impact": "i", "tableName": "custom.table"},
            lambda c: c.table_name or "default.table",
        )
        assert ctx.table_name == "custom.table"

    def test_empty_table_name_raises(self):
        with pytest.raises(ConfigurationError):
            resolve_context({"impact": "i"}, lambda c: "")
