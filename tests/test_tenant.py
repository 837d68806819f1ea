"""Unit tests for TenantContext."""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

import pytest
from models.tenant import TenantContext
from models.errors import InvalidTenant, AgentError


class TestTenantContext:
    """Test suite for TenantContext validation."""

    def test_valid_identifier(self):
        """Test that a well-formed identifier is accepted."""
        tenant = TenantContext("acme-corp_01")
        assert tenant.tenant_id == "acme-corp_01"
        assert str(tenant) == "acme-corp_01"

    def test_uuid_identifier(self):
        """Test that UUID-like tokens are accepted."""
        tenant = TenantContext("3f2b8c1e-7d4a-4f5e-9a61-0c2d8e7b9f10")
        assert tenant.tenant_id.startswith("3f2b8c1e")

    @pytest.mark.parametrize("raw", ["", "   ", None])
    def test_empty_identifier_rejected(self, raw):
        """Test that empty identifiers fail fast."""
        with pytest.raises(InvalidTenant):
            TenantContext.parse(raw)

    @pytest.mark.parametrize("raw", ["has space", "semi;colon", "-leading-dash", "x" * 200, "t1' OR '1'='1"])
    def test_malformed_identifier_rejected(self, raw):
        """Test that identifiers failing the format check are rejected."""
        with pytest.raises(InvalidTenant):
            TenantContext(raw)

    def test_parse_strips_whitespace(self):
        """Test that parse ignores surrounding whitespace."""
        assert TenantContext.parse("  t1\n") == TenantContext("t1")

    def test_parse_with_custom_pattern(self):
        """Test that a custom format check is applied on top of the default."""
        assert TenantContext.parse("org-42", pattern=r"org-\d+").tenant_id == "org-42"
        with pytest.raises(InvalidTenant):
            TenantContext.parse("team-42", pattern=r"org-\d+")

    def test_custom_pattern_cannot_widen_default(self):
        """Test that a permissive custom pattern still enforces the configured format."""
        with pytest.raises(InvalidTenant):
            TenantContext.parse("has space", pattern=r".+")

    def test_invalid_tenant_is_typed(self):
        """Test that InvalidTenant belongs to the agent error taxonomy."""
        with pytest.raises(AgentError) as exc_info:
            TenantContext("")
        assert exc_info.value.kind == "invalid_tenant"
        assert exc_info.value.retryable is False

    def test_context_is_immutable(self):
        """Test that a tenant context cannot be reassigned."""
        tenant = TenantContext("t1")
        with pytest.raises(Exception):
            tenant.tenant_id = "t2"
