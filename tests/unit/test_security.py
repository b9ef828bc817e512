"""
Unit tests for the template origin policy.
"""
import pytest

from inviteflow.core.security import OriginPolicy, normalize_origin


@pytest.mark.unit
class TestNormalizeOrigin:
    """Test origin parsing."""

    def test_default_ports_are_filled_in(self):
        assert normalize_origin("https://Invites.Example.com") == ("https", "invites.example.com", 443)
        assert normalize_origin("http://localhost") == ("http", "localhost", 80)

    def test_explicit_port(self):
        assert normalize_origin("http://localhost:3000") == ("http", "localhost", 3000)

    @pytest.mark.parametrize("origin", [
        None,
        "",
        "null",
        "file:///tmp/index.html",
        "https://user:pw@invites.example.com",
        "https://invites.example.com/path",
        "https://invites.example.com:notaport",
        "invites.example.com",
    ])
    def test_rejects_non_origins(self, origin):
        assert normalize_origin(origin) is None


@pytest.mark.unit
class TestOriginPolicy:
    """Exact scheme, host and port matching."""

    @pytest.fixture
    def policy(self):
        return OriginPolicy(["http://localhost:8000", "https://invites.example.com"])

    def test_allows_listed_origins(self, policy):
        assert policy.is_allowed("http://localhost:8000")
        assert policy.is_allowed("https://invites.example.com")
        assert policy.is_allowed("https://invites.example.com:443")

    def test_rejects_other_port(self, policy):
        assert not policy.is_allowed("http://localhost:3001")

    def test_rejects_other_scheme(self, policy):
        assert not policy.is_allowed("http://invites.example.com")

    def test_rejects_lookalike_hosts(self, policy):
        assert not policy.is_allowed("https://invites.example.com.evil.io")
        assert not policy.is_allowed("https://evilinvites.example.com")
        assert not policy.is_allowed("https://sub.invites.example.com")

    def test_rejects_missing_origin(self, policy):
        assert not policy.is_allowed(None)
        assert not policy.is_allowed("null")

    def test_from_settings_includes_host_origin(self):
        from inviteflow.core.config import settings

        policy = OriginPolicy.from_settings()
        assert policy.is_allowed(settings.HOST_ORIGIN)
