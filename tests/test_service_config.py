"""
Tests for SSM-backed service configuration.
"""
import asyncio

import boto3
import pytest

from auth_service.cache import CachedFetchCoordinator
from auth_service.errors import ConfigurationError
from auth_service.service_config import ServiceConfig

AWS_REGION = "us-east-1"


class CountingSsmClient:
    """Wraps a boto3 SSM client and counts get_parameter calls."""

    def __init__(self, client):
        self._client = client
        self.get_calls = 0

    def get_parameter(self, **kwargs):
        self.get_calls += 1
        return self._client.get_parameter(**kwargs)


@pytest.fixture
def ssm(aws):
    client = boto3.client("ssm", region_name=AWS_REGION)
    client.put_parameter(Name="/test/stripe/key", Value="sk_test_123", Type="SecureString")
    client.put_parameter(Name="/test/feature/flag", Value="on", Type="String")
    return client


@pytest.fixture
def counting_ssm(ssm):
    return CountingSsmClient(ssm)


@pytest.fixture
def environ():
    return {
        "SERVICE_CONFIG_PARAM_STRIPE_KEY": "/test/stripe/key",
        "SERVICE_CONFIG_PARAM_FEATURE_FLAG": "/test/feature/flag",
        "SERVICE_CONFIG_PARAM_MISSING": "/test/does/not/exist",
        "UNRELATED": "ignored",
    }


@pytest.fixture
def config(counting_ssm, environ):
    return ServiceConfig(coordinator=CachedFetchCoordinator(), client=counting_ssm, environ=environ)


# =============================================================================
# Binding Tests
# =============================================================================

class TestBindings:

    def test_names_from_environment(self, config):
        assert config.names == ["FEATURE_FLAG", "MISSING", "STRIPE_KEY"]

    def test_dashes_are_normalized(self, config):
        assert config.parameter_path("stripe-key") == "/test/stripe/key"

    @pytest.mark.asyncio
    async def test_unbound_name(self, config):
        with pytest.raises(ConfigurationError):
            await config.get("not_bound")


# =============================================================================
# Fetch Tests
# =============================================================================

class TestGet:

    @pytest.mark.asyncio
    async def test_decrypts_secure_string(self, config):
        assert await config.get("STRIPE_KEY") == "sk_test_123"

    @pytest.mark.asyncio
    async def test_value_is_cached(self, config, counting_ssm):
        await config.get("FEATURE_FLAG")
        await config.get("feature-flag")

        assert counting_ssm.get_calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_gets_coalesce(self, config, counting_ssm):
        values = await asyncio.gather(*[config.get("STRIPE_KEY") for _ in range(5)])

        assert values == ["sk_test_123"] * 5
        assert counting_ssm.get_calls == 1

    @pytest.mark.asyncio
    async def test_missing_parameter_is_not_cached(self, config, counting_ssm):
        """A parameter that doesn't exist yet is looked up again next time"""
        assert await config.get("MISSING") is None
        assert await config.get("MISSING") is None

        assert counting_ssm.get_calls == 2

    @pytest.mark.asyncio
    async def test_parameter_created_later_is_picked_up(self, config, ssm):
        assert await config.get("MISSING") is None

        ssm.put_parameter(Name="/test/does/not/exist", Value="now", Type="String")

        assert await config.get("MISSING") == "now"
