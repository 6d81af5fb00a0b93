"""
Tests for Cognito client secret lookup and caching.
"""
import asyncio

import boto3
import pytest

from auth_service.cache import CachedFetchCoordinator
from auth_service.cognito_config import CognitoConfigProvider
from auth_service.errors import ConfigurationError, UpstreamFetchError
from config.settings import settings

AWS_REGION = "us-east-1"


class CountingCognitoClient:
    """Wraps a boto3 client and counts describe_user_pool_client calls."""

    def __init__(self, client):
        self._client = client
        self.describe_calls = 0

    def describe_user_pool_client(self, **kwargs):
        self.describe_calls += 1
        return self._client.describe_user_pool_client(**kwargs)


@pytest.fixture
def cognito(aws):
    return boto3.client("cognito-idp", region_name=AWS_REGION)


@pytest.fixture
def user_pool_id(cognito):
    return cognito.create_user_pool(PoolName="auth-test")["UserPool"]["Id"]


@pytest.fixture
def app_client(cognito, user_pool_id):
    return cognito.create_user_pool_client(
        UserPoolId=user_pool_id,
        ClientName="web",
        GenerateSecret=True,
    )["UserPoolClient"]


@pytest.fixture
def counting_client(cognito):
    return CountingCognitoClient(cognito)


@pytest.fixture
def provider(counting_client):
    return CognitoConfigProvider(coordinator=CachedFetchCoordinator(), client=counting_client)


# =============================================================================
# Client Secret Tests
# =============================================================================

class TestClientSecret:

    @pytest.mark.asyncio
    async def test_fetches_secret(self, provider, user_pool_id, app_client):
        secret = await provider.get_client_secret(user_pool_id, app_client["ClientId"])
        assert secret == app_client["ClientSecret"]

    @pytest.mark.asyncio
    async def test_secret_is_cached(self, provider, counting_client, user_pool_id, app_client):
        await provider.get_client_secret(user_pool_id, app_client["ClientId"])
        await provider.get_client_secret(user_pool_id, app_client["ClientId"])

        assert counting_client.describe_calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_lookups_coalesce(self, provider, counting_client, user_pool_id, app_client):
        secrets = await asyncio.gather(*[
            provider.get_client_secret(user_pool_id, app_client["ClientId"])
            for _ in range(5)
        ])

        assert secrets == [app_client["ClientSecret"]] * 5
        assert counting_client.describe_calls == 1

    @pytest.mark.asyncio
    async def test_cache_key_is_pool_and_client(self, counting_client, user_pool_id, app_client):
        coordinator = CachedFetchCoordinator()
        provider = CognitoConfigProvider(coordinator=coordinator, client=counting_client)

        await provider.get_client_secret(user_pool_id, app_client["ClientId"])

        entry = coordinator.peek(f"{user_pool_id}:{app_client['ClientId']}")
        assert entry.value == app_client["ClientSecret"]

    @pytest.mark.asyncio
    async def test_client_without_secret(self, provider, cognito, user_pool_id):
        client_id = cognito.create_user_pool_client(
            UserPoolId=user_pool_id,
            ClientName="public",
            GenerateSecret=False,
        )["UserPoolClient"]["ClientId"]

        with pytest.raises(UpstreamFetchError) as exc_info:
            await provider.get_client_secret(user_pool_id, client_id)

        assert str(exc_info.value) == (
            f"Failed to fetch Cognito client secret for user pool {user_pool_id}"
        )
        assert exc_info.value.source == "cognito"

    @pytest.mark.asyncio
    async def test_unknown_client_is_not_cached(self, provider, counting_client, user_pool_id):
        for _ in range(2):
            with pytest.raises(UpstreamFetchError):
                await provider.get_client_secret(user_pool_id, "no-such-client")

        assert counting_client.describe_calls == 2


# =============================================================================
# Cognito Config Tests
# =============================================================================

class TestCognitoConfig:

    @pytest.mark.asyncio
    async def test_config_from_settings(self, provider, user_pool_id, app_client, monkeypatch):
        monkeypatch.setattr(settings, "cognito_user_pool_id", user_pool_id)
        monkeypatch.setattr(settings, "cognito_client_id", app_client["ClientId"])

        config = await provider.get_cognito_config()

        assert config.user_pool_id == user_pool_id
        assert config.client_id == app_client["ClientId"]
        assert config.client_secret == app_client["ClientSecret"]

    @pytest.mark.asyncio
    async def test_config_requires_ids(self, provider, monkeypatch):
        monkeypatch.setattr(settings, "cognito_user_pool_id", None)
        monkeypatch.setattr(settings, "cognito_client_id", None)

        with pytest.raises(ConfigurationError):
            await provider.get_cognito_config()
