"""
Cognito app client configuration.

The client secret is only available from the Cognito control plane, so it is
fetched once per TTL window and shared by every concurrent caller through the
fetch coordinator.
"""
import asyncio
import logging
from typing import Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from config.settings import settings

from .cache import (
    CachedFetchCoordinator,
    ConfigCategory,
    get_fetch_coordinator,
    get_ttl_for_category,
)
from .errors import ConfigurationError, UpstreamFetchError
from .schemas import CognitoConfig

logger = logging.getLogger("cognito_config")

SOURCE = "cognito"


def create_cognito_client():
    """Create a Cognito Identity Provider client for the configured region."""
    return boto3.client("cognito-idp", region_name=settings.aws_region)


class CognitoConfigProvider:
    """
    Resolves Cognito app client settings, caching client secrets.

    Args:
        coordinator: Fetch coordinator (default: the process-wide one)
        client: boto3 cognito-idp client (default: created lazily)
        ttl_seconds: Secret cache TTL (default: CLIENT_SECRET policy)
    """

    def __init__(
        self,
        coordinator: Optional[CachedFetchCoordinator] = None,
        client: Any = None,
        ttl_seconds: Optional[float] = None,
    ):
        self._coordinator = coordinator or get_fetch_coordinator()
        self._client = client
        self._ttl = (
            ttl_seconds if ttl_seconds is not None
            else get_ttl_for_category(ConfigCategory.CLIENT_SECRET)
        )

    @property
    def client(self):
        if self._client is None:
            self._client = create_cognito_client()
        return self._client

    async def get_client_secret(self, user_pool_id: str, client_id: str) -> str:
        """
        Get the secret of a Cognito app client.

        Raises:
            UpstreamFetchError: If Cognito can't be reached or the client has no secret
        """
        return await self._coordinator.get_or_fetch(
            f"{user_pool_id}:{client_id}",
            lambda: self._fetch_client_secret(user_pool_id, client_id),
            ttl=self._ttl,
        )

    async def get_cognito_config(self) -> CognitoConfig:
        """Get user pool id, client id and client secret for the configured app client."""
        user_pool_id = settings.cognito_user_pool_id
        client_id = settings.cognito_client_id
        if not user_pool_id or not client_id:
            raise ConfigurationError(
                "COGNITO_USER_POOL_ID and COGNITO_CLIENT_ID must be set"
            )

        client_secret = await self.get_client_secret(user_pool_id, client_id)
        return CognitoConfig(
            user_pool_id=user_pool_id,
            client_id=client_id,
            client_secret=client_secret,
        )

    async def _fetch_client_secret(self, user_pool_id: str, client_id: str) -> str:
        message = f"Failed to fetch Cognito client secret for user pool {user_pool_id}"
        try:
            response = await asyncio.to_thread(
                self.client.describe_user_pool_client,
                UserPoolId=user_pool_id,
                ClientId=client_id,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"{message}: {e}")
            raise UpstreamFetchError(SOURCE, message) from e

        secret = response.get("UserPoolClient", {}).get("ClientSecret")
        if not secret:
            logger.error(f"{message}: client {client_id} has no secret")
            raise UpstreamFetchError(SOURCE, message)

        logger.info(f"Fetched Cognito client secret for {user_pool_id}:{client_id}")
        return secret
