"""
Service configuration backed by SSM Parameter Store.

Each named value is bound to a parameter path through an environment
variable, e.g. SERVICE_CONFIG_PARAM_STRIPE_KEY=/prod/stripe/key. Values are
cached for a few minutes; empty values are refetched on every call.
"""
import asyncio
import logging
import os
from typing import Any, Dict, Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv

from config.settings import settings

from .cache import (
    CachedFetchCoordinator,
    ConfigCategory,
    get_fetch_coordinator,
    get_ttl_for_category,
    is_empty_for_category,
)
from .errors import ConfigurationError, UpstreamFetchError

load_dotenv()

logger = logging.getLogger("service_config")

SOURCE = "ssm"
PARAMETER_NOT_FOUND = "ParameterNotFound"


def create_ssm_client():
    """Create an SSM client for the configured region."""
    return boto3.client("ssm", region_name=settings.aws_region)


def _normalize(name: str) -> str:
    return name.replace("-", "_").upper()


class ServiceConfig:
    """
    Named configuration values resolved from SSM parameters.

    Args:
        coordinator: Fetch coordinator (default: the process-wide one)
        client: boto3 SSM client (default: created lazily)
        environ: Mapping to read parameter bindings from (default: os.environ)
    """

    def __init__(
        self,
        coordinator: Optional[CachedFetchCoordinator] = None,
        client: Any = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self._coordinator = coordinator or get_fetch_coordinator()
        self._client = client
        self._bindings = self._load_bindings(os.environ if environ is None else environ)
        self._ttl = get_ttl_for_category(ConfigCategory.SERVICE_PARAMETER)

    @staticmethod
    def _load_bindings(environ: Mapping[str, str]) -> Dict[str, str]:
        prefix = settings.service_config_env_prefix
        return {
            _normalize(name[len(prefix):]): path
            for name, path in environ.items()
            if name.startswith(prefix) and path
        }

    @property
    def client(self):
        if self._client is None:
            self._client = create_ssm_client()
        return self._client

    @property
    def names(self):
        """Names of all bound configuration values."""
        return sorted(self._bindings)

    def parameter_path(self, name: str) -> str:
        """
        SSM parameter path bound to a configuration name.

        Raises:
            ConfigurationError: If nothing is bound to the name
        """
        path = self._bindings.get(_normalize(name))
        if path is None:
            raise ConfigurationError(
                f"No SSM parameter bound to config '{name}' "
                f"(set {settings.service_config_env_prefix}{_normalize(name)})"
            )
        return path

    async def get(self, name: str) -> Optional[str]:
        """
        Get a configuration value.

        Returns:
            The parameter value, or None if the parameter doesn't exist

        Raises:
            ConfigurationError: If nothing is bound to the name
            UpstreamFetchError: If SSM can't be reached
        """
        path = self.parameter_path(name)
        return await self._coordinator.get_or_fetch(
            f"ssm:{path}",
            lambda: self._fetch_parameter(path),
            ttl=self._ttl,
            is_empty=lambda value: is_empty_for_category(
                ConfigCategory.SERVICE_PARAMETER, value
            ),
        )

    async def _fetch_parameter(self, path: str) -> Optional[str]:
        try:
            response = await asyncio.to_thread(
                self.client.get_parameter, Name=path, WithDecryption=True
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == PARAMETER_NOT_FOUND:
                logger.warning(f"SSM parameter not found: {path}")
                return None
            logger.error(f"Failed to fetch SSM parameter {path}: {e}")
            raise UpstreamFetchError(SOURCE, f"Failed to fetch SSM parameter {path}") from e
        except BotoCoreError as e:
            logger.error(f"Failed to fetch SSM parameter {path}: {e}")
            raise UpstreamFetchError(SOURCE, f"Failed to fetch SSM parameter {path}") from e

        return response.get("Parameter", {}).get("Value")


_service_config: Optional[ServiceConfig] = None


def get_service_config() -> ServiceConfig:
    """Get or create the process-wide service config."""
    global _service_config
    if _service_config is None:
        _service_config = ServiceConfig()
    return _service_config
