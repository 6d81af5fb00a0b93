"""Configuration management using pydantic-settings."""
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # AWS configuration
    aws_region: str = "us-east-1"

    # DynamoDB main table (single-table design)
    main_table_name: str = "auth-main"
    main_table_email_index: str = "email-index"
    # Set to e.g. http://localhost:8000 to use DynamoDB Local
    dynamodb_endpoint_url: Optional[str] = None

    # SQL backend (SQLite by default)
    database_url: str = "sqlite:///./auth.db"

    # Cognito user pool client used by the auth flows
    cognito_user_pool_id: Optional[str] = None
    cognito_client_id: Optional[str] = None

    # Where user records live: "dynamodb", "sql" or "memory"
    user_store_backend: str = "dynamodb"

    # Optimistic locking
    versioned_update_max_retries: int = 10

    # Cache settings
    cache_default_ttl_seconds: int = 300

    # Environment variables with this prefix bind a service config name to an SSM path
    service_config_env_prefix: str = "SERVICE_CONFIG_PARAM_"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
