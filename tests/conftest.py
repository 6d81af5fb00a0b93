"""
Shared fixtures: stores for every backend, and mocked AWS.
"""
import boto3
import pytest
from moto import mock_aws

from auth_service.db import init_db, make_engine, make_session_factory
from auth_service.models import User as UserModel
from auth_service.store import (
    DynamoVersionedStore,
    InMemoryVersionedStore,
    SqlVersionedStore,
)

AWS_REGION = "us-east-1"
TABLE_NAME = "auth-main-test"
EMAIL_INDEX = "email-index"


# =============================================================================
# AWS
# =============================================================================

@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never talks to a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", AWS_REGION)


@pytest.fixture
def aws(aws_credentials):
    """All boto3 calls inside the test go to moto."""
    with mock_aws():
        yield


@pytest.fixture
def dynamodb(aws):
    """DynamoDB resource with the main table (id key, email GSI) created."""
    resource = boto3.resource("dynamodb", region_name=AWS_REGION)
    resource.create_table(
        TableName=TABLE_NAME,
        KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
        AttributeDefinitions=[
            {"AttributeName": "id", "AttributeType": "S"},
            {"AttributeName": "email", "AttributeType": "S"},
        ],
        GlobalSecondaryIndexes=[
            {
                "IndexName": EMAIL_INDEX,
                "KeySchema": [{"AttributeName": "email", "KeyType": "HASH"}],
                "Projection": {"ProjectionType": "ALL"},
            }
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    return resource


# =============================================================================
# Stores
# =============================================================================

@pytest.fixture
def memory_store():
    return InMemoryVersionedStore("user")


@pytest.fixture
def sql_store(tmp_path):
    """SQLite file database, one per test."""
    engine = make_engine(f"sqlite:///{tmp_path / 'auth.db'}")
    init_db(engine)
    yield SqlVersionedStore(UserModel, make_session_factory(engine), entity_name="user")
    engine.dispose()


@pytest.fixture
def dynamo_store(dynamodb):
    return DynamoVersionedStore(
        TABLE_NAME,
        "user",
        indexes={"email": EMAIL_INDEX},
        resource=dynamodb,
    )


@pytest.fixture(params=["memory_store", "sql_store", "dynamo_store"])
def any_store(request):
    """Runs the test once against each store backend."""
    return request.getfixturevalue(request.param)
