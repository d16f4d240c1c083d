import json
import os
from collections.abc import Iterator

import boto3
import pytest
from moto import mock_aws

# Ensure AWS SDK has a region and fake credentials for moto
os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_SESSION_TOKEN", "testing")

# Environment variables read by farmwatch.config and farmwatch.auth
os.environ.setdefault("USERS_TABLE", "users")
os.environ.setdefault("AUTH_SECRET_NAME", "farmwatch/auth/accounts")


@pytest.fixture()
def aws_moto() -> Iterator[None]:
    with mock_aws():
        ddb = boto3.client("dynamodb")
        ddb.create_table(
            TableName=os.environ["USERS_TABLE"],
            AttributeDefinitions=[{"AttributeName": "uid", "AttributeType": "S"}],
            KeySchema=[{"AttributeName": "uid", "KeyType": "HASH"}],
            BillingMode="PAY_PER_REQUEST",
        )

        secrets = boto3.client("secretsmanager")
        secrets.create_secret(
            Name=os.environ["AUTH_SECRET_NAME"],
            SecretString=json.dumps(
                {
                    "accounts": [
                        {"username": "farmer", "password": "durian", "uid": "u-farmer"},
                        {"username": "admin", "password": "s3cret", "uid": "u-admin"},
                    ]
                }
            ),
        )

        yield
