"""
Test configuration and fixtures for unit tests
"""
import os

import boto3
import pytest
from moto import mock_aws

from log_processor.config import ProcessorConfig
from tests.utils.builders import CENTRAL_ROLE_ARN, SOURCE_BUCKET, TENANT_ROLE_ARN


@pytest.fixture
def aws_credentials():
    """Mocked AWS Credentials for moto."""
    os.environ['AWS_ACCESS_KEY_ID'] = 'testing'
    os.environ['AWS_SECRET_ACCESS_KEY'] = 'testing'
    os.environ['AWS_SECURITY_TOKEN'] = 'testing'
    os.environ['AWS_SESSION_TOKEN'] = 'testing'
    os.environ['AWS_DEFAULT_REGION'] = 'us-east-1'


@pytest.fixture
def mock_aws_services(aws_credentials):
    """Mock all AWS services."""
    with mock_aws():
        yield


@pytest.fixture
def environment_variables():
    """Set up test environment variables."""
    test_env = {
        'TENANT_CONFIG_TABLE': 'test-tenant-configs',
        'CENTRAL_LOG_DISTRIBUTION_ROLE_ARN': CENTRAL_ROLE_ARN,
        'AWS_REGION': 'us-east-1',
        'MAX_BATCH_SIZE': '1000',
        'RETRY_ATTEMPTS': '3',
        'SQS_QUEUE_URL': 'https://sqs.us-east-1.amazonaws.com/123456789012/test-queue'
    }

    original_env = {}
    for key, value in test_env.items():
        original_env[key] = os.environ.get(key)
        os.environ[key] = value

    yield test_env

    for key, value in original_env.items():
        if value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = value


@pytest.fixture
def processor_config():
    return ProcessorConfig(
        tenant_config_table='test-tenant-configs',
        aws_region='us-east-1',
        central_role_arn=CENTRAL_ROLE_ARN,
    )


@pytest.fixture
def dynamodb_table(mock_aws_services):
    """Tenant configuration table with composite key (tenant_id + type)"""
    dynamodb = boto3.resource('dynamodb', region_name='us-east-1')
    table = dynamodb.create_table(
        TableName='test-tenant-configs',
        KeySchema=[
            {'AttributeName': 'tenant_id', 'KeyType': 'HASH'},
            {'AttributeName': 'type', 'KeyType': 'RANGE'}
        ],
        AttributeDefinitions=[
            {'AttributeName': 'tenant_id', 'AttributeType': 'S'},
            {'AttributeName': 'type', 'AttributeType': 'S'}
        ],
        BillingMode='PAY_PER_REQUEST'
    )
    return table


@pytest.fixture
def sample_cloudwatch_config():
    """Sample CloudWatch delivery config for testing"""
    return {
        'tenant_id': 'acme',
        'type': 'cloudwatch',
        'log_distribution_role_arn': TENANT_ROLE_ARN,
        'log_group_name': '/aws/logs/acme',
        'target_region': 'us-east-1',
        'enabled': True,
    }


@pytest.fixture
def sample_s3_config():
    """Sample S3 delivery config for testing"""
    return {
        'tenant_id': 'acme',
        'type': 's3',
        'bucket_name': 'acme-log-archive',
        'bucket_prefix': 'logs/',
        'target_region': 'us-east-1',
        'enabled': True,
    }


@pytest.fixture
def source_bucket(mock_aws_services):
    s3 = boto3.client('s3', region_name='us-east-1')
    s3.create_bucket(Bucket=SOURCE_BUCKET)
    return SOURCE_BUCKET

