"""
Unit tests for tenant delivery configuration lookup
"""
from unittest.mock import Mock

import pytest
from pydantic import ValidationError

from log_processor.errors import TenantNotFoundError
from log_processor.models.tenant import (
    CloudWatchDeliveryConfig,
    S3DeliveryConfig,
    expand_groups_to_applications,
    parse_delivery_config,
)
from log_processor.services.tenant_config import TenantConfigCache, TenantConfigService


class TestDeliveryConfigModels:

    def test_cloudwatch_config(self, sample_cloudwatch_config):
        config = parse_delivery_config(sample_cloudwatch_config)
        assert isinstance(config, CloudWatchDeliveryConfig)
        assert config.enabled is True
        assert config.external_id is None

    def test_s3_config_prefix_is_normalized(self, sample_s3_config):
        sample_s3_config['bucket_prefix'] = 'archive'
        config = parse_delivery_config(sample_s3_config)
        assert isinstance(config, S3DeliveryConfig)
        assert config.bucket_prefix == 'archive/'

    def test_s3_config_default_prefix(self, sample_s3_config):
        del sample_s3_config['bucket_prefix']
        assert parse_delivery_config(sample_s3_config).bucket_prefix == 'ROSA/cluster-logs/'

    def test_missing_enabled_means_enabled(self, sample_cloudwatch_config):
        sample_cloudwatch_config['enabled'] = None
        assert parse_delivery_config(sample_cloudwatch_config).enabled is True

    def test_invalid_role_arn(self, sample_cloudwatch_config):
        sample_cloudwatch_config['log_distribution_role_arn'] = 'not-an-arn'
        with pytest.raises(ValidationError):
            parse_delivery_config(sample_cloudwatch_config)

    def test_missing_required_field(self, sample_cloudwatch_config):
        del sample_cloudwatch_config['log_group_name']
        with pytest.raises(ValidationError):
            parse_delivery_config(sample_cloudwatch_config)

    def test_unknown_type(self, sample_cloudwatch_config):
        sample_cloudwatch_config['type'] = 'kinesis'
        with pytest.raises(ValidationError):
            parse_delivery_config(sample_cloudwatch_config)


class TestApplicationFiltering:

    def test_no_filters_accepts_everything(self, sample_cloudwatch_config):
        config = parse_delivery_config(sample_cloudwatch_config)
        assert config.allowed_applications() is None
        assert config.accepts_application('anything')

    def test_desired_logs(self, sample_cloudwatch_config):
        sample_cloudwatch_config['desired_logs'] = ['billing', 'payments']
        config = parse_delivery_config(sample_cloudwatch_config)
        assert config.accepts_application('billing')
        assert not config.accepts_application('frontend')
        # Matching is case-sensitive
        assert not config.accepts_application('Billing')

    def test_groups_are_expanded(self, sample_cloudwatch_config):
        sample_cloudwatch_config['groups'] = ['api']
        config = parse_delivery_config(sample_cloudwatch_config)
        assert config.accepts_application('kube-apiserver')
        assert not config.accepts_application('kube-scheduler')

    def test_desired_logs_and_groups_combine(self, sample_cloudwatch_config):
        sample_cloudwatch_config['desired_logs'] = ['billing']
        sample_cloudwatch_config['groups'] = ['Scheduler']
        config = parse_delivery_config(sample_cloudwatch_config)
        assert config.allowed_applications() == {'billing', 'kube-scheduler'}

    def test_unknown_group_only_accepts_everything(self, sample_cloudwatch_config):
        sample_cloudwatch_config['groups'] = ['does-not-exist']
        assert parse_delivery_config(sample_cloudwatch_config).allowed_applications() is None

    def test_expand_groups_case_insensitive(self):
        assert expand_groups_to_applications(['AUTHENTICATION']) == ['oauth-server', 'oauth-apiserver']


class TestTenantConfigService:

    def test_enabled_configs_are_returned(self, dynamodb_table, sample_cloudwatch_config, sample_s3_config):
        dynamodb_table.put_item(Item=sample_cloudwatch_config)
        dynamodb_table.put_item(Item=sample_s3_config)
        service = TenantConfigService('test-tenant-configs', 'us-east-1')

        configs = service.get_delivery_configs('acme')

        assert sorted(config.type for config in configs) == ['cloudwatch', 's3']

    def test_disabled_configs_are_filtered(self, dynamodb_table, sample_cloudwatch_config, sample_s3_config):
        sample_s3_config['enabled'] = False
        dynamodb_table.put_item(Item=sample_cloudwatch_config)
        dynamodb_table.put_item(Item=sample_s3_config)
        service = TenantConfigService('test-tenant-configs', 'us-east-1')

        configs = service.get_delivery_configs('acme')

        assert [config.type for config in configs] == ['cloudwatch']

    def test_unknown_tenant(self, dynamodb_table):
        service = TenantConfigService('test-tenant-configs', 'us-east-1')
        with pytest.raises(TenantNotFoundError) as exc_info:
            service.get_delivery_configs('nobody')
        assert 'No delivery configurations found' in str(exc_info.value)

    def test_all_disabled(self, dynamodb_table, sample_cloudwatch_config):
        sample_cloudwatch_config['enabled'] = False
        dynamodb_table.put_item(Item=sample_cloudwatch_config)
        service = TenantConfigService('test-tenant-configs', 'us-east-1')
        with pytest.raises(TenantNotFoundError) as exc_info:
            service.get_delivery_configs('acme')
        assert 'No enabled delivery configurations' in str(exc_info.value)

    def test_invalid_configs_are_ignored(self, dynamodb_table, sample_cloudwatch_config, sample_s3_config):
        del sample_s3_config['bucket_name']
        dynamodb_table.put_item(Item=sample_cloudwatch_config)
        dynamodb_table.put_item(Item=sample_s3_config)
        service = TenantConfigService('test-tenant-configs', 'us-east-1')

        configs = service.get_delivery_configs('acme')

        assert [config.type for config in configs] == ['cloudwatch']

    def test_missing_table_propagates(self, mock_aws_services):
        from botocore.exceptions import ClientError
        service = TenantConfigService('missing-table', 'us-east-1')
        with pytest.raises(ClientError):
            service.get_delivery_configs('acme')


class TestTenantConfigCache:

    def test_each_tenant_looked_up_once(self, sample_cloudwatch_config):
        service = Mock()
        service.get_delivery_configs.return_value = [parse_delivery_config(sample_cloudwatch_config)]
        cache = TenantConfigCache(service)

        cache.get('acme')
        cache.get('acme')

        service.get_delivery_configs.assert_called_once_with('acme')

    def test_not_found_is_cached(self):
        service = Mock()
        service.get_delivery_configs.side_effect = TenantNotFoundError("No delivery configurations found for tenant: x")
        cache = TenantConfigCache(service)

        for _ in range(2):
            with pytest.raises(TenantNotFoundError):
                cache.get('x')

        service.get_delivery_configs.assert_called_once_with('x')

    def test_transient_errors_are_not_cached(self, sample_cloudwatch_config):
        service = Mock()
        service.get_delivery_configs.side_effect = [
            RuntimeError('throttled'),
            [parse_delivery_config(sample_cloudwatch_config)],
        ]
        cache = TenantConfigCache(service)

        with pytest.raises(RuntimeError):
            cache.get('acme')
        assert len(cache.get('acme')) == 1

    def test_warm_and_invalidate(self, sample_cloudwatch_config):
        service = Mock()
        service.get_delivery_configs.return_value = []
        cache = TenantConfigCache(service)
        cache.warm('acme', [parse_delivery_config(sample_cloudwatch_config)])

        assert 'acme' in cache
        assert len(cache.get('acme')) == 1
        service.get_delivery_configs.assert_not_called()

        cache.invalidate('acme')
        assert 'acme' not in cache
        cache.get('acme')
        service.get_delivery_configs.assert_called_once_with('acme')
