"""
DynamoDB lookup of tenant delivery configurations

The table uses a composite primary key:
    - Partition key: tenant_id (string)
    - Sort key: type (string)

Each item is one delivery configuration ("cloudwatch" or "s3") for a tenant.
"""

import logging
import threading
from typing import Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError
from pydantic import ValidationError

from log_processor.errors import TenantNotFoundError
from log_processor.models.tenant import TenantDestination, parse_delivery_config

logger = logging.getLogger(__name__)


class TenantConfigService:
    """Read-only access to tenant delivery configurations"""

    def __init__(self, table_name: str, region: str = "us-east-1", client_config: Optional[Config] = None):
        """
        Args:
            table_name: Name of the DynamoDB table
            region: AWS region for DynamoDB
            client_config: botocore config (timeouts, retries)
        """
        self.table_name = table_name
        self.region = region
        self.client_config = client_config
        self._table = None

    @property
    def table(self):
        """Lazy initialization of DynamoDB table"""
        if self._table is None:
            dynamodb = boto3.resource('dynamodb', region_name=self.region, config=self.client_config)
            self._table = dynamodb.Table(self.table_name)
        return self._table

    def get_delivery_configs(self, tenant_id: str) -> List[TenantDestination]:
        """
        Get all enabled, valid delivery configurations for a tenant

        Invalid items are logged and ignored.

        Raises:
            TenantNotFoundError: If the tenant has no enabled valid configuration
            botocore.exceptions.ClientError: For DynamoDB failures (retryable)
        """
        try:
            response = self.table.query(
                KeyConditionExpression='tenant_id = :tenant_id',
                ExpressionAttributeValues={':tenant_id': tenant_id}
            )
        except ClientError as e:
            error_code = e.response['Error']['Code']
            message = e.response['Error'].get('Message', '')
            # DynamoDB rejects empty key values; these come from malformed object paths
            if error_code == 'ValidationException' and 'empty string' in message:
                raise TenantNotFoundError(f"Invalid tenant_id (empty string): '{tenant_id}'")
            logger.error(f"DynamoDB error getting delivery configs for {tenant_id}: {error_code}")
            raise

        items = response.get('Items', [])
        if not items:
            raise TenantNotFoundError(f"No delivery configurations found for tenant: {tenant_id}")

        enabled_configs = []
        for item in items:
            try:
                config = parse_delivery_config(item)
            except ValidationError as e:
                logger.error(f"Ignoring invalid {item.get('type', 'unknown')} delivery config "
                             f"for tenant {tenant_id}: {e.error_count()} validation error(s)")
                continue
            if config.enabled:
                enabled_configs.append(config)

        if not enabled_configs:
            raise TenantNotFoundError(f"No enabled delivery configurations found for tenant: {tenant_id}")

        logger.info(f"Retrieved {len(enabled_configs)} enabled delivery config(s) for tenant {tenant_id}: "
                    f"{[config.type for config in enabled_configs]}")
        return enabled_configs


class TenantConfigCache:
    """
    Per-invocation cache in front of TenantConfigService

    Each distinct tenant is looked up at most once while the cache lives.
    Misses (TenantNotFoundError) are cached too. Safe for concurrent readers.
    """

    def __init__(self, service: TenantConfigService):
        self.service = service
        self._entries: Dict[str, object] = {}
        self._lock = threading.Lock()

    def get(self, tenant_id: str) -> List[TenantDestination]:
        with self._lock:
            entry = self._entries.get(tenant_id)
        if entry is None:
            try:
                entry = self.service.get_delivery_configs(tenant_id)
            except TenantNotFoundError as e:
                entry = e
            with self._lock:
                self._entries.setdefault(tenant_id, entry)
        if isinstance(entry, TenantNotFoundError):
            raise TenantNotFoundError(str(entry))
        return entry

    def warm(self, tenant_id: str, configs: List[TenantDestination]) -> None:
        """Pre-populate the cache for a tenant"""
        with self._lock:
            self._entries[tenant_id] = list(configs)

    def invalidate(self, tenant_id: Optional[str] = None) -> None:
        """Drop one tenant, or everything when tenant_id is None"""
        with self._lock:
            if tenant_id is None:
                self._entries.clear()
            else:
                self._entries.pop(tenant_id, None)

    def __contains__(self, tenant_id: str) -> bool:
        with self._lock:
            return tenant_id in self._entries
