"""
CloudWatch metrics for delivery outcomes
"""

import logging
from typing import Dict, Optional

import boto3
from botocore.config import Config

logger = logging.getLogger(__name__)


class MetricsPublisher:
    """
    Publishes LogCount/{method}/{dimension} metrics per tenant

    Publishing is disabled when no namespace is configured. Failures are
    logged and never propagate to delivery.
    """

    def __init__(self, namespace: Optional[str], region: str = 'us-east-1', client_config: Optional[Config] = None):
        self.namespace = namespace
        self.region = region
        self.client_config = client_config
        self._client = None

    @property
    def enabled(self) -> bool:
        return bool(self.namespace)

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client('cloudwatch', region_name=self.region, config=self.client_config)
        return self._client

    def push(self, tenant_id: str, method: str, metrics_data: Dict[str, int]) -> None:
        if not self.enabled or not metrics_data:
            return

        post_data = []
        for metric_dimension, count in metrics_data.items():
            post_data.append({
                'MetricName': f'LogCount/{method}/{metric_dimension}',
                'Dimensions': [
                    {
                        'Name': 'Tenant',
                        'Value': tenant_id
                    },
                ],
                'Value': count,
                'Unit': 'Count'
            })

        try:
            self.client.put_metric_data(Namespace=self.namespace, MetricData=post_data)
        except Exception as e:
            logger.error(f"Failed to write {method} metrics for tenant {tenant_id}: {str(e)}")
