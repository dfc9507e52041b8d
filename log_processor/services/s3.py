"""
Delivery of raw log objects to tenant S3 buckets by server-side copy
"""

import logging
from datetime import datetime, timezone
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from log_processor.config import ProcessorConfig
from log_processor.errors import DeliveryError, RoleAssumptionError
from log_processor.models.events import DeliveryAttempt, ObjectReference, TenantInfo
from log_processor.models.tenant import S3DeliveryConfig
from log_processor.services.credentials import RoleAssumer
from log_processor.services.metrics import MetricsPublisher

logger = logging.getLogger(__name__)

PERMANENT_S3_ERRORS = {
    'NoSuchBucket': "Destination S3 bucket '{bucket}' does not exist",
    'AccessDenied': "Access denied to S3 bucket '{bucket}'. Check bucket policy and central role permissions",
    'NoSuchKey': "Source object {source} not found",
}


def destination_key(source: ObjectReference, tenant: TenantInfo, bucket_prefix: str) -> str:
    """
    Key of the delivered copy: {prefix}{tenant}/{application}/{pod}/{filename}

    The cluster segment is left out so it is not exposed to the tenant.
    """
    return f"{bucket_prefix}{tenant.tenant_id}/{tenant.application}/{tenant.pod}/{source.filename}"


class S3DeliveryClient:
    """
    Copies collector objects into a tenant bucket

    Uses the central log distribution role when configured, otherwise the
    processor's own identity; tenant buckets grant access through their
    bucket policy.
    """

    method = 's3'

    def __init__(self, config: ProcessorConfig, role_assumer: RoleAssumer,
                 metrics: Optional[MetricsPublisher] = None):
        self.config = config
        self.role_assumer = role_assumer
        self.metrics = metrics

    def s3_client(self, tenant_id: str, region: str):
        central = self.role_assumer.central_credentials(tenant_id)
        kwargs = central.client_kwargs() if central is not None else {}
        return boto3.client('s3', region_name=region, config=self.config.botocore_config(), **kwargs)

    def deliver(self, source: ObjectReference, tenant: TenantInfo, destination: S3DeliveryConfig) -> DeliveryAttempt:
        """Copy one object; failures are returned on the attempt, never raised"""
        key = destination_key(source, tenant, destination.bucket_prefix)
        target = f"s3://{destination.bucket_name}/{key}"
        attempt = DeliveryAttempt(tenant_id=tenant.tenant_id, destination=target)

        region = destination.target_region or self.config.aws_region
        try:
            s3_client = self.s3_client(tenant.tenant_id, region)
        except RoleAssumptionError as e:
            attempt.fail(e)
            self._push_metrics(attempt)
            return attempt

        metadata = {
            'source-bucket': source.bucket,
            'source-key': source.key,
            'tenant-id': tenant.tenant_id,
            'application': tenant.application,
            'pod-name': tenant.pod,
            'delivery-timestamp': str(int(datetime.now(timezone.utc).timestamp()))
        }

        logger.info(f"Copying {source.uri} to {target} for tenant {tenant.tenant_id}")
        attempt.calls += 1
        try:
            s3_client.copy_object(
                Bucket=destination.bucket_name,
                Key=key,
                CopySource={'Bucket': source.bucket, 'Key': source.key},
                ACL='bucket-owner-full-control',
                Metadata=metadata,
                MetadataDirective='REPLACE'
            )
        except ClientError as e:
            error_code = e.response['Error']['Code']
            template = PERMANENT_S3_ERRORS.get(error_code)
            if template is not None:
                message = template.format(bucket=destination.bucket_name, source=source.uri)
            else:
                message = f"S3 copy to {target} failed with error {error_code}: {str(e)}"
            attempt.fail(DeliveryError(message, tenant_id=tenant.tenant_id, destination=target,
                                       permanent=template is not None))
        except BotoCoreError as e:
            attempt.fail(DeliveryError(f"S3 copy to {target} failed: {str(e)}",
                                       tenant_id=tenant.tenant_id, destination=target))

        if attempt.succeeded:
            logger.info(f"Delivered {source.uri} to {target}")
        else:
            logger.error(str(attempt.error))
        self._push_metrics(attempt)
        return attempt

    def _push_metrics(self, attempt: DeliveryAttempt) -> None:
        if self.metrics is None:
            return
        key = 'successful_delivery' if attempt.succeeded else 'failed_delivery'
        self.metrics.push(attempt.tenant_id, self.method, {key: 1})
