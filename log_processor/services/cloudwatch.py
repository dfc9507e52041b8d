"""
Delivery of normalized events to CloudWatch Logs in tenant accounts
"""

import logging
from typing import Iterable, Iterator, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from log_processor.config import CLOUDWATCH_EVENT_OVERHEAD_BYTES, ProcessorConfig
from log_processor.errors import DeliveryError, RoleAssumptionError
from log_processor.models.events import DeliveryAttempt, LogBatch, LogEvent
from log_processor.models.tenant import CloudWatchDeliveryConfig
from log_processor.services.credentials import RoleAssumer
from log_processor.services.metrics import MetricsPublisher

logger = logging.getLogger(__name__)

# A single PutLogEvents call cannot span more than 24 hours
MAX_BATCH_SPAN_MS = 24 * 60 * 60 * 1000

# Errors that mean the cached tenant credentials are no longer usable
CREDENTIAL_ERRORS = {
    'ExpiredTokenException',
    'ExpiredToken',
    'UnrecognizedClientException',
    'InvalidClientTokenId',
    'AccessDeniedException',
}

# Errors that retrying the same request will not fix
PERMANENT_ERRORS = {
    'AccessDeniedException',
    'InvalidParameterException',
    'ResourceNotFoundException',
}


def event_size(event: LogEvent) -> int:
    """Bytes an event counts for against the PutLogEvents payload limit"""
    return len(event.message.encode('utf-8')) + CLOUDWATCH_EVENT_OVERHEAD_BYTES


def chunk_events(
    events: Iterable[LogEvent],
    max_events: int = 1000,
    max_bytes: int = 1048576,
    max_span_ms: int = MAX_BATCH_SPAN_MS,
) -> Iterator[List[LogEvent]]:
    """
    Split events into PutLogEvents sized sub-batches

    A sub-batch is closed when adding the next event would exceed the event
    count, the byte limit, or the 24 hour span. Events are expected in
    timestamp order.
    """
    current: List[LogEvent] = []
    current_bytes = 0
    for event in events:
        size = event_size(event)
        if current and (
            len(current) >= max_events or
            current_bytes + size > max_bytes or
            event.timestamp_ms - current[0].timestamp_ms > max_span_ms
        ):
            yield current
            current = []
            current_bytes = 0
        current.append(event)
        current_bytes += size
    if current:
        yield current


def count_rejected(response: dict, batch_length: int) -> int:
    rejected_info = response.get('rejectedLogEventsInfo') or {}
    rejected_count = 0
    if rejected_info.get('tooNewLogEventStartIndex') is not None:
        rejected_count += batch_length - rejected_info['tooNewLogEventStartIndex']
    if rejected_info.get('tooOldLogEventEndIndex') is not None:
        rejected_count += rejected_info['tooOldLogEventEndIndex'] + 1
    if rejected_info.get('expiredLogEventEndIndex') is not None:
        rejected_count += rejected_info['expiredLogEventEndIndex'] + 1
    if rejected_count:
        logger.warning(f"CloudWatch rejected {rejected_count} events: {rejected_info}")
    return min(rejected_count, batch_length)


def ensure_log_group_and_stream_exist(logs_client, log_group: str, log_stream: str) -> None:
    """
    Ensure log group and log stream exist, creating them if necessary
    """
    groups = logs_client.describe_log_groups(logGroupNamePrefix=log_group)
    for group in groups['logGroups']:
        if group['logGroupName'] == log_group:
            break
    else:
        logger.info(f"Creating log group: {log_group}")
        try:
            logs_client.create_log_group(logGroupName=log_group)
        except ClientError as e:
            if e.response['Error']['Code'] != 'ResourceAlreadyExistsException':
                raise

    streams = logs_client.describe_log_streams(
        logGroupName=log_group,
        logStreamNamePrefix=log_stream
    )
    for stream in streams['logStreams']:
        if stream['logStreamName'] == log_stream:
            break
    else:
        logger.info(f"Creating log stream: {log_stream} in group: {log_group}")
        try:
            logs_client.create_log_stream(logGroupName=log_group, logStreamName=log_stream)
        except ClientError as e:
            if e.response['Error']['Code'] != 'ResourceAlreadyExistsException':
                raise


def _delivery_error(e: Exception, batch: LogBatch, destination: str, action: str) -> DeliveryError:
    if isinstance(e, ClientError):
        error_code = e.response['Error']['Code']
        return DeliveryError(
            f"{action} failed for tenant {batch.tenant_id}: {error_code}: {e.response['Error'].get('Message', '')}",
            tenant_id=batch.tenant_id, destination=destination,
            permanent=error_code in PERMANENT_ERRORS,
        )
    return DeliveryError(f"{action} failed for tenant {batch.tenant_id}: {str(e)}",
                         tenant_id=batch.tenant_id, destination=destination)


class CloudWatchDeliveryClient:
    """Writes LogBatches to a tenant's CloudWatch Logs group"""

    method = 'cloudwatch'

    def __init__(self, config: ProcessorConfig, role_assumer: RoleAssumer,
                 metrics: Optional[MetricsPublisher] = None):
        self.config = config
        self.role_assumer = role_assumer
        self.metrics = metrics

    def logs_client(self, credentials, region: str):
        return boto3.client('logs', region_name=region, config=self.config.botocore_config(),
                            **credentials.client_kwargs())

    def deliver(self, batch: LogBatch, destination: CloudWatchDeliveryConfig) -> DeliveryAttempt:
        """
        Deliver a batch to the tenant's log group

        The stream is named after the pod. Events are sorted by timestamp and
        sent in sub-batches; the first failing call ends the attempt.

        Returns:
            DeliveryAttempt; ``error`` is set when any call failed
        """
        log_group = destination.log_group_name
        log_stream = batch.tenant.pod
        target = f"cloudwatch:{log_group}/{log_stream}"
        attempt = DeliveryAttempt(tenant_id=batch.tenant_id, destination=target, event_count=len(batch))

        if not batch.events:
            logger.info(f"No events to deliver to {target} for tenant {batch.tenant_id}")
            return attempt

        try:
            credentials = self.role_assumer.tenant_credentials(
                batch.tenant_id, destination.log_distribution_role_arn, destination.external_id
            )
        except RoleAssumptionError as e:
            attempt.fail(e)
            self._push_metrics(attempt)
            return attempt

        region = destination.target_region or self.config.aws_region
        logs_client = self.logs_client(credentials, region)
        logger.info(f"Delivering {len(batch)} events to {target} in {region} for tenant {batch.tenant_id}")

        try:
            ensure_log_group_and_stream_exist(logs_client, log_group, log_stream)
        except (ClientError, BotoCoreError) as e:
            self._handle_client_error(e, destination, batch)
            attempt.fail(_delivery_error(e, batch, target, 'Preparing log stream'))
            self._push_metrics(attempt)
            return attempt

        events = sorted(batch.events, key=lambda event: event.timestamp_ms)
        for chunk in chunk_events(events, self.config.max_batch_size, self.config.max_batch_bytes):
            attempt.calls += 1
            try:
                response = logs_client.put_log_events(
                    logGroupName=log_group,
                    logStreamName=log_stream,
                    logEvents=[event.to_cloudwatch() for event in chunk]
                )
            except (ClientError, BotoCoreError) as e:
                self._handle_client_error(e, destination, batch)
                attempt.fail(_delivery_error(e, batch, target, f"PutLogEvents call {attempt.calls}"))
                logger.error(f"Failed to send batch {attempt.calls} of {len(chunk)} events to {target}: {str(e)}")
                break

            rejected = count_rejected(response, len(chunk))
            attempt.rejected_events += rejected
            attempt.delivered_events += len(chunk) - rejected
            logger.debug(f"Sent batch {attempt.calls}: {len(chunk) - rejected} accepted, {rejected} rejected")

        if attempt.succeeded:
            logger.info(f"Delivered {attempt.delivered_events} events to {target} in {attempt.calls} call(s)")
        self._push_metrics(attempt)
        return attempt

    def _handle_client_error(self, e: Exception, destination: CloudWatchDeliveryConfig, batch: LogBatch) -> None:
        if isinstance(e, ClientError) and e.response['Error']['Code'] in CREDENTIAL_ERRORS:
            logger.warning(f"Dropping cached credentials for tenant {batch.tenant_id} after "
                           f"{e.response['Error']['Code']}")
            self.role_assumer.invalidate(batch.tenant_id, destination.log_distribution_role_arn)

    def _push_metrics(self, attempt: DeliveryAttempt) -> None:
        if self.metrics is None:
            return
        if attempt.succeeded:
            data = {
                'successful_events': attempt.delivered_events,
                'failed_events': attempt.rejected_events,
                'successful_delivery': 1,
            }
        else:
            data = {'failed_delivery': 1}
        self.metrics.push(attempt.tenant_id, self.method, data)
