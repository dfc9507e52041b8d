"""
Batch orchestration: one queue batch in, one outcome per message out

Every message is handled on its own. Input that can never be delivered
(bad envelope, unresolvable key, unknown tenant, undecodable object) is
dropped and counted; any other error fails only that message, which the
queue then redelivers under its redrive policy.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from log_processor.codec import DecodeStats, decode_object
from log_processor.config import ProcessorConfig
from log_processor.errors import MalformedObjectError, NonRecoverableError, TenantNotFoundError
from log_processor.models.events import (
    BatchResult,
    DeliveryAttempt,
    ItemOutcome,
    ItemStatus,
    LogBatch,
    LogEvent,
    ObjectReference,
)
from log_processor.models.tenant import CloudWatchDeliveryConfig, S3DeliveryConfig
from log_processor.normalizer import NormalizeStats, normalize_record
from log_processor.notifications import object_references
from log_processor.redrive import RedrivePolicy, receive_count
from log_processor.resolver import resolve_tenant
from log_processor.services.cloudwatch import CloudWatchDeliveryClient
from log_processor.services.credentials import RoleAssumer
from log_processor.services.metrics import MetricsPublisher
from log_processor.services.s3 import S3DeliveryClient
from log_processor.services.storage import ObjectStore
from log_processor.services.tenant_config import TenantConfigCache, TenantConfigService
from log_processor.utils.logger import format_fields

logger = logging.getLogger(__name__)

NOT_PROCESSED_REASON = "not processed before shutdown"


@dataclass
class ObjectResult:
    """What happened to one object of a message"""
    reference: ObjectReference
    tenant_id: Optional[str] = None
    skipped_reason: Optional[str] = None
    event_count: int = 0
    attempts: List[DeliveryAttempt] = field(default_factory=list)

    @property
    def error(self) -> Optional[Exception]:
        for attempt in self.attempts:
            if not attempt.succeeded:
                return attempt.error
        return None


class BatchOrchestrator:
    """Drives decode, normalize, resolve and deliver for each queue message"""

    def __init__(
        self,
        config: ProcessorConfig,
        tenant_configs: TenantConfigService,
        object_store: ObjectStore,
        cloudwatch_client: CloudWatchDeliveryClient,
        s3_client: S3DeliveryClient,
        redrive_policy: Optional[RedrivePolicy] = None,
    ):
        self.config = config
        self.tenant_configs = tenant_configs
        self.object_store = object_store
        self.cloudwatch_client = cloudwatch_client
        self.s3_client = s3_client
        self.redrive_policy = redrive_policy or RedrivePolicy(max_receive_count=config.retry_attempts)

    @classmethod
    def from_config(cls, config: ProcessorConfig, redrive_policy: Optional[RedrivePolicy] = None) -> 'BatchOrchestrator':
        client_config = config.botocore_config()
        metrics = MetricsPublisher(config.metrics_namespace, config.aws_region, client_config)
        role_assumer = RoleAssumer(config)
        return cls(
            config=config,
            tenant_configs=TenantConfigService(config.tenant_config_table, config.aws_region, client_config),
            object_store=ObjectStore(config.aws_region, client_config),
            cloudwatch_client=CloudWatchDeliveryClient(config, role_assumer, metrics),
            s3_client=S3DeliveryClient(config, role_assumer, metrics),
            redrive_policy=redrive_policy,
        )

    def process_batch(
        self,
        records: List[Dict[str, Any]],
        should_stop: Optional[Callable[[], bool]] = None,
        tenant_cache: Optional[TenantConfigCache] = None,
    ) -> BatchResult:
        """
        Process a batch of SQS records

        Args:
            records: Lambda SQS event records (``messageId``, ``body``, ``attributes``)
            should_stop: Polled before each record; once it returns True the
                remaining records are reported as failed so they are redelivered
            tenant_cache: Tenant configuration cache; a fresh one per batch by default

        Returns:
            BatchResult with one outcome per record, in input order
        """
        result = BatchResult()
        if tenant_cache is None:
            tenant_cache = TenantConfigCache(self.tenant_configs)

        logger.info(f"Processing {len(records)} SQS messages")
        seen_ids = set()

        for index, record in enumerate(records):
            item_id = record.get('messageId') or f"item-{index}"
            if item_id in seen_ids:
                logger.warning(f"Duplicate message id {item_id} in batch")
            seen_ids.add(item_id)

            if should_stop is not None and should_stop():
                logger.warning(f"Stopping before message {item_id}; {len(records) - index} message(s) left for redelivery")
                for remaining_index, remaining in enumerate(records[index:], start=index):
                    remaining_id = remaining.get('messageId') or f"item-{remaining_index}"
                    result.add(ItemOutcome(item_id=remaining_id, status=ItemStatus.FAILED,
                                           reason=NOT_PROCESSED_REASON))
                break

            outcome = self.process_item(item_id, record, tenant_cache, result)
            result.add(outcome)
            self._log_outcome(outcome, record)

        logger.info(
            f"Processing complete. Delivered: {result.count(ItemStatus.DELIVERED)}, "
            f"Skipped: {result.count(ItemStatus.SKIPPED)}, Failed: {result.count(ItemStatus.FAILED)}, "
            f"Events delivered: {result.events_delivered}, Malformed lines: {result.malformed_lines}, "
            f"Dropped records: {result.dropped_records}, Unresolved objects: {result.unresolved_objects}"
        )
        return result

    def process_item(self, item_id: str, record: Dict[str, Any], tenant_cache: TenantConfigCache,
                     result: BatchResult) -> ItemOutcome:
        """Process one SQS record; never raises"""
        outcome = ItemOutcome(item_id=item_id, status=ItemStatus.SKIPPED)
        try:
            outcome.objects = object_references(record.get('body'))
            if not outcome.objects:
                outcome.reason = "message names no objects"
                return outcome

            object_results = []
            for reference in outcome.objects:
                logger.info(f"Processing S3 object: {reference.uri}")
                object_results.append(self.process_object(reference, tenant_cache, result))
        except NonRecoverableError as e:
            outcome.reason = str(e)
            return outcome
        except Exception as e:
            logger.error(f"Recoverable error processing message {item_id}: {str(e)}", exc_info=True)
            outcome.status = ItemStatus.FAILED
            outcome.reason = str(e)
            return outcome

        tenant_ids = [r.tenant_id for r in object_results if r.tenant_id]
        outcome.tenant_id = ','.join(dict.fromkeys(tenant_ids)) or None
        outcome.event_count = sum(r.event_count for r in object_results)

        errors = [r.error for r in object_results if r.error is not None]
        if errors:
            outcome.status = ItemStatus.FAILED
            outcome.reason = str(errors[0])
        elif any(r.attempts for r in object_results):
            outcome.status = ItemStatus.DELIVERED
        else:
            outcome.reason = '; '.join(r.skipped_reason for r in object_results if r.skipped_reason)
        return outcome

    def process_object(self, reference: ObjectReference, tenant_cache: TenantConfigCache,
                       result: BatchResult) -> ObjectResult:
        """
        Deliver one object to every matching destination of its tenant

        Raises:
            Exception: Recoverable failures reading the tenant config or the object
        """
        object_result = ObjectResult(reference=reference)

        tenant = resolve_tenant(reference.key)
        if tenant is None:
            result.unresolved_objects += 1
            object_result.skipped_reason = f"unresolved object key {reference.key}"
            return object_result
        object_result.tenant_id = tenant.tenant_id

        try:
            destinations = tenant_cache.get(tenant.tenant_id)
        except TenantNotFoundError as e:
            logger.warning(f"Tenant not found for S3 object {reference.key}: {str(e)}")
            object_result.skipped_reason = str(e)
            return object_result

        matching = [d for d in destinations if d.accepts_application(tenant.application)]
        if not matching:
            logger.info(f"Skipping application '{tenant.application}' for tenant '{tenant.tenant_id}' "
                        f"due to desired_logs filtering")
            object_result.skipped_reason = f"no destination accepts application {tenant.application}"
            return object_result

        cloudwatch_destinations = [d for d in matching if isinstance(d, CloudWatchDeliveryConfig)]
        s3_destinations = [d for d in matching if isinstance(d, S3DeliveryConfig)]

        for destination in s3_destinations:
            object_result.attempts.append(self.s3_client.deliver(reference, tenant, destination))

        if cloudwatch_destinations:
            try:
                events = self.load_events(reference, result)
            except MalformedObjectError as e:
                logger.warning(f"Dropping malformed object {reference.uri}: {str(e)}")
                if not object_result.attempts:
                    object_result.skipped_reason = str(e)
                return object_result

            object_result.event_count = len(events)
            for destination in cloudwatch_destinations:
                # Each attempt gets its own batch
                batch = LogBatch(tenant=tenant, events=list(events))
                attempt = self.cloudwatch_client.deliver(batch, destination)
                object_result.attempts.append(attempt)
                result.events_delivered += attempt.delivered_events

        return object_result

    def load_events(self, reference: ObjectReference, result: BatchResult) -> List[LogEvent]:
        """
        Fetch, decode and normalize an object

        Raises:
            MalformedObjectError: If the object is gone or cannot be decoded
        """
        stored = self.object_store.fetch(reference)
        decode_stats = DecodeStats()
        normalize_stats = NormalizeStats()
        events = []
        for raw_record in decode_object(stored.content, reference.key, decode_stats):
            parsed = normalize_record(raw_record, normalize_stats)
            if isinstance(parsed, LogEvent):
                events.append(parsed)

        result.malformed_lines += decode_stats.malformed_lines
        result.dropped_records += normalize_stats.skipped

        if decode_stats.malformed_lines:
            logger.warning(f"Skipped {decode_stats.malformed_lines} malformed line(s) in {reference.uri}")
        if normalize_stats.skipped:
            logger.warning(f"Dropped {normalize_stats.skipped} non-object record(s) in {reference.uri}")
        if normalize_stats.timestamp_fallbacks:
            logger.warning(f"{normalize_stats.timestamp_fallbacks} record(s) in {reference.uri} had "
                           f"unparseable timestamps and were given the current time")
        if not events:
            logger.warning(f"No valid log events in {reference.uri} ({decode_stats.format}, "
                           f"{decode_stats.records} record(s), {decode_stats.malformed_lines} malformed line(s))")
        else:
            logger.info(f"Processed {len(events)} log events from {reference.uri} ({decode_stats.format})")
        return events

    def _log_outcome(self, outcome: ItemOutcome, record: Dict[str, Any]) -> None:
        first = outcome.objects[0] if outcome.objects else None
        fields = {
            'item': outcome.item_id,
            'bucket': first.bucket if first else None,
            'key': first.key if first else None,
            'tenant': outcome.tenant_id,
            'events': outcome.event_count,
            'status': outcome.status.value,
            'error': outcome.reason,
        }
        line = format_fields(**fields)
        if outcome.failed:
            retry = self.redrive_policy.describe_failure(receive_count(record))
            logger.error(f"{line} retry=\"{retry}\"", extra={'outcome': fields})
        elif outcome.status == ItemStatus.SKIPPED:
            logger.warning(line, extra={'outcome': fields})
        else:
            logger.info(line, extra={'outcome': fields})
