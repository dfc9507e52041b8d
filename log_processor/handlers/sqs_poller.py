"""
SQS polling mode

Stands in for the Lambda event source when running as a container: receives
batches, processes them, and deletes only the messages that did not fail.
Failed messages become visible again after the visibility timeout and follow
the queue's redrive policy.
"""

import logging
import signal
import threading
import time
from typing import Any, Dict, List, Optional

import boto3

from log_processor.config import ProcessorConfig
from log_processor.errors import ConfigurationError
from log_processor.models.events import BatchResult
from log_processor.orchestrator import BatchOrchestrator
from log_processor.redrive import RedrivePolicy

logger = logging.getLogger(__name__)


def to_lambda_record(message: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a ReceiveMessage message to Lambda SQS record format"""
    return {
        'messageId': message['MessageId'],
        'receiptHandle': message['ReceiptHandle'],
        'body': message['Body'],
        'attributes': message.get('Attributes', {}),
    }


class SQSPoller:
    def __init__(self, config: ProcessorConfig, orchestrator: Optional[BatchOrchestrator] = None,
                 sqs_client=None, wait_time_secs: int = 20, visibility_timeout_secs: int = 300,
                 max_messages: int = 10):
        if not config.sqs_queue_url:
            raise ConfigurationError("SQS_QUEUE_URL environment variable not set")
        self.config = config
        self.queue_url = config.sqs_queue_url
        self.sqs_client = sqs_client or boto3.client('sqs', region_name=config.aws_region,
                                                     config=config.botocore_config())
        self.orchestrator = orchestrator
        self.wait_time_secs = wait_time_secs
        self.visibility_timeout_secs = visibility_timeout_secs
        self.max_messages = max_messages
        self.stop_event = threading.Event()

    def load_redrive_policy(self) -> RedrivePolicy:
        try:
            response = self.sqs_client.get_queue_attributes(
                QueueUrl=self.queue_url, AttributeNames=['RedrivePolicy']
            )
        except Exception as e:
            logger.warning(f"Could not read queue redrive policy: {str(e)}")
            return RedrivePolicy(max_receive_count=self.config.retry_attempts)
        return RedrivePolicy.from_queue_attributes(response.get('Attributes', {}), self.config.retry_attempts)

    def poll_once(self) -> Optional[BatchResult]:
        """Receive and process one batch; returns None when the queue was empty"""
        response = self.sqs_client.receive_message(
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=self.max_messages,
            WaitTimeSeconds=self.wait_time_secs,
            VisibilityTimeout=self.visibility_timeout_secs,
            AttributeNames=['ApproximateReceiveCount'],
        )
        messages = response.get('Messages', [])
        if not messages:
            logger.debug("No messages received, continuing to poll...")
            return None

        logger.info(f"Received {len(messages)} messages from SQS")
        records = [to_lambda_record(message) for message in messages]
        result = self.orchestrator.process_batch(records, should_stop=self.stop_event.is_set)
        self.delete_completed(records, result)
        return result

    def delete_completed(self, records: List[Dict[str, Any]], result: BatchResult) -> None:
        failed_ids = {outcome.item_id for outcome in result.failures}
        for record in records:
            if record['messageId'] in failed_ids:
                continue
            try:
                self.sqs_client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=record['receiptHandle'])
                logger.debug(f"Deleted message {record['messageId']}")
            except Exception as e:
                # The message will be redelivered and processed again
                logger.error(f"Failed to delete message {record['messageId']}: {str(e)}")

    def stop(self, *_args) -> None:
        logger.info("Received stop signal, finishing current message...")
        self.stop_event.set()

    def run(self) -> None:
        if self.orchestrator is None:
            self.orchestrator = BatchOrchestrator.from_config(self.config, self.load_redrive_policy())
        signal.signal(signal.SIGTERM, self.stop)
        signal.signal(signal.SIGINT, self.stop)

        logger.info(f"Starting SQS polling mode for queue: {self.queue_url}")
        while not self.stop_event.is_set():
            try:
                self.poll_once()
            except Exception as e:
                logger.error(f"Error in SQS polling: {str(e)}", exc_info=True)
                self.stop_event.wait(5)
        logger.info("SQS polling stopped")
