"""
Unit tests for SQS polling mode
"""
import json
from unittest.mock import Mock, patch

import boto3
import pytest

from log_processor.config import ProcessorConfig
from log_processor.errors import ConfigurationError
from log_processor.handlers.sqs_poller import SQSPoller, to_lambda_record
from log_processor.models.events import BatchResult, ItemOutcome, ItemStatus
from tests.utils.builders import SOURCE_BUCKET, make_s3_event


@pytest.fixture
def queue(mock_aws_services):
    sqs = boto3.client('sqs', region_name='us-east-1')
    dlq_url = sqs.create_queue(QueueName='log-delivery-dlq')['QueueUrl']
    dlq_arn = sqs.get_queue_attributes(QueueUrl=dlq_url, AttributeNames=['QueueArn'])['Attributes']['QueueArn']
    queue_url = sqs.create_queue(
        QueueName='log-delivery',
        Attributes={'RedrivePolicy': json.dumps({'deadLetterTargetArn': dlq_arn, 'maxReceiveCount': '4'})},
    )['QueueUrl']
    return sqs, queue_url, dlq_arn


def outcome_result(*outcomes):
    result = BatchResult()
    for item_id, status in outcomes:
        result.add(ItemOutcome(item_id=item_id, status=status))
    return result


def test_requires_queue_url():
    with pytest.raises(ConfigurationError):
        SQSPoller(ProcessorConfig(), sqs_client=Mock())


def test_to_lambda_record():
    message = {'MessageId': 'abc', 'ReceiptHandle': 'rh', 'Body': '{}',
               'Attributes': {'ApproximateReceiveCount': '2'}}
    assert to_lambda_record(message) == {
        'messageId': 'abc', 'receiptHandle': 'rh', 'body': '{}',
        'attributes': {'ApproximateReceiveCount': '2'},
    }


def test_load_redrive_policy(queue):
    sqs, queue_url, dlq_arn = queue
    poller = SQSPoller(ProcessorConfig(sqs_queue_url=queue_url), sqs_client=sqs)

    policy = poller.load_redrive_policy()

    assert policy.max_receive_count == 4
    assert policy.dead_letter_target_arn == dlq_arn


def test_poll_once_deletes_only_completed_messages(queue):
    sqs, queue_url, _ = queue
    for i in range(3):
        sqs.send_message(QueueUrl=queue_url,
                         MessageBody=json.dumps(make_s3_event(SOURCE_BUCKET, f'acme/c/app/pod-{i}/f.json.gz')))

    orchestrator = Mock()

    def process_batch(records, should_stop=None):
        statuses = [ItemStatus.DELIVERED, ItemStatus.FAILED, ItemStatus.SKIPPED]
        return outcome_result(*[(r['messageId'], s) for r, s in zip(records, statuses)])

    orchestrator.process_batch.side_effect = process_batch
    poller = SQSPoller(ProcessorConfig(sqs_queue_url=queue_url), orchestrator=orchestrator, sqs_client=sqs,
                       wait_time_secs=0, visibility_timeout_secs=0)

    result = poller.poll_once()

    assert len(result.outcomes) == 3
    records = orchestrator.process_batch.call_args[0][0]
    assert all(r['attributes']['ApproximateReceiveCount'] == '1' for r in records)
    remaining = sqs.receive_message(QueueUrl=queue_url, MaxNumberOfMessages=10)['Messages']
    assert [m['MessageId'] for m in remaining] == [result.failures[0].item_id]


def test_poll_once_empty_queue(queue):
    sqs, queue_url, _ = queue
    orchestrator = Mock()
    poller = SQSPoller(ProcessorConfig(sqs_queue_url=queue_url), orchestrator=orchestrator, sqs_client=sqs,
                       wait_time_secs=0)

    assert poller.poll_once() is None
    orchestrator.process_batch.assert_not_called()


def test_stop_is_passed_to_orchestrator():
    sqs = Mock()
    sqs.receive_message.return_value = {'Messages': [{'MessageId': 'm1', 'ReceiptHandle': 'rh1', 'Body': '{}'}]}
    orchestrator = Mock()
    orchestrator.process_batch.return_value = outcome_result(('m1', ItemStatus.FAILED))
    poller = SQSPoller(ProcessorConfig(sqs_queue_url='https://queue'), orchestrator=orchestrator, sqs_client=sqs)

    poller.stop()
    poller.poll_once()

    should_stop = orchestrator.process_batch.call_args[1]['should_stop']
    assert should_stop() is True
    sqs.delete_message.assert_not_called()


def test_delete_failure_is_logged_not_raised():
    sqs = Mock()
    sqs.delete_message.side_effect = Exception('network down')
    poller = SQSPoller(ProcessorConfig(sqs_queue_url='https://queue'), orchestrator=Mock(), sqs_client=sqs)
    records = [{'messageId': 'm1', 'receiptHandle': 'rh1'}, {'messageId': 'm2', 'receiptHandle': 'rh2'}]

    poller.delete_completed(records, outcome_result(('m1', ItemStatus.DELIVERED), ('m2', ItemStatus.DELIVERED)))

    assert sqs.delete_message.call_count == 2


def test_default_client_uses_processor_timeouts():
    config = ProcessorConfig(sqs_queue_url='https://queue', call_timeout_secs=7)

    with patch('log_processor.handlers.sqs_poller.boto3.client') as mock_client:
        SQSPoller(config)

    client_config = mock_client.call_args[1]['config']
    assert client_config.connect_timeout == 7
    assert client_config.read_timeout == 7
    assert client_config.retries == {'total_max_attempts': 1, 'mode': 'standard'}
