"""
Unit tests for the command line entry point
"""
import json
from unittest.mock import Mock, patch

from log_processor.cli import main, manual_input_mode
from log_processor.config import ProcessorConfig
from log_processor.models.events import BatchResult, ItemOutcome, ItemStatus


def orchestrator_returning(status, reason=None, events=0):
    orchestrator = Mock()
    result = BatchResult()
    result.add(ItemOutcome(item_id='manual-input', status=status, reason=reason, event_count=events))
    orchestrator.process_batch.return_value = result
    return orchestrator


def test_manual_input_success(capsys):
    orchestrator = orchestrator_returning(ItemStatus.DELIVERED, events=12)

    exit_code = manual_input_mode(ProcessorConfig(), '{"Records": []}\n', orchestrator)

    assert exit_code == 0
    assert json.loads(capsys.readouterr().out) == {'status': 'delivered', 'reason': None, 'events': 12}
    record = orchestrator.process_batch.call_args[0][0][0]
    assert record['body'] == '{"Records": []}'


def test_manual_input_failure(capsys):
    orchestrator = orchestrator_returning(ItemStatus.FAILED, reason='Read timeout')

    assert manual_input_mode(ProcessorConfig(), '{}', orchestrator) == 1
    assert json.loads(capsys.readouterr().out)['reason'] == 'Read timeout'


def test_manual_input_empty():
    orchestrator = Mock()
    assert manual_input_mode(ProcessorConfig(), '   ', orchestrator) == 1
    orchestrator.process_batch.assert_not_called()


def test_invalid_configuration(monkeypatch, capsys):
    monkeypatch.setenv('MAX_BATCH_SIZE', 'lots')

    assert main(['--mode', 'manual']) == 2
    assert 'MAX_BATCH_SIZE' in capsys.readouterr().err


def test_sqs_mode_without_queue(monkeypatch):
    monkeypatch.delenv('SQS_QUEUE_URL', raising=False)
    monkeypatch.delenv('MAX_BATCH_SIZE', raising=False)

    with patch('log_processor.cli.setup_logging'):
        assert main(['--mode', 'sqs']) == 2
