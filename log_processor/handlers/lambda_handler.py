"""
AWS Lambda entry point for the SQS-triggered log processor
"""

import logging
from typing import Any, Dict, Optional

from log_processor.config import ProcessorConfig
from log_processor.orchestrator import BatchOrchestrator
from log_processor.utils.logger import setup_logging

logger = logging.getLogger(__name__)

# Stop starting new messages when less time than this is left in the invocation
SHUTDOWN_MARGIN_MS = 10000

_orchestrator: Optional[BatchOrchestrator] = None


def get_orchestrator() -> BatchOrchestrator:
    """
    Orchestrator shared by warm invocations

    Only clients and the credential cache are reused; tenant configuration is
    looked up again on every invocation.
    """
    global _orchestrator
    if _orchestrator is None:
        config = ProcessorConfig.from_env()
        setup_logging(config.log_level)
        _orchestrator = BatchOrchestrator.from_config(config)
    return _orchestrator


def reset_orchestrator() -> None:
    global _orchestrator
    _orchestrator = None


def lambda_handler(event: Dict[str, Any], context) -> Dict[str, Any]:
    """
    AWS Lambda handler for processing SQS messages containing S3 events

    Returns batchItemFailures to enable partial batch failure handling.
    Failed messages will be retried by SQS.
    """
    orchestrator = get_orchestrator()

    should_stop = None
    if context is not None and hasattr(context, 'get_remaining_time_in_millis'):
        def should_stop() -> bool:
            return context.get_remaining_time_in_millis() < SHUTDOWN_MARGIN_MS

    result = orchestrator.process_batch(event.get('Records', []), should_stop=should_stop)
    return result.to_sqs_response()
