"""
Command line entry point for running the processor outside Lambda
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from log_processor.config import ProcessorConfig
from log_processor.errors import ConfigurationError
from log_processor.handlers.sqs_poller import SQSPoller
from log_processor.orchestrator import BatchOrchestrator
from log_processor.utils.logger import setup_logging

logger = logging.getLogger(__name__)


def manual_input_mode(config: ProcessorConfig, input_data: str,
                      orchestrator: Optional[BatchOrchestrator] = None) -> int:
    """
    Process one SQS message body read from stdin

    Returns:
        Process exit code: 0 unless the message failed
    """
    input_data = input_data.strip()
    if not input_data:
        logger.error("No input data provided")
        return 1

    if orchestrator is None:
        orchestrator = BatchOrchestrator.from_config(config)
    record = {'messageId': 'manual-input', 'receiptHandle': 'manual', 'body': input_data}
    result = orchestrator.process_batch([record])
    outcome = result.outcomes[0]
    print(json.dumps({
        'status': outcome.status.value,
        'reason': outcome.reason,
        'events': outcome.event_count,
    }))
    return 1 if outcome.failed else 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description='Multi-tenant log processor')
    parser.add_argument('--mode', choices=['sqs', 'manual'], default='sqs',
                        help='Execution mode: sqs (poll queue) or manual (stdin input)')
    args = parser.parse_args(argv)

    try:
        config = ProcessorConfig.from_env()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    setup_logging(config.log_level)

    if args.mode == 'manual':
        logger.info("Manual input mode - reading SQS message body from stdin")
        return manual_input_mode(config, sys.stdin.read())

    try:
        SQSPoller(config).run()
    except ConfigurationError as e:
        logger.error(str(e))
        return 2
    return 0


if __name__ == '__main__':
    sys.exit(main())
