"""
Queue redrive policy

Retries happen outside the processor: SQS redelivers a failed message until
its receive count reaches maxReceiveCount, then moves it to the dead-letter
queue. The policy here is only used to say, in logs, where a failure stands.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RedrivePolicy:
    max_receive_count: int
    dead_letter_target_arn: Optional[str] = None

    @classmethod
    def from_queue_attributes(cls, attributes: Dict[str, str], default_max_receive_count: int = 3) -> 'RedrivePolicy':
        """Build from SQS GetQueueAttributes output; falls back to the default when unset"""
        raw = attributes.get('RedrivePolicy')
        if not raw:
            return cls(max_receive_count=default_max_receive_count)
        try:
            policy = json.loads(raw)
            return cls(
                max_receive_count=int(policy['maxReceiveCount']),
                dead_letter_target_arn=policy.get('deadLetterTargetArn'),
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable RedrivePolicy {raw!r}: {str(e)}")
            return cls(max_receive_count=default_max_receive_count)

    def attempts_remaining(self, receive_count: int) -> int:
        return max(0, self.max_receive_count - receive_count)

    def is_final_attempt(self, receive_count: int) -> bool:
        return receive_count >= self.max_receive_count

    def describe_failure(self, receive_count: Optional[int]) -> str:
        """Human readable retry status for a failed message"""
        if receive_count is None:
            return "will be retried by the queue"
        if self.is_final_attempt(receive_count):
            target = self.dead_letter_target_arn or "the dead-letter queue"
            return f"attempt {receive_count} of {self.max_receive_count}, will be moved to {target}"
        return f"attempt {receive_count} of {self.max_receive_count}, will be retried"


def receive_count(sqs_record: Dict[str, Any]) -> Optional[int]:
    """ApproximateReceiveCount of a Lambda SQS record or a ReceiveMessage message"""
    attributes = sqs_record.get('attributes') or sqs_record.get('Attributes') or {}
    value = attributes.get('ApproximateReceiveCount')
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None
