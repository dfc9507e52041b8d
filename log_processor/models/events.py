"""
Data types passed between the processing stages
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


@dataclass(frozen=True)
class ObjectReference:
    """S3 object named by a storage event"""
    bucket: str
    key: str

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    @property
    def filename(self) -> str:
        return self.key.split('/')[-1]


@dataclass(frozen=True)
class TenantInfo:
    """Tenant identity derived from an object key"""
    tenant_id: str
    cluster_id: str
    application: str
    pod: str


@dataclass(frozen=True)
class LogEvent:
    """Normalized log event in CloudWatch Logs shape"""
    timestamp_ms: int
    message: str

    def to_cloudwatch(self) -> Dict[str, Any]:
        return {'timestamp': self.timestamp_ms, 'message': self.message}


@dataclass(frozen=True)
class Skipped:
    """A record or line that was dropped, with the reason"""
    reason: str


# Outcome of normalizing one raw record
ParsedEvent = Union[LogEvent, Skipped]


@dataclass
class LogBatch:
    """Events from one object, bound for one tenant"""
    tenant: TenantInfo
    events: List[LogEvent] = field(default_factory=list)

    @property
    def tenant_id(self) -> str:
        return self.tenant.tenant_id

    def __len__(self) -> int:
        return len(self.events)


@dataclass
class DeliveryAttempt:
    """Result of delivering one object to one tenant destination"""
    tenant_id: str
    destination: str
    event_count: int = 0
    delivered_events: int = 0
    rejected_events: int = 0
    calls: int = 0
    error: Optional[Exception] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def fail(self, error: Exception) -> None:
        """Record a failure, keeping the first error seen"""
        if self.error is None:
            self.error = error


class ItemStatus(str, Enum):
    DELIVERED = 'delivered'
    SKIPPED = 'skipped'
    FAILED = 'failed'


@dataclass
class ItemOutcome:
    """Per notification item result reported back to the queue"""
    item_id: str
    status: ItemStatus
    reason: Optional[str] = None
    objects: List[ObjectReference] = field(default_factory=list)
    tenant_id: Optional[str] = None
    event_count: int = 0

    @property
    def failed(self) -> bool:
        return self.status == ItemStatus.FAILED


@dataclass
class BatchResult:
    """Explicit outcome for every item of a notification batch, in input order"""
    outcomes: List[ItemOutcome] = field(default_factory=list)
    malformed_lines: int = 0
    dropped_records: int = 0
    unresolved_objects: int = 0
    events_delivered: int = 0

    def add(self, outcome: ItemOutcome) -> None:
        self.outcomes.append(outcome)

    def by_id(self) -> Dict[str, ItemOutcome]:
        return {outcome.item_id: outcome for outcome in self.outcomes}

    @property
    def failures(self) -> List[ItemOutcome]:
        return [outcome for outcome in self.outcomes if outcome.failed]

    def count(self, status: ItemStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    def to_sqs_response(self) -> Dict[str, List[Dict[str, str]]]:
        """Partial batch response understood by the Lambda SQS event source"""
        return {
            'batchItemFailures': [
                {'itemIdentifier': outcome.item_id} for outcome in self.failures
            ]
        }
