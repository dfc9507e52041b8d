"""
Conversion of raw collector records into LogEvents
"""

import json
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from log_processor.models.events import LogEvent, ParsedEvent, Skipped

logger = logging.getLogger(__name__)

TIMESTAMP_FIELD = 'timestamp'
MESSAGE_FIELD = 'message'

# Numeric timestamps at or above this are already milliseconds
MILLISECONDS_THRESHOLD = 10 ** 12

# Fractions of any precision are padded or truncated to microseconds
_FRACTION_RE = re.compile(r'\.(\d+)')

# Compact UTC offsets such as +0000
_COMPACT_OFFSET_RE = re.compile(r'([+-]\d{2})(\d{2})$')


@dataclass
class NormalizeStats:
    events: int = 0
    skipped: int = 0
    timestamp_fallbacks: int = 0


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def parse_iso_timestamp(value: str) -> Optional[int]:
    """
    Parse an ISO-8601 timestamp string into epoch milliseconds

    Naive timestamps are taken as UTC. Returns None if the string does not parse.
    """
    text = value.strip()
    if text.endswith('Z') or text.endswith('z'):
        text = text[:-1] + '+00:00'
    text = _FRACTION_RE.sub(lambda m: '.' + m.group(1)[:6].ljust(6, '0'), text)
    text = _COMPACT_OFFSET_RE.sub(r'\1:\2', text)
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def timestamp_to_ms(value: Any) -> Optional[int]:
    """
    Convert a record timestamp to epoch milliseconds

    Strings are parsed as ISO-8601. Numbers below 10^12 are seconds, larger
    numbers are milliseconds. Returns None when the value is missing or
    cannot be interpreted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return parse_iso_timestamp(value)
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        if abs(value) < MILLISECONDS_THRESHOLD:
            return int(value * 1000)
        return int(value)
    return None


def extract_message(record: dict) -> str:
    """
    Message text for a record

    Uses the message field when it is present and non-empty (structured
    messages are serialized as JSON), otherwise the whole record as JSON.
    """
    message = record.get(MESSAGE_FIELD)
    if message is None or message == '':
        return json.dumps(record, default=str)
    if isinstance(message, str):
        return message
    return json.dumps(message, default=str)


def normalize_record(record: Any, stats: Optional[NormalizeStats] = None,
                     default_ms: Optional[int] = None) -> ParsedEvent:
    """
    Convert one raw record into a LogEvent

    Args:
        record: Raw record from the codec
        stats: Optional counters
        default_ms: Timestamp used when the record has none; defaults to now

    Returns:
        LogEvent, or Skipped when the record is not a JSON object
    """
    if stats is None:
        stats = NormalizeStats()

    if not isinstance(record, dict):
        stats.skipped += 1
        return Skipped(f"record is {type(record).__name__}, not an object")

    timestamp_ms = timestamp_to_ms(record.get(TIMESTAMP_FIELD))
    if timestamp_ms is None:
        if record.get(TIMESTAMP_FIELD) is not None:
            stats.timestamp_fallbacks += 1
            logger.debug(f"Unparseable timestamp {record.get(TIMESTAMP_FIELD)!r}, using current time")
        timestamp_ms = default_ms if default_ms is not None else now_ms()

    stats.events += 1
    return LogEvent(timestamp_ms=timestamp_ms, message=extract_message(record))
