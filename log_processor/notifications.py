"""
Parsing of queue messages into the S3 objects they announce

A message body is either the SNS fan-out envelope
``{"Message": "<json S3 event>"}`` or the S3 event itself.
"""

import json
import logging
import urllib.parse
from typing import Any, Dict, Iterator, List, Union

from log_processor.errors import InvalidS3NotificationError
from log_processor.models.events import ObjectReference

logger = logging.getLogger(__name__)


def parse_notification_body(body: Union[str, Dict[str, Any], None]) -> Dict[str, Any]:
    """
    Unwrap a message body to the S3 event it carries

    Raises:
        InvalidS3NotificationError: If the body is not JSON or not an S3 event
    """
    if body is None:
        raise InvalidS3NotificationError("Message has no body")
    try:
        message = json.loads(body) if isinstance(body, str) else body
    except json.JSONDecodeError as e:
        raise InvalidS3NotificationError(f"Invalid SQS message format: {str(e)}")
    if not isinstance(message, dict):
        raise InvalidS3NotificationError(f"Message body is {type(message).__name__}, expected an object")

    if 'Message' in message:
        inner = message['Message']
        try:
            s3_event = json.loads(inner) if isinstance(inner, str) else inner
        except json.JSONDecodeError as e:
            raise InvalidS3NotificationError(f"Invalid SNS message format: {str(e)}")
        if not isinstance(s3_event, dict):
            raise InvalidS3NotificationError("SNS Message does not contain an S3 event")
        return s3_event

    return message


def iter_object_references(s3_event: Dict[str, Any]) -> Iterator[ObjectReference]:
    """
    Yield the objects named by an S3 event notification

    S3 test events carry no Records and yield nothing.

    Raises:
        InvalidS3NotificationError: If a record lacks bucket name or object key
    """
    records = s3_event.get('Records')
    if records is None:
        if s3_event.get('Event') == 's3:TestEvent':
            logger.info("Ignoring S3 test event")
            return
        raise InvalidS3NotificationError("S3 event has no Records")
    if not isinstance(records, list):
        raise InvalidS3NotificationError("S3 event Records is not a list")

    for s3_record in records:
        try:
            bucket_name = s3_record['s3']['bucket']['name']
            object_key = urllib.parse.unquote_plus(s3_record['s3']['object']['key'])
        except (KeyError, TypeError) as e:
            raise InvalidS3NotificationError(f"Invalid S3 event format: missing {str(e)}")
        yield ObjectReference(bucket=bucket_name, key=object_key)


def object_references(body: Union[str, Dict[str, Any], None]) -> List[ObjectReference]:
    """All objects announced by one queue message"""
    return list(iter_object_references(parse_notification_body(body)))
