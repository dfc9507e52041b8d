"""
Fetching log objects from the central bucket
"""

import logging
from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from log_processor.errors import MalformedObjectError
from log_processor.models.events import ObjectReference

logger = logging.getLogger(__name__)


@dataclass
class StoredObject:
    reference: ObjectReference
    content: bytes


class ObjectStore:
    """Reads objects written by the collector"""

    def __init__(self, region: str = 'us-east-1', client_config: Optional[Config] = None, s3_client=None):
        self.region = region
        self.client_config = client_config
        self._client = s3_client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client('s3', region_name=self.region, config=self.client_config)
        return self._client

    def fetch(self, reference: ObjectReference) -> StoredObject:
        """
        Download an object

        Raises:
            MalformedObjectError: If the object no longer exists
            botocore.exceptions.ClientError: For other S3 failures (retryable)
        """
        try:
            response = self.client.get_object(Bucket=reference.bucket, Key=reference.key)
        except ClientError as e:
            if e.response['Error']['Code'] in ('NoSuchKey', '404'):
                raise MalformedObjectError(f"Object {reference.uri} no longer exists")
            raise
        content = response['Body'].read()
        logger.info(f"Downloaded {reference.uri}: {len(content)} bytes")
        return StoredObject(reference=reference, content=content)
