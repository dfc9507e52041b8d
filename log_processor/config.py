"""
Processor configuration loaded from environment variables
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from botocore.config import Config

from log_processor.errors import ConfigurationError

DEFAULT_TENANT_CONFIG_TABLE = 'tenant-configurations'
DEFAULT_REGION = 'us-east-1'

# CloudWatch Logs PutLogEvents limits
CLOUDWATCH_MAX_EVENTS_PER_BATCH = 1000
CLOUDWATCH_MAX_BYTES_PER_BATCH = 1048576
CLOUDWATCH_EVENT_OVERHEAD_BYTES = 26


def _int_setting(env: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'")
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class ProcessorConfig:
    """Runtime settings shared by every component of one processor instance"""
    tenant_config_table: str = DEFAULT_TENANT_CONFIG_TABLE
    aws_region: str = DEFAULT_REGION
    central_role_arn: Optional[str] = None
    max_batch_size: int = CLOUDWATCH_MAX_EVENTS_PER_BATCH
    max_batch_bytes: int = CLOUDWATCH_MAX_BYTES_PER_BATCH
    retry_attempts: int = 3
    call_timeout_secs: int = 10
    credential_cache_size: int = 128
    credential_refresh_margin_secs: int = 300
    metrics_namespace: Optional[str] = None
    sqs_queue_url: Optional[str] = None
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> 'ProcessorConfig':
        """
        Build a configuration from environment variables

        Args:
            env: Mapping to read from (defaults to os.environ)

        Raises:
            ConfigurationError: If a numeric setting is not a valid integer
        """
        if env is None:
            env = os.environ

        max_batch_size = _int_setting(env, 'MAX_BATCH_SIZE', CLOUDWATCH_MAX_EVENTS_PER_BATCH)
        if max_batch_size > CLOUDWATCH_MAX_EVENTS_PER_BATCH:
            raise ConfigurationError(
                f"MAX_BATCH_SIZE cannot exceed the CloudWatch limit of {CLOUDWATCH_MAX_EVENTS_PER_BATCH}"
            )

        return cls(
            tenant_config_table=env.get('TENANT_CONFIG_TABLE', DEFAULT_TENANT_CONFIG_TABLE),
            aws_region=env.get('AWS_REGION', DEFAULT_REGION),
            central_role_arn=env.get('CENTRAL_LOG_DISTRIBUTION_ROLE_ARN') or None,
            max_batch_size=max_batch_size,
            max_batch_bytes=_int_setting(env, 'MAX_BATCH_BYTES', CLOUDWATCH_MAX_BYTES_PER_BATCH,
                                         minimum=CLOUDWATCH_EVENT_OVERHEAD_BYTES + 1),
            retry_attempts=_int_setting(env, 'RETRY_ATTEMPTS', 3),
            call_timeout_secs=_int_setting(env, 'CALL_TIMEOUT_SECS', 10),
            credential_cache_size=_int_setting(env, 'CREDENTIAL_CACHE_SIZE', 128),
            credential_refresh_margin_secs=_int_setting(env, 'CREDENTIAL_REFRESH_MARGIN_SECS', 300, minimum=0),
            metrics_namespace=env.get('METRICS_NAMESPACE') or None,
            sqs_queue_url=env.get('SQS_QUEUE_URL') or None,
            log_level=env.get('LOG_LEVEL', 'INFO').upper(),
        )

    def botocore_config(self) -> Config:
        """
        Client config applied to every AWS call.

        Retries are disabled: a timed out or throttled call fails the item and
        SQS redelivers it.
        """
        return Config(
            connect_timeout=self.call_timeout_secs,
            read_timeout=self.call_timeout_secs,
            retries={'total_max_attempts': 1, 'mode': 'standard'},
        )
