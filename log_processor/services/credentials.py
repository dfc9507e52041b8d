"""
Cross-account role assumption with a per-tenant credential cache

Delivery credentials are obtained in one or two hops: the optional central
log distribution role first, then the tenant's own log distribution role.
"""

import logging
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Hashable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from log_processor.config import ProcessorConfig
from log_processor.errors import RoleAssumptionError

logger = logging.getLogger(__name__)

# STS errors that will not go away by asking again
PERMANENT_STS_ERRORS = {
    'AccessDenied',
    'AccessDeniedException',
    'InvalidClientTokenId',
    'MalformedPolicyDocument',
    'PackedPolicyTooLarge',
    'RegionDisabledException',
    'ValidationError',
}

# Role session names are limited to 64 characters
MAX_SESSION_NAME_LENGTH = 64


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RoleCredentials:
    """Temporary credentials returned by sts:AssumeRole"""
    access_key_id: str
    secret_access_key: str
    session_token: str
    expiration: datetime

    @classmethod
    def from_sts(cls, credentials: Dict[str, Any]) -> 'RoleCredentials':
        expiration = credentials['Expiration']
        if isinstance(expiration, str):
            expiration = datetime.fromisoformat(expiration.replace('Z', '+00:00'))
        if expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)
        return cls(
            access_key_id=credentials['AccessKeyId'],
            secret_access_key=credentials['SecretAccessKey'],
            session_token=credentials['SessionToken'],
            expiration=expiration,
        )

    def client_kwargs(self) -> Dict[str, str]:
        return {
            'aws_access_key_id': self.access_key_id,
            'aws_secret_access_key': self.secret_access_key,
            'aws_session_token': self.session_token,
        }


class CredentialCache:
    """
    Bounded LRU cache of role credentials

    An entry is served until ``expiration - refresh_margin``; after that it is
    treated as missing so the caller assumes the role again.
    """

    def __init__(self, max_size: int = 128, refresh_margin_secs: int = 300):
        self.max_size = max_size
        self.refresh_margin = timedelta(seconds=refresh_margin_secs)
        self._entries: 'OrderedDict[Hashable, RoleCredentials]' = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Optional[RoleCredentials]:
        with self._lock:
            credentials = self._entries.get(key)
            if credentials is None:
                return None
            if utcnow() >= credentials.expiration - self.refresh_margin:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return credentials

    def put(self, key: Hashable, credentials: RoleCredentials) -> None:
        with self._lock:
            self._entries[key] = credentials
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted cached credentials for {evicted}")

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key) is not None


def session_name(prefix: str, tenant_id: str) -> str:
    name = f"{prefix}-{tenant_id}-{uuid.uuid4().hex[:8]}"
    if len(name) > MAX_SESSION_NAME_LENGTH:
        name = f"{prefix}-{uuid.uuid4().hex}"[:MAX_SESSION_NAME_LENGTH]
    return name


class RoleAssumer:
    """Assumes tenant roles, caching credentials per (tenant, role)"""

    def __init__(self, config: ProcessorConfig, cache: Optional[CredentialCache] = None):
        self.config = config
        self.cache = cache if cache is not None else CredentialCache(
            max_size=config.credential_cache_size,
            refresh_margin_secs=config.credential_refresh_margin_secs,
        )
        self._sts_client = None

    @property
    def sts_client(self):
        """STS client using the processor's own identity"""
        if self._sts_client is None:
            self._sts_client = boto3.client('sts', region_name=self.config.aws_region,
                                            config=self.config.botocore_config())
        return self._sts_client

    def _assume(self, sts_client, role_arn: str, tenant_id: str, prefix: str,
                external_id: Optional[str] = None) -> RoleCredentials:
        kwargs = {
            'RoleArn': role_arn,
            'RoleSessionName': session_name(prefix, tenant_id),
        }
        if external_id:
            kwargs['ExternalId'] = external_id
        try:
            response = sts_client.assume_role(**kwargs)
        except ClientError as e:
            error_code = e.response['Error']['Code']
            raise RoleAssumptionError(
                f"Failed to assume role {role_arn} for tenant {tenant_id}: {error_code}",
                tenant_id=tenant_id, role_arn=role_arn,
                permanent=error_code in PERMANENT_STS_ERRORS,
            ) from e
        except BotoCoreError as e:
            raise RoleAssumptionError(
                f"Failed to assume role {role_arn} for tenant {tenant_id}: {str(e)}",
                tenant_id=tenant_id, role_arn=role_arn, permanent=False,
            ) from e
        return RoleCredentials.from_sts(response['Credentials'])

    def central_credentials(self, tenant_id: str) -> Optional[RoleCredentials]:
        """Credentials for the central log distribution role, or None when not configured"""
        role_arn = self.config.central_role_arn
        if not role_arn:
            return None
        key = ('__central__', role_arn)
        credentials = self.cache.get(key)
        if credentials is None:
            try:
                credentials = self._assume(self.sts_client, role_arn, tenant_id, 'CentralLogDistribution')
            except RoleAssumptionError:
                self.cache.invalidate(key)
                raise
            self.cache.put(key, credentials)
        return credentials

    def tenant_credentials(self, tenant_id: str, role_arn: str,
                           external_id: Optional[str] = None) -> RoleCredentials:
        """
        Credentials for a tenant's log distribution role

        Raises:
            RoleAssumptionError: If either hop fails; the cached entries are dropped
        """
        key = (tenant_id, role_arn)
        credentials = self.cache.get(key)
        if credentials is not None:
            return credentials

        try:
            central = self.central_credentials(tenant_id)
            if central is not None:
                sts_client = boto3.client('sts', region_name=self.config.aws_region,
                                          config=self.config.botocore_config(),
                                          **central.client_kwargs())
            else:
                sts_client = self.sts_client
            logger.info(f"Assuming customer role {role_arn} for tenant {tenant_id}")
            credentials = self._assume(sts_client, role_arn, tenant_id, 'CloudWatchLogDelivery', external_id)
        except RoleAssumptionError as e:
            self.cache.invalidate(key)
            if self.config.central_role_arn:
                self.cache.invalidate(('__central__', self.config.central_role_arn))
            logger.error(f"{str(e)} (permanent={e.permanent})")
            raise

        self.cache.put(key, credentials)
        return credentials

    def invalidate(self, tenant_id: str, role_arn: str) -> None:
        self.cache.invalidate((tenant_id, role_arn))
