"""
Exception hierarchy for the log processor

NonRecoverableError and its subclasses mark input that can never succeed on
retry; the orchestrator drops such items instead of reporting them as failures.
Everything else raised while handling an item is reported back to SQS.
"""

from typing import Optional


class LogProcessorError(Exception):
    """Base class for all log processor errors"""
    pass


class ConfigurationError(LogProcessorError):
    """Raised when the processor environment is invalid"""
    pass


class NonRecoverableError(LogProcessorError):
    """Exception for errors that should not be retried (e.g., missing tenant config)"""
    pass


class TenantNotFoundError(NonRecoverableError):
    """Exception for when tenant configuration is not found"""
    pass


class InvalidS3NotificationError(NonRecoverableError):
    """Exception for invalid S3 notifications that cannot be processed"""
    pass


class DeliveryError(LogProcessorError):
    """
    Raised when logs could not be written to a tenant destination.

    Delivery errors are always reported as item failures. ``permanent`` only
    records that an immediate retry is not expected to help; recovery is still
    left to the queue's redrive policy.
    """

    def __init__(self, message: str, tenant_id: Optional[str] = None,
                 destination: Optional[str] = None, permanent: bool = False):
        super().__init__(message)
        self.tenant_id = tenant_id
        self.destination = destination
        self.permanent = permanent


class RoleAssumptionError(DeliveryError):
    """Raised when the tenant's cross-account role cannot be assumed"""

    def __init__(self, message: str, tenant_id: Optional[str] = None, role_arn: Optional[str] = None,
                 permanent: bool = True):
        super().__init__(message, tenant_id=tenant_id, destination=role_arn, permanent=permanent)
        self.role_arn = role_arn


class MalformedObjectError(NonRecoverableError):
    """Raised when an object cannot be decompressed or decoded as UTF-8 text"""
    pass
