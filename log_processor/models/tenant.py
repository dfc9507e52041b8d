"""
Pydantic models for tenant delivery configuration read from DynamoDB
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from log_processor.utils.validation import normalize_bucket_prefix

# Application group definitions for filtering
# Each group key maps to a list of application names that belong to that group
APPLICATION_GROUPS = {
    'API': ['kube-apiserver', 'openshift-apiserver'],
    'Authentication': ['oauth-server', 'oauth-apiserver'],
    'Controller Manager': ['kube-controller-manager', 'openshift-controller-manager', 'openshift-route-controller-manager'],
    'Scheduler': ['kube-scheduler']
}


class TenantDeliveryConfigBase(BaseModel):
    """Fields shared by every delivery type"""
    tenant_id: str = Field(..., min_length=1, max_length=128)
    enabled: bool = True
    desired_logs: Optional[List[str]] = None
    groups: Optional[List[str]] = None
    target_region: Optional[str] = None

    @field_validator('enabled', mode='before')
    @classmethod
    def default_enabled(cls, v):
        """Missing or null 'enabled' means enabled"""
        return True if v is None else v

    @field_validator('target_region')
    @classmethod
    def validate_region(cls, v):
        """Validate AWS region format"""
        if v is not None and not v.replace('-', '').isalnum():
            raise ValueError('target_region must be a valid AWS region')
        return v

    @field_validator('desired_logs', 'groups')
    @classmethod
    def validate_name_list(cls, v):
        """Validate desired_logs and groups lists"""
        if v is not None:
            for name in v:
                if len(name.strip()) == 0:
                    raise ValueError('All items must be non-empty strings')
        return v

    def allowed_applications(self) -> Optional[set]:
        """
        Applications this destination accepts

        Returns:
            Set of application names, or None when every application is accepted
        """
        allowed = set(self.desired_logs or [])
        allowed.update(expand_groups_to_applications(self.groups or []))
        if not allowed:
            return None
        return allowed

    def accepts_application(self, application: str) -> bool:
        allowed = self.allowed_applications()
        return allowed is None or application in allowed


class CloudWatchDeliveryConfig(TenantDeliveryConfigBase):
    """CloudWatch Logs destination in the tenant account"""
    type: Literal["cloudwatch"] = "cloudwatch"
    log_distribution_role_arn: str = Field(..., min_length=1)
    log_group_name: str = Field(..., min_length=1)
    external_id: Optional[str] = None

    @field_validator('log_distribution_role_arn')
    @classmethod
    def validate_role_arn(cls, v):
        """Validate IAM role ARN format"""
        if not v.startswith('arn:aws:iam::'):
            raise ValueError('log_distribution_role_arn must be a valid IAM role ARN')
        return v

    @field_validator('log_group_name')
    @classmethod
    def validate_log_group_name(cls, v):
        if not v.strip():
            raise ValueError('log_group_name cannot be blank')
        return v


class S3DeliveryConfig(TenantDeliveryConfigBase):
    """S3 bucket destination, written by server-side copy"""
    type: Literal["s3"] = "s3"
    bucket_name: str = Field(..., min_length=1)
    bucket_prefix: str = "ROSA/cluster-logs/"

    @field_validator('bucket_name')
    @classmethod
    def validate_bucket_name(cls, v):
        """Validate S3 bucket name format"""
        if not v.replace('-', '').replace('.', '').isalnum():
            raise ValueError('bucket_name must be a valid S3 bucket name')
        return v

    @field_validator('bucket_prefix', mode='before')
    @classmethod
    def validate_bucket_prefix(cls, v):
        if v is None:
            return "ROSA/cluster-logs/"
        return normalize_bucket_prefix(v)


TenantDestination = Union[CloudWatchDeliveryConfig, S3DeliveryConfig]

_destination_adapter = TypeAdapter(TenantDestination)


def parse_delivery_config(item: Dict[str, Any]) -> TenantDestination:
    """
    Validate a raw DynamoDB item into a typed destination

    Raises:
        pydantic.ValidationError: If the item is missing fields or has an unknown type
    """
    return _destination_adapter.validate_python(dict(item))


def expand_groups_to_applications(groups: List[str]) -> List[str]:
    """
    Expand group names to their corresponding application lists

    Group lookup is case-insensitive; unknown groups are ignored.
    """
    expanded_applications = []
    for group in groups:
        for key, applications in APPLICATION_GROUPS.items():
            if key.lower() == group.lower():
                expanded_applications.extend(applications)
                break
    return expanded_applications
