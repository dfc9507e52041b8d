"""
Tenant identity from object keys

Keys written by the collector follow
``{tenant}/{cluster}/{application}/{pod}/<filename>``.
"""

import logging
from typing import Optional

from log_processor.models.events import TenantInfo

logger = logging.getLogger(__name__)

REQUIRED_SEGMENTS = ('tenant_id', 'cluster_id', 'application', 'pod')


def resolve_tenant(object_key: str) -> Optional[TenantInfo]:
    """
    Extract tenant information from an S3 object key

    Returns:
        TenantInfo, or None when the key has fewer than four path segments
        or one of them is empty
    """
    path_parts = object_key.split('/')

    if len(path_parts) < len(REQUIRED_SEGMENTS):
        logger.warning(f"Unresolved object key, expected at least {len(REQUIRED_SEGMENTS)} "
                       f"path segments, got {len(path_parts)}: {object_key}")
        return None

    # Double slashes produce empty segments
    for i, segment_name in enumerate(REQUIRED_SEGMENTS):
        if not path_parts[i].strip():
            logger.warning(f"Unresolved object key, {segment_name} (segment {i}) is empty: {object_key}")
            return None

    return TenantInfo(
        tenant_id=path_parts[0],
        cluster_id=path_parts[1],
        application=path_parts[2],
        pod=path_parts[3],
    )

