"""
Shared validation helpers
"""


def normalize_bucket_prefix(prefix: str) -> str:
    """
    Normalize S3 bucket prefix by ensuring it ends with a slash.

    Args:
        prefix: S3 bucket prefix string

    Returns:
        Normalized prefix with trailing slash, or "" for an empty prefix
    """
    if not prefix:
        return ""
    return prefix if prefix.endswith('/') else prefix + '/'
