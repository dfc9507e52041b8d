"""
Multi-tenant log processor

Distributes collector log objects from the central bucket to per-tenant
CloudWatch Logs groups and S3 buckets.
"""

__version__ = "1.0.0"
