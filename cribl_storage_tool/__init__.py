"""
Cribl Storage Tool - Set up cross-account AWS access for Cribl storage.

Creates or updates an IAM role whose trust policy lets a Cribl workspace
assume it, attaches an inline policy scoped to a set of S3 buckets, and lists
the S3 buckets visible to the configured credentials.
"""

__version__ = "0.1.0"
