"""cardmia_shared.aws_clients - Lazy-singleton AWS service clients.

The boto3 client is created on first call and cached for subsequent warm
invocations, so cold starts that never touch S3 do not pay for it.
"""

from __future__ import annotations

import os
from typing import Optional

import boto3
from botocore.config import Config

S3_REGION: str = os.environ.get("S3_REGION", os.environ.get("AWS_REGION", "us-east-1"))

_s3 = None


def _get_s3(region: Optional[str] = None):
    """Get (or create) the S3 client singleton."""
    global _s3
    if _s3 is None:
        _s3 = boto3.client(
            "s3",
            region_name=region or S3_REGION,
            config=Config(retries={"max_attempts": 3, "mode": "standard"}),
        )
    return _s3
