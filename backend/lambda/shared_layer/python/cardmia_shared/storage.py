"""cardmia_shared.storage - Object storage over a single S3 bucket.

Thin wrapper that gives the handlers put/get/list/exists/presigned-URL
operations without repeating boto3 call shapes. The multipart decoder does not
depend on this module; handlers decode first, then store.

Environment variables:
    S3_BUCKET           default: deck-backend-demo
    PRESIGNED_URL_TTL   default: 300 (seconds)
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Iterator, List, Optional, Tuple

from botocore.exceptions import ClientError

from cardmia_shared.aws_clients import _get_s3

logger = logging.getLogger(__name__)

S3_BUCKET = os.environ.get("S3_BUCKET", "deck-backend-demo")
PRESIGNED_URL_TTL = int(os.environ.get("PRESIGNED_URL_TTL", "300"))
LIST_PAGE_SIZE = 1000

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


class ObjectNotFoundError(KeyError):
    """Requested key does not exist in the bucket."""


def _error_code(exc: ClientError) -> str:
    return str((exc.response.get("Error") or {}).get("Code", ""))


class ObjectStorage:
    def __init__(self, client=None, bucket: Optional[str] = None) -> None:
        self._client = client
        self.bucket = bucket or S3_BUCKET

    @property
    def client(self):
        if self._client is None:
            self._client = _get_s3()
        return self._client

    def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Upload bytes and return ``{"key", "etag"}``."""
        resp = self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            Metadata={k: str(v) for k, v in (metadata or {}).items()},
        )
        logger.info("s3 put: bucket=%s key=%s size=%d", self.bucket, key, len(data))
        return {"key": key, "etag": resp.get("ETag")}

    def get(self, key: str) -> bytes:
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(key) from exc
            raise
        return resp["Body"].read()

    def list(
        self,
        prefix: str,
        continuation_token: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """Return one page of objects under ``prefix`` and the next token."""
        params: Dict[str, Any] = {
            "Bucket": self.bucket,
            "Prefix": prefix,
            "MaxKeys": LIST_PAGE_SIZE,
        }
        if continuation_token:
            params["ContinuationToken"] = continuation_token
        resp = self.client.list_objects_v2(**params)
        objects = [
            {
                "key": obj["Key"],
                "size": obj.get("Size"),
                "last_modified": obj.get("LastModified"),
                "etag": obj.get("ETag"),
            }
            for obj in resp.get("Contents", [])
        ]
        next_token = resp.get("NextContinuationToken") if resp.get("IsTruncated") else None
        return objects, next_token

    def iter_objects(self, prefix: str) -> Iterator[Dict[str, Any]]:
        token: Optional[str] = None
        while True:
            objects, token = self.list(prefix, token)
            yield from objects
            if not token:
                return

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _error_code(exc) in _NOT_FOUND_CODES:
                return False
            raise
        return True

    def presigned_url(self, key: str, expires_in: Optional[int] = None) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=expires_in or PRESIGNED_URL_TTL,
        )
