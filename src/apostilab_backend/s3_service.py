"""
S3 archive for exported apostila PDFs.

This module provides functionality for:
- Uploading rendered PDFs to S3
- Generating presigned URLs for secure, time-limited downloads

The bucket is configured through ``storage.s3_bucket`` (S3_BUCKET_NAME).
When no bucket is configured, or the client cannot be created, archiving
is skipped and exports are served from the database only.
"""

from __future__ import annotations

import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .configuration import get_settings

logger = logging.getLogger(__name__)

# S3 client (lazy initialization)
_s3_client = None


def _bucket_name() -> str:
    return get_settings().storage.s3_bucket


def _get_s3_client():
    """
    Get or create the S3 client.

    Returns:
        boto3 S3 client or None if bucket is not configured
    """
    global _s3_client
    if _s3_client is None:
        if not _bucket_name():
            return None
        try:
            _s3_client = boto3.client("s3")
        except (BotoCoreError, ValueError) as e:
            logger.warning(f"Failed to create S3 client: {e}")
            _s3_client = None
    return _s3_client


def pdf_key(user_id: int, apostila_id: str) -> str:
    return f"apostilas/{user_id}/{apostila_id}.pdf"


def upload_pdf(pdf: bytes, s3_key: str) -> bool:
    """
    Upload PDF bytes to S3.

    Returns:
        True if upload was successful, False otherwise; never raises for
        missing configuration or S3 errors.
    """
    bucket = _bucket_name()
    if not bucket:
        logger.debug("S3_BUCKET_NAME not configured, skipping upload")
        return False

    client = _get_s3_client()
    if client is None:
        logger.warning("S3 client not available, skipping upload")
        return False

    try:
        logger.info(f"Uploading {len(pdf)} bytes to s3://{bucket}/{s3_key}")
        client.put_object(Bucket=bucket, Key=s3_key, Body=pdf, ContentType="application/pdf")
        logger.info(f"Upload successful: s3://{bucket}/{s3_key}")
        return True
    except (ClientError, BotoCoreError) as e:
        logger.error(f"S3 upload failed: {e}")
        return False


def generate_presigned_url(s3_key: str, expiration: Optional[int] = None) -> Optional[str]:
    """
    Generate a presigned URL for downloading a file from S3.

    Args:
        s3_key: S3 object key (path within the bucket)
        expiration: URL lifetime in seconds; defaults to
            storage.presigned_url_ttl_seconds

    Returns:
        Presigned URL string, or None if generation fails
    """
    bucket = _bucket_name()
    if not bucket:
        return None

    client = _get_s3_client()
    if client is None:
        logger.warning("S3 client not available")
        return None

    if expiration is None:
        expiration = get_settings().storage.presigned_url_ttl_seconds

    try:
        url = client.generate_presigned_url(
            "get_object",
            Params={"Bucket": bucket, "Key": s3_key},
            ExpiresIn=expiration,
        )
        logger.info(f"Generated presigned URL for {s3_key} (expires in {expiration}s)")
        return url
    except (ClientError, BotoCoreError) as e:
        logger.error(f"Failed to generate presigned URL: {e}")
        return None


def is_s3_configured() -> bool:
    return bool(_bucket_name()) and _get_s3_client() is not None
