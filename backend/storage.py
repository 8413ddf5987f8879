"""Presigned S3 uploads for submission files and announcement attachments.

File bytes never pass through the API: the client asks for a presigned PUT,
uploads straight to the bucket, then submits the returned ``public_url``.
"""
import logging
import os
import uuid
from pathlib import Path
from typing import Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import HTTPException, status

logger = logging.getLogger(__name__)

AWS_REGION = os.environ.get("AWS_REGION")
S3_BUCKET_NAME = os.environ.get("S3_BUCKET_NAME")
S3_ACCESS_KEY = os.environ.get("S3_ACCESS_KEY") or os.environ.get("AWS_ACCESS_KEY_ID")
S3_SECRET_KEY = os.environ.get("S3_SECRET_KEY") or os.environ.get("AWS_SECRET_ACCESS_KEY")

SUBMISSION_FILE_TYPES = [
    "application/pdf",
    "application/zip",
    "application/x-zip-compressed",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
    "image/png",
    "image/jpeg",
]
ATTACHMENT_FILE_TYPES = [
    "application/pdf",
    "image/png",
    "image/jpeg",
    "image/webp",
    "text/plain",
]

S3_CLIENT = None
if AWS_REGION and S3_BUCKET_NAME and S3_ACCESS_KEY and S3_SECRET_KEY:
    s3_config = Config(signature_version="s3v4", s3={"addressing_style": "virtual"})
    S3_CLIENT = boto3.client(
        "s3",
        region_name=AWS_REGION,
        aws_access_key_id=S3_ACCESS_KEY,
        aws_secret_access_key=S3_SECRET_KEY,
        endpoint_url=f"https://s3.{AWS_REGION}.amazonaws.com",
        config=s3_config,
    )


def build_s3_url(key: str) -> str:
    if not S3_BUCKET_NAME or not AWS_REGION:
        raise RuntimeError("S3 configuration missing")
    return f"https://{S3_BUCKET_NAME}.s3.{AWS_REGION}.amazonaws.com/{key}"


def generate_presigned_put_url(
    key_prefix: str,
    filename: str,
    content_type: str,
    allowed_types: Optional[List[str]] = None,
    expires_in: int = 600,
    client=None,
) -> Dict[str, str]:
    client = client or S3_CLIENT
    if not client or not S3_BUCKET_NAME or not AWS_REGION:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="S3 not configured")
    if not filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing filename")
    if not content_type:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing content type")
    if allowed_types and content_type not in allowed_types:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid file type")

    key = f"{key_prefix.strip('/')}/{uuid.uuid4().hex}{Path(filename).suffix.lower()}"
    try:
        upload_url = client.generate_presigned_url(
            "put_object",
            Params={
                "Bucket": S3_BUCKET_NAME,
                "Key": key,
                "ContentType": content_type,
            },
            ExpiresIn=expires_in,
        )
    except (BotoCoreError, ClientError) as exc:
        logger.error("Failed to presign upload for %s", key, exc_info=exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create presigned URL") from exc

    return {
        "upload_url": upload_url,
        "public_url": build_s3_url(key),
        "key": key,
        "content_type": content_type,
    }


def presign_submission_upload(user_id: int, task_id: int, filename: str, content_type: str) -> Dict[str, str]:
    return generate_presigned_put_url(
        f"submissions/task-{task_id}/user-{user_id}",
        filename,
        content_type,
        allowed_types=SUBMISSION_FILE_TYPES,
    )


def presign_attachment_upload(filename: str, content_type: str) -> Dict[str, str]:
    return generate_presigned_put_url(
        "announcements",
        filename,
        content_type,
        allowed_types=ATTACHMENT_FILE_TYPES,
    )
