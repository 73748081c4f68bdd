"""
R2 / S3 Client wrapper.
Handles the multipart protocol, single-shot puts and bucket checks.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional
from urllib.parse import quote

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError

from relay.core.config import Settings
from relay.s3.config import CACHE_CONTROL, CONTENT_DISPOSITION

logger = logging.getLogger(__name__)

# Left unescaped in public links, together with alphanumerics and '-_.~'
URI_COMPONENT_SAFE = "!'()*"


class S3Client:
    """Wrapper for S3-compatible object store operations."""

    def __init__(self, config: Settings):
        """
        Initialize S3 client from settings.

        Args:
            config: Application settings with R2 credentials and endpoint
        """
        endpoint_url = config.endpoint_url

        self.client = boto3.client(
            's3',
            endpoint_url=endpoint_url,
            aws_access_key_id=config.R2_ACCESS_KEY_ID,
            aws_secret_access_key=config.R2_SECRET_ACCESS_KEY,
            config=Config(
                signature_version='s3v4',
                max_pool_connections=max(10, config.UPLOAD_QUEUE_SIZE * 2)
            ),
            region_name=config.S3_REGION
        )

        self.endpoint_url = endpoint_url
        self.bucket = config.R2_BUCKET_NAME
        self.public_domain = config.R2_PUBLIC_DOMAIN

        # One worker per in-flight part, plus one for control calls
        self.upload_executor = ThreadPoolExecutor(
            max_workers=config.UPLOAD_QUEUE_SIZE + 1,
            thread_name_prefix="s3-upload"
        )

        logger.info(f"S3 client initialized with endpoint: {endpoint_url}")

    @staticmethod
    def object_metadata(content_type: str) -> dict:
        """Headers stored on every relayed object."""
        return {
            'ContentType': content_type,
            'ContentDisposition': CONTENT_DISPOSITION,
            'CacheControl': CACHE_CONTROL,
        }

    def create_multipart_upload(self, bucket: str, key: str, content_type: str) -> str:
        """
        Start a multipart upload.

        Args:
            bucket: Bucket name
            key: Object key
            content_type: MIME type stored on the object

        Returns:
            UploadId assigned by the store

        Raises:
            ClientError: If the store rejects the request
        """
        response = self.client.create_multipart_upload(
            Bucket=bucket,
            Key=key,
            **self.object_metadata(content_type)
        )
        upload_id = response['UploadId']
        logger.info(f"[MULTIPART] Created upload {upload_id} for {bucket}/{key}")
        return upload_id

    def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        body: bytes
    ) -> str:
        """
        Upload one part of a multipart upload.

        Returns:
            ETag of the stored part

        Raises:
            ClientError: If the part upload fails
        """
        response = self.client.upload_part(
            Bucket=bucket,
            Key=key,
            UploadId=upload_id,
            PartNumber=part_number,
            Body=body
        )
        return response['ETag']

    def complete_multipart_upload(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: List[dict]
    ) -> Optional[str]:
        """
        Assemble uploaded parts into the final object.

        Args:
            parts: [{'PartNumber': n, 'ETag': etag}, ...] in ascending order

        Returns:
            ETag of the assembled object

        Raises:
            ClientError: If the store cannot assemble the object
        """
        response = self.client.complete_multipart_upload(
            Bucket=bucket,
            Key=key,
            UploadId=upload_id,
            MultipartUpload={'Parts': parts}
        )
        logger.info(f"[MULTIPART] Completed upload {upload_id} ({len(parts)} parts): {bucket}/{key}")
        return response.get('ETag')

    def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        """
        Abort a multipart upload and discard its parts.

        Raises:
            ClientError: If the abort request fails
        """
        self.client.abort_multipart_upload(
            Bucket=bucket,
            Key=key,
            UploadId=upload_id
        )
        logger.info(f"[MULTIPART] Aborted upload {upload_id}: {bucket}/{key}")

    def put_object(self, bucket: str, key: str, body: bytes, content_type: str) -> Optional[str]:
        """
        Upload a small object in a single request.

        Returns:
            ETag of the stored object

        Raises:
            ClientError: If upload fails
        """
        response = self.client.put_object(
            Bucket=bucket,
            Key=key,
            Body=body,
            **self.object_metadata(content_type)
        )
        logger.info(f"Uploaded file: {bucket}/{key} ({len(body)} bytes)")
        return response.get('ETag')

    def get_public_url(self, key: str) -> str:
        """
        Get the permanent public URL for an object in the bucket.

        Args:
            key: Object key (percent-encoded as one path segment)

        Returns:
            '{public_domain}/{encoded key}'
        """
        return f"{self.public_domain}/{quote(key, safe=URI_COMPONENT_SAFE)}"

    def file_exists(self, bucket: str, key: str) -> bool:
        """
        Check if a file exists in the bucket.

        Returns:
            True if file exists, False otherwise
        """
        try:
            self.client.head_object(Bucket=bucket, Key=key)
            return True
        except ClientError:
            return False

    def check_bucket(self, bucket: Optional[str] = None) -> None:
        """
        Verify the bucket is reachable with the configured credentials.

        Raises:
            ClientError: If the bucket is missing or access is denied
        """
        bucket = bucket or self.bucket
        try:
            self.client.head_bucket(Bucket=bucket)
            logger.info(f"Bucket reachable: {bucket}")
        except ClientError as e:
            logger.error(f"Error checking bucket {bucket}: {e}")
            raise

    def close(self) -> None:
        """Release the upload thread pool."""
        self.upload_executor.shutdown(wait=False)
