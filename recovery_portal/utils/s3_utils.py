"""
S3 bucket holding uploaded case documents and message attachments
"""
import os
import uuid
import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from ..config.settings import settings as app_settings

logger = logging.getLogger(__name__)


class S3DocumentBucket:
    """Lazily connected bucket; every operation is a no-op returning a failure while S3 is unavailable."""

    def __init__(self, settings=None, client=None):
        settings = settings or app_settings
        self.enabled = settings.use_s3_storage
        self.bucket_name = settings.s3_bucket_name
        self.region = settings.aws_region
        self.endpoint_url = settings.s3_endpoint_url
        self._credentials = (settings.aws_access_key_id, settings.aws_secret_access_key)
        self._client = client
        self._available = None

    @property
    def client(self):
        if self._client is None:
            access_key, secret_key = self._credentials
            # MinIO or localstack endpoints take precedence over the regional one
            endpoint = self.endpoint_url or f"https://s3.{self.region}.amazonaws.com"
            self._client = boto3.client(
                's3',
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=self.region,
                endpoint_url=endpoint,
                config=Config(region_name=self.region, signature_version='s3v4'),
            )
            logger.info("S3 client configured with endpoint: %s", endpoint)
        return self._client

    @property
    def available(self) -> bool:
        """Enabled, configured and reachable; checked once per process"""
        if not self.enabled:
            return False
        if self._available is None:
            if not (all(self._credentials) or self._client is not None) or not self.bucket_name:
                logger.warning("S3 storage enabled but credentials or bucket name are missing")
                self._available = False
            else:
                try:
                    self.client.head_bucket(Bucket=self.bucket_name)
                    self._available = True
                    logger.info("S3 bucket '%s' is accessible", self.bucket_name)
                except (NoCredentialsError, ClientError, BotoCoreError) as e:
                    logger.error("S3 bucket '%s' not accessible: %s", self.bucket_name, e)
                    self._available = False
        return self._available

    @staticmethod
    def object_key(organisation_id: Optional[str], filename: str, case_id: Optional[str] = None) -> str:
        """organisation/case-or-general/<random>.ext"""
        extension = os.path.splitext(filename or "")[1].lower()
        return f"{organisation_id or 'unassigned'}/{case_id or 'general'}/{uuid.uuid4().hex}{extension}"

    def put(self, key: str, payload: bytes, content_type: str) -> bool:
        if not self.available:
            return False
        try:
            self.client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=payload,
                ContentType=content_type,
                ServerSideEncryption='AES256',
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to upload %s to S3: %s", key, e)
            return False
        logger.info("Document uploaded to S3: %s", key)
        return True

    def get(self, key: str) -> Optional[bytes]:
        if not self.available:
            return None
        try:
            response = self.client.get_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to download %s from S3: %s", key, e)
            return None
        return response['Body'].read()

    def delete(self, key: str) -> bool:
        if not self.available:
            return False
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to delete %s from S3: %s", key, e)
            return False
        logger.info("Document deleted from S3: %s", key)
        return True


document_bucket = S3DocumentBucket()
