"""
    S3 Storage Provider module
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from receipt_pipeline.providers.provider_interfaces import OfflineStore


logger = logging.getLogger(__name__)

KEY_PREFIX = 'receipts/offline/'
DELETE_BATCH_SIZE = 1000


class S3StorageProvider(OfflineStore):
    """S3 implementation of OfflineStore interface"""

    def __init__(self, bucket_name: str, s3_client=None, key_prefix: str = KEY_PREFIX):
        if not bucket_name:
            raise ValueError("S3 bucket name not configured")

        self.s3_client = s3_client or boto3.client('s3')
        self.bucket_name = bucket_name
        self.key_prefix = key_prefix

    def _object_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def put(self, key: str, data: bytes) -> bool:
        """Store record blob in S3"""
        try:
            self.s3_client.put_object(
                Bucket=self.bucket_name,
                Key=self._object_key(key),
                Body=data,
                ContentType='application/json',
                Metadata={'stored_at': datetime.now(timezone.utc).isoformat()}
            )

            logger.info(f"Record stored: s3://{self.bucket_name}/{self._object_key(key)}")
            return True

        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 storage error: {e}")
            return False

    def get(self, key: str) -> Optional[bytes]:
        """Retrieve record blob from S3"""
        try:
            response = self.s3_client.get_object(
                Bucket=self.bucket_name,
                Key=self._object_key(key)
            )
            return response['Body'].read()

        except ClientError as e:
            if e.response.get('Error', {}).get('Code') not in ('NoSuchKey', '404'):
                logger.error(f"S3 retrieval error: {e}")
            return None

        except BotoCoreError as e:
            logger.error(f"S3 retrieval error: {e}")
            return None

    def keys(self, prefix: str = '') -> List[str]:
        """List record keys under the store prefix"""
        keys = []
        try:
            paginator = self.s3_client.get_paginator('list_objects_v2')
            for page in paginator.paginate(Bucket=self.bucket_name, Prefix=self._object_key(prefix)):
                for obj in page.get('Contents', []):
                    keys.append(obj['Key'][len(self.key_prefix):])

        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 list error: {e}")

        return keys

    def delete_prefix(self, prefix: str) -> int:
        """Bulk delete in batches of up to 1000 keys"""
        keys = self.keys(prefix)
        deleted = 0

        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start:start + DELETE_BATCH_SIZE]
            try:
                response = self.s3_client.delete_objects(
                    Bucket=self.bucket_name,
                    Delete={'Objects': [{'Key': self._object_key(key)} for key in batch], 'Quiet': True}
                )
                deleted += len(batch) - len(response.get('Errors', []))

            except (ClientError, BotoCoreError) as e:
                logger.error(f"S3 delete error: {e}")

        logger.info(f"Deleted {deleted} S3 records with prefix '{prefix}'")
        return deleted
