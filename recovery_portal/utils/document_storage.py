"""
Document storage: S3 when configured, local disk otherwise
"""
import os
import logging
from dataclasses import dataclass
from typing import Optional

import aiofiles

from .s3_utils import document_bucket as default_bucket
from .file_utils import (
    generate_secure_filename,
    get_file_hash,
    encrypt_file_content,
    decrypt_file_content,
    generate_encryption_key,
    get_file_mime_type,
)
from ..config.settings import settings

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when a document cannot be written, read or found."""


@dataclass
class StoredFile:
    file_name: str
    file_type: str
    file_size: int
    file_hash: str
    storage_type: str
    file_path: Optional[str] = None
    s3_key: Optional[str] = None
    is_encrypted: bool = False
    encryption_key: Optional[str] = None


class DocumentStorage:
    """S3-first storage with a local-disk fallback"""

    def __init__(self, upload_dir: Optional[str] = None, bucket=None):
        self.upload_dir = upload_dir or settings.upload_dir
        self.bucket = bucket or default_bucket

    @property
    def use_s3(self) -> bool:
        return bool(self.bucket and self.bucket.available)

    async def save(
        self,
        content: bytes,
        filename: str,
        organisation_id: str,
        case_id: Optional[str] = None,
        content_type: Optional[str] = None,
        encrypt: Optional[bool] = None,
    ) -> StoredFile:
        """
        Store an uploaded file.

        Returns:
            StoredFile describing where the bytes went and how to read them back
        """
        encrypt = settings.encrypt_uploads if encrypt is None else encrypt
        stored = StoredFile(
            file_name=os.path.basename(filename or "file"),
            file_type=get_file_mime_type(filename, content_type),
            file_size=len(content),
            file_hash=get_file_hash(content),
            storage_type="local",
            is_encrypted=encrypt,
        )

        payload = content
        if encrypt:
            key = generate_encryption_key()
            payload = encrypt_file_content(content, key)
            stored.encryption_key = key.decode()

        if self.use_s3:
            s3_key = self.bucket.object_key(organisation_id, filename, case_id)
            if self.bucket.put(s3_key, payload, stored.file_type):
                stored.storage_type = "s3"
                stored.s3_key = s3_key
                logger.info("Document saved to S3: %s", stored.file_name)
                return stored
            logger.warning("S3 upload failed for %s, falling back to local storage", stored.file_name)

        relative_dir = os.path.join(organisation_id or "unassigned", case_id or "general")
        target_dir = os.path.join(self.upload_dir, relative_dir)
        os.makedirs(target_dir, exist_ok=True)
        secure_name = generate_secure_filename(filename)
        try:
            async with aiofiles.open(os.path.join(target_dir, secure_name), 'wb') as f:
                await f.write(payload)
        except OSError as e:
            logger.error("Local storage failed for %s: %s", stored.file_name, e)
            raise StorageError(f"Could not store {stored.file_name}") from e

        stored.file_path = os.path.join(relative_dir, secure_name)
        logger.info("Document saved locally: %s", stored.file_path)
        return stored

    def _local_path(self, file_path: str) -> str:
        root = os.path.realpath(self.upload_dir)
        full_path = os.path.realpath(os.path.join(root, file_path))
        if os.path.commonpath([root, full_path]) != root:
            raise StorageError("Invalid document path")
        return full_path

    async def read(self, storage_type: str, file_path: Optional[str], s3_key: Optional[str],
                   encryption_key: Optional[str] = None) -> bytes:
        """Load a stored file's bytes, decrypting when a key is given"""
        if storage_type == "s3":
            if not s3_key:
                raise StorageError("Document has no S3 key")
            payload = self.bucket.get(s3_key)
            if payload is None:
                raise StorageError(f"Document not found in S3: {s3_key}")
        else:
            if not file_path:
                raise StorageError("Document has no stored path")
            full_path = self._local_path(file_path)
            if not os.path.exists(full_path):
                raise StorageError(f"Document not found: {file_path}")
            async with aiofiles.open(full_path, 'rb') as f:
                payload = await f.read()

        if encryption_key:
            return decrypt_file_content(payload, encryption_key.encode())
        return payload

    def delete(self, storage_type: str, file_path: Optional[str], s3_key: Optional[str]) -> bool:
        if storage_type == "s3" and s3_key:
            return self.bucket.delete(s3_key)
        if file_path:
            full_path = self._local_path(file_path)
            if os.path.exists(full_path):
                os.remove(full_path)
                logger.info("Local document deleted: %s", file_path)
                return True
        return False


document_storage = DocumentStorage()


def get_document_storage() -> DocumentStorage:
    """FastAPI dependency so tests can swap the storage backend"""
    return document_storage
