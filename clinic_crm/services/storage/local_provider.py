"""
Local Filesystem Storage Provider

Stores attachments under ATTACHMENT_STORAGE_ROOT and serves them from
ATTACHMENT_PUBLIC_PREFIX (default /files).
"""
import logging
import os
from typing import Optional

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from .base import AttachmentStorageProvider, StorageResult

logger = logging.getLogger(__name__)


class LocalStorageProvider(AttachmentStorageProvider):
    """Local filesystem storage provider"""

    def __init__(self, storage_root: Optional[str] = None, public_prefix: str = '/files'):
        if storage_root is None:
            storage_root = os.path.join(os.getcwd(), 'storage', 'attachments')

        self.storage_root = storage_root
        self.public_prefix = public_prefix.rstrip('/')
        os.makedirs(self.storage_root, exist_ok=True)
        logger.info(f"[LOCAL_STORAGE] Initialized with root: {self.storage_root}")

    def upload(self, file: FileStorage, folder: str = 'general') -> StorageResult:
        filename = secure_filename(file.filename or '') or 'upload'
        storage_key = self.get_storage_key(folder, filename)
        file_path = self.get_file_path(storage_key)

        os.makedirs(os.path.dirname(file_path), exist_ok=True)
        file.save(file_path)
        file_size = os.path.getsize(file_path)

        logger.info(f"[LOCAL_STORAGE] Uploaded: {storage_key} ({file_size} bytes)")
        return StorageResult(
            storage_key=storage_key,
            url=f"{self.public_prefix}/{storage_key}",
            size=file_size,
            provider='local',
            metadata={'path': file_path},
        )

    def delete(self, url: str) -> bool:
        storage_key = self.storage_key_from_url(url)
        if storage_key is None:
            logger.warning(f"[LOCAL_STORAGE] Not a local file URL: {url}")
            return False

        file_path = self.get_file_path(storage_key)
        if os.path.isfile(file_path):
            os.remove(file_path)
            logger.info(f"[LOCAL_STORAGE] Deleted: {storage_key}")
            return True
        logger.warning(f"[LOCAL_STORAGE] File not found for deletion: {storage_key}")
        return False

    def storage_key_from_url(self, url: str) -> Optional[str]:
        prefix = self.public_prefix + '/'
        if not url or not url.startswith(prefix):
            return None
        key = url[len(prefix):]
        if '..' in key.split('/'):
            return None
        return key

    def get_file_path(self, storage_key: str) -> str:
        return os.path.join(self.storage_root, storage_key)
