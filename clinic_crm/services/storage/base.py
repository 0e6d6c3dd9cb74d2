"""
Storage Abstraction Layer for record attachments

Attachments on contacts, leads, customers and tickets are uploaded through
an AttachmentStorageProvider, which returns the public URL stored on the
record's attachment entry. Deleting an attachment deletes the blob by URL.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

from werkzeug.datastructures import FileStorage

logger = logging.getLogger(__name__)


class StorageResult:
    """Result of a storage operation"""
    def __init__(self, storage_key: str, url: str, size: int, provider: str, metadata: Optional[Dict] = None):
        self.storage_key = storage_key
        self.url = url
        self.size = size
        self.provider = provider
        self.metadata = metadata or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'storage_key': self.storage_key,
            'url': self.url,
            'size': self.size,
            'provider': self.provider,
            'metadata': self.metadata,
        }


class AttachmentStorageProvider(ABC):
    """Abstract base class for attachment storage providers"""

    @abstractmethod
    def upload(self, file: FileStorage, folder: str = 'general') -> StorageResult:
        """
        Upload a file to storage

        Args:
            file: Uploaded file object
            folder: Record folder, e.g. 'leads/12'

        Returns:
            StorageResult with the public URL
        """

    @abstractmethod
    def delete(self, url: str) -> bool:
        """
        Delete a file by the URL upload() returned

        Returns:
            True if a file was removed
        """

    def get_storage_key(self, folder: str, filename: str) -> str:
        """
        Format: {folder}/{yyyy}/{mm}/{uuid}.ext
        """
        now = datetime.utcnow()
        ext = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
        name = uuid.uuid4().hex
        if ext:
            name = f"{name}.{ext}"
        return f"{folder.strip('/')}/{now:%Y}/{now:%m}/{name}"


def get_attachment_storage() -> AttachmentStorageProvider:
    """Configured storage provider for the current app"""
    from flask import current_app
    from clinic_crm.services.storage.local_provider import LocalStorageProvider

    provider = current_app.extensions.get('attachment_storage')
    if provider is None:
        provider = LocalStorageProvider(
            current_app.config['ATTACHMENT_STORAGE_ROOT'],
            current_app.config.get('ATTACHMENT_PUBLIC_PREFIX', '/files'),
        )
        current_app.extensions['attachment_storage'] = provider
    return provider
