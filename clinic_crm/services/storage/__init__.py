"""Storage providers for attachments"""
from .base import AttachmentStorageProvider, StorageResult, get_attachment_storage
from .local_provider import LocalStorageProvider

__all__ = ['AttachmentStorageProvider', 'StorageResult', 'LocalStorageProvider', 'get_attachment_storage']
