"""Attachment sync package."""

from .config import ConfigurationManager, Settings
from .document import TextDocument, VaultFileSystem
from .events import EventHandlerManager
from .models import (
    DeleteProcessItem,
    DownloadProcessItem,
    MarkdownLink,
    Result,
    UploadFile,
    UploadProcessItem,
)
from .queue import ProcessQueue
from .scanner import DocumentProcessor
from .worker import DeleteHandler, DownloadHandler, UploadHandler

__all__ = [
    "ConfigurationManager",
    "Settings",
    "TextDocument",
    "VaultFileSystem",
    "EventHandlerManager",
    "DeleteProcessItem",
    "DownloadProcessItem",
    "MarkdownLink",
    "Result",
    "UploadFile",
    "UploadProcessItem",
    "ProcessQueue",
    "DocumentProcessor",
    "DeleteHandler",
    "DownloadHandler",
    "UploadHandler",
]
