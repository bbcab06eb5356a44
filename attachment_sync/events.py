"""Entry points for paste, drop and selection commands."""

import logging
import mimetypes
from typing import Any, Callable, Optional
from urllib.parse import quote

from .config import ConfigurationManager
from .document import Document, VaultFileSystem
from .keys import (
    extract_key,
    generate_file_key,
    generate_unique_id,
    is_file_type_supported,
)
from .links import find_download_candidates, find_upload_candidates
from .models import DeleteProcessItem, DownloadProcessItem, UploadFile, UploadProcessItem
from .notify import Notifier
from .reconciler import link_for_file
from .uploaders.manager import UploaderManager
from .worker import DeleteHandler, DownloadHandler, Fetch, UploadHandler

logger = logging.getLogger(__name__)

CONFIGURE_STORAGE_MESSAGE = "Storage service is not configured: {error}. Please configure it before uploading."


def guess_mime_type(name: str) -> str:
    return mimetypes.guess_type(name)[0] or "application/octet-stream"


class EventHandlerManager:
    """Turns user events into process items for the three handlers."""

    def __init__(
        self,
        config_manager: ConfigurationManager,
        uploader_manager: UploaderManager,
        vault: VaultFileSystem,
        notifier: Notifier,
        get_document: Callable[[], Optional[Document]],
        fetch: Optional[Fetch] = None,
    ):
        self.config_manager = config_manager
        self.uploader_manager = uploader_manager
        self.vault = vault
        self.notifier = notifier
        self.get_document = get_document

        settings = config_manager.get_settings()
        self.upload_handler = UploadHandler(
            uploader_manager,
            notifier,
            get_document,
            max_concurrent=settings.upload_concurrency,
            skip_duplicate_files=settings.skip_duplicate_files,
        )
        self.download_handler = DownloadHandler(
            vault,
            notifier,
            get_document,
            max_concurrent=settings.download_concurrency,
            fetch=fetch,
        )
        self.delete_handler = DeleteHandler(
            uploader_manager,
            notifier,
            get_document,
            max_concurrent=settings.delete_concurrency,
        )
        config_manager.add_config_change_listener(self._on_config_change)

    @property
    def handlers(self):
        return [self.upload_handler, self.download_handler, self.delete_handler]

    def _on_config_change(self, changes: dict[str, Any]) -> None:
        settings = self.config_manager.get_settings()
        self.upload_handler.max_concurrent = settings.upload_concurrency
        self.upload_handler.skip_duplicate_files = settings.skip_duplicate_files
        self.download_handler.max_concurrent = settings.download_concurrency
        self.delete_handler.max_concurrent = settings.delete_concurrency
        self.vault.attachment_folder = settings.attachment_folder

    def _check_storage(self) -> bool:
        result = self.uploader_manager.check_connection_config()
        if not result.success:
            logger.warning(f"Connection config invalid: {result.error}")
            self.notifier.notify(CONFIGURE_STORAGE_MESSAGE.format(error=result.error))
            return False
        return True

    def _selection(self) -> tuple[Optional[Document], str]:
        document = self.get_document()
        if document is None:
            logger.warning("No active document")
            return None, ""
        selection = document.get_selection()
        if not selection:
            self.notifier.notify("No text selected")
        return document, selection

    def _upload_item(self, file: UploadFile, local_path: Optional[str] = None) -> UploadProcessItem:
        key = None
        if self.upload_handler.skip_duplicate_files:
            key = generate_file_key(file.name, generate_unique_id("", file))
        return UploadProcessItem(id=generate_unique_id("u"), file=file, local_path=local_path, key=key)

    def handle_paste(self, files: Optional[list[UploadFile]] = None, text: Optional[str] = None) -> bool:
        """Handle clipboard content.

        Returns:
            True if the paste was taken over, False to let the editor handle it
        """
        if not self.config_manager.settings.clipboard_auto_upload:
            return False
        return self._handle_transfer(files or [], text)

    def handle_drop(self, files: Optional[list[UploadFile]] = None, text: Optional[str] = None) -> bool:
        """Handle dropped files; same rules as a paste."""
        if not self.config_manager.settings.drag_auto_upload:
            return False
        return self._handle_transfer(files or [], text)

    def _handle_transfer(self, files: list[UploadFile], text: Optional[str]) -> bool:
        if not files:
            return False
        document = self.get_document()
        if document is None:
            return False
        logger.debug(f"File transfer with {len(files)} files")
        if not self._check_storage():
            return False

        allowed = self.config_manager.get_auto_upload_file_types()
        items = []
        for file in files:
            if is_file_type_supported(allowed, file.extension):
                items.append(self._upload_item(file))
            else:
                self._save_locally(file, document)

        if text:
            cursor = document.get_cursor("to")
            document.replace_range(text, cursor)
        if items:
            self.upload_handler.enqueue(items)
        return True

    def _save_locally(self, file: UploadFile, document: Document) -> None:
        context_path = getattr(document, "path", None)
        path = self.vault.get_available_path(file.name, context_path)
        self.vault.write_binary(path, file.data)
        logger.info(f"{file.name} is not an upload type, saved to {path}")
        link_path = quote(self.vault.relative_link(path, context_path), safe="/-_.~")
        document.replace_range(link_for_file(file.name, link_path) + "\n", document.get_cursor("to"))

    def get_selection_actions(self) -> list[str]:
        """Commands that apply to the current selection: upload, download, delete."""
        document = self.get_document()
        if document is None:
            return []
        selection = document.get_selection()
        if not selection:
            return []

        actions = []
        if find_upload_candidates(selection, self.config_manager.get_auto_upload_file_types()):
            actions.append("upload")
        if find_download_candidates(selection, self.config_manager.get_public_domain()):
            actions.extend(["download", "delete"])
        return actions

    def upload_selection(self) -> int:
        """Upload the local files linked in the selection.

        Returns:
            Number of items queued
        """
        document, selection = self._selection()
        if not selection or not self._check_storage():
            return 0

        context_path = getattr(document, "path", None)
        items = []
        for link_path in find_upload_candidates(selection, self.config_manager.get_auto_upload_file_types()):
            path = self.vault.resolve(link_path, context_path)
            if path is None:
                logger.error(f"Local file not found: {link_path}")
                self.notifier.notify(f"File not found: {link_path}")
                continue
            file = UploadFile(name=path.name, data=self.vault.read_binary(path), mime_type=guess_mime_type(path.name))
            items.append(self._upload_item(file, local_path=link_path))

        if items:
            self.upload_handler.enqueue(items)
        return len(items)

    def download_selection(self) -> int:
        """Download the remote files linked in the selection.

        Returns:
            Number of items queued
        """
        _document, selection = self._selection()
        if not selection:
            return 0
        urls = find_download_candidates(selection, self.config_manager.get_public_domain())
        if not urls:
            self.notifier.notify("No remote files found in selection")
            return 0
        self.download_handler.enqueue([DownloadProcessItem(id=generate_unique_id("dl"), url=url) for url in urls])
        return len(urls)

    def delete_selection(self, urls: Optional[list[str]] = None) -> int:
        """Delete the remote files linked in the selection and remove their links.

        Args:
            urls: Only delete these URLs (default: every remote file in the selection)

        Returns:
            Number of items queued
        """
        _document, selection = self._selection()
        if not selection or not self._check_storage():
            return 0
        domain = self.config_manager.get_public_domain()
        found = find_download_candidates(selection, domain)
        if urls is not None:
            found = [url for url in found if url in urls]
        if not found:
            self.notifier.notify("No remote files found in selection")
            return 0
        items = [
            DeleteProcessItem(
                id=generate_unique_id("del"),
                file_link=url,
                file_key=extract_key(url, domain),
                original_selection=selection,
            )
            for url in found
        ]
        self.delete_handler.enqueue(items)
        return len(items)

    def get_queue_status(self) -> dict[str, Any]:
        return {handler.kind: handler.get_queue_status().model_dump() for handler in self.handlers}

    def get_queue_stats(self) -> dict[str, Any]:
        return {handler.kind: handler.get_stats().model_dump() for handler in self.handlers}

    def dispose(self) -> int:
        """Shut down all handlers, warning once about unfinished work.

        Returns:
            Number of items that were pending or in flight
        """
        self.config_manager.remove_config_change_listener(self._on_config_change)
        count = sum(handler.dispose() for handler in self.handlers)
        if count:
            self.notifier.notify(f"Closed with unfinished tasks. {count} files may be lost.")
        return count
