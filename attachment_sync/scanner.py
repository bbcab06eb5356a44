"""Folder scan and batch processing of markdown documents."""

import logging
import threading
from pathlib import Path
from typing import Any, Callable, Optional, Union

from .config import ConfigurationManager
from .document import TextDocument, VaultFileSystem
from .events import EventHandlerManager
from .links import find_download_candidates, find_upload_candidates
from .models import DownloadableFile, FolderScanResult, UploadableFile
from .notify import LoggingNotifier, Notifier
from .uploaders.manager import UploaderManager
from .worker import Fetch

logger = logging.getLogger(__name__)

MODES = ("upload", "download", "delete")

ProgressCallback = Callable[[int, int], None]


class DocumentProcessor:
    """Runs the upload, download and delete pipelines over markdown files."""

    def __init__(
        self,
        config_manager: ConfigurationManager,
        uploader_manager: UploaderManager,
        vault: VaultFileSystem,
        notifier: Notifier,
        fetch: Optional[Fetch] = None,
    ):
        self.config_manager = config_manager
        self.uploader_manager = uploader_manager
        self.vault = vault
        self.notifier = notifier
        self.fetch = fetch
        self.history: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        config_manager: ConfigurationManager,
        vault_root: Union[str, Path],
        notifier: Optional[Notifier] = None,
        fetch: Optional[Fetch] = None,
    ) -> "DocumentProcessor":
        """Wire up a processor for a vault folder from the settings."""
        vault = VaultFileSystem(vault_root, config_manager.settings.attachment_folder)
        return cls(
            config_manager,
            UploaderManager(config_manager),
            vault,
            notifier or LoggingNotifier(),
            fetch=fetch,
        )

    def get_stats(self) -> dict[str, dict[str, int]]:
        """Totals per mode over every document processed so far."""
        totals = {mode: {"documents": 0, "queued": 0, "completed": 0, "failed": 0} for mode in MODES}
        with self._lock:
            history = list(self.history)
        for entry in history:
            counts = totals[entry["mode"]]
            counts["documents"] += 1
            for field in ("queued", "completed", "failed"):
                counts[field] += entry.get(field, 0)
        return totals

    def iter_documents(self, folder: Union[str, Path]) -> list[Path]:
        """Markdown files under a folder, in path order."""
        folder = Path(folder)
        if not folder.is_dir():
            raise FileNotFoundError(f"Folder not found: {folder}")
        return sorted(p for p in folder.rglob("*.md") if p.is_file())

    def _relative(self, path: Path) -> str:
        try:
            return path.resolve().relative_to(self.vault.root).as_posix()
        except ValueError:
            return path.as_posix()

    def scan(self, folder: Union[str, Path], on_progress: Optional[ProgressCallback] = None) -> FolderScanResult:
        """Collect upload and download candidates of every document in a folder.

        Args:
            folder: Folder to scan recursively
            on_progress: Called with (scanned, total) after each document

        Returns:
            FolderScanResult mapping each candidate to the documents using it
        """
        documents = self.iter_documents(folder)
        allowed = self.config_manager.get_auto_upload_file_types()
        domain = self.config_manager.get_public_domain()

        uploadable: dict[str, UploadableFile] = {}
        downloadable: dict[str, DownloadableFile] = {}
        for index, path in enumerate(documents, start=1):
            text = path.read_text(encoding="utf-8")
            doc_path = self._relative(path)
            for file_path in find_upload_candidates(text, allowed):
                entry = uploadable.setdefault(file_path, UploadableFile(file_path=file_path))
                entry.doc_paths.append(doc_path)
            for url in find_download_candidates(text, domain):
                entry = downloadable.setdefault(url, DownloadableFile(url=url))
                entry.doc_paths.append(doc_path)
            if on_progress:
                on_progress(index, len(documents))

        result = FolderScanResult(
            total_docs=len(documents),
            uploadable_files=list(uploadable.values()),
            downloadable_files=list(downloadable.values()),
        )
        logger.info(
            f"Scanned {result.total_docs} documents in {folder}: "
            f"{len(result.uploadable_files)} uploadable, {len(result.downloadable_files)} downloadable"
        )
        return result

    def process_document(
        self,
        path: Union[str, Path],
        mode: str,
        urls: Optional[list[str]] = None,
    ) -> dict[str, Any]:
        """Run one pipeline over a whole document and save it.

        Args:
            path: Markdown file
            mode: "upload", "download" or "delete"
            urls: For "delete", the URLs to delete (default: all remote files)

        Returns:
            Summary with the number of queued, completed and failed items
        """
        document = TextDocument.load(path)
        original = document.get_text()
        document.select_all()

        manager = EventHandlerManager(
            self.config_manager,
            self.uploader_manager,
            self.vault,
            self.notifier,
            lambda: document,
            fetch=self.fetch,
        )
        try:
            if mode == "upload":
                queued, handler = manager.upload_selection(), manager.upload_handler
            elif mode == "download":
                queued, handler = manager.download_selection(), manager.download_handler
            elif mode == "delete":
                queued, handler = manager.delete_selection(urls), manager.delete_handler
            else:
                raise ValueError(f"Unknown mode: {mode}")
            stats = handler.get_stats()
        finally:
            manager.dispose()

        if document.get_text() != original:
            document.save()

        summary = {
            "document": str(path),
            "mode": mode,
            "queued": queued,
            "completed": stats.completed,
            "failed": stats.failed,
        }
        with self._lock:
            self.history.append(summary)
        return summary

    def process_folder(
        self,
        folder: Union[str, Path],
        mode: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> list[dict[str, Any]]:
        """Upload or download the attachments of every document in a folder."""
        if mode not in ("upload", "download"):
            raise ValueError(f"Unknown mode: {mode}")
        documents = self.iter_documents(folder)
        results = []
        for index, path in enumerate(documents, start=1):
            try:
                results.append(self.process_document(path, mode))
            except (OSError, UnicodeDecodeError) as e:
                logger.error(f"Failed to process {path}: {e}")
                results.append({"document": str(path), "mode": mode, "error": str(e)})
            if on_progress:
                on_progress(index, len(documents))

        failed = sum(r.get("failed", 0) for r in results)
        completed = sum(r.get("completed", 0) for r in results)
        logger.info(f"Folder {mode} of {folder} done: {completed} completed, {failed} failed")
        return results
