"""Handlers that drain the upload, download and delete queues."""

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import quote

import httpx

from .document import Document, VaultFileSystem
from .errors import NetworkFailure, ReconciliationMiss
from .keys import decode_key, file_name_from_url
from .models import (
    DeleteProcessItem,
    DownloadProcessItem,
    FetchResponse,
    QueueStats,
    QueueStatus,
    UploadData,
    UploadProcessItem,
)
from .notify import Notifier, ProgressDebouncer
from .queue import ProcessQueue
from .reconciler import (
    Edit,
    insert_placeholder_edit,
    link_for_file,
    marker_for,
    relink_edits,
    remove_link,
    remove_link_lines_edits,
    resolve_placeholder_edit,
    restore_placeholder_edit,
    upload_placeholder,
)

logger = logging.getLogger(__name__)

DocumentProvider = Callable[[], Optional[Document]]
Fetch = Callable[[str], FetchResponse]

USER_AGENT = "attachment-sync/0.1 (+https://pypi.org/project/attachment-sync/)"


def default_fetch(url: str, timeout: float = 30.0) -> FetchResponse:
    """Download a URL with httpx.

    Args:
        url: URL to download
        timeout: Request timeout in seconds

    Returns:
        FetchResponse with the status code and body
    """
    with httpx.Client(follow_redirects=True, timeout=timeout) as client:
        response = client.get(url, headers={"User-Agent": USER_AGENT})
    return FetchResponse(
        status=response.status_code,
        content=response.content,
        content_type=response.headers.get("content-type"),
    )


def _apply_edits(document: Document, edits: list[Edit]) -> None:
    # Back to front so earlier offsets stay valid
    for start, end, replacement in sorted(edits, reverse=True):
        document.replace_range(replacement, start, end)


class ItemHandler:
    """Drains one queue with a concurrency ceiling.

    Every item goes through three phases. ``prepare`` and ``reconcile`` run
    on the thread that drains the queue and are the only places that touch
    the document; ``execute`` does the network call and may run in a pool
    thread when the ceiling is above 1.
    """

    kind = "item"

    def __init__(
        self,
        notifier: Notifier,
        get_document: DocumentProvider,
        max_concurrent: int = 1,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.queue = ProcessQueue(self.kind)
        self.notifier = notifier
        self.get_document = get_document
        self.max_concurrent = max_concurrent
        self.is_processing = False
        self.disposed = False
        self._in_flight = 0
        self._failed: list[str] = []
        self._settled = 0
        self.completed_count = 0
        self.failed_count = 0
        self._debouncers: dict[str, ProgressDebouncer] = {}
        self._lock = threading.Lock()

    def enqueue(self, items: list) -> None:
        """Add items and drain the queue unless a drain is already running."""
        if self.disposed:
            logger.warning(f"{self.kind} handler is disposed, ignoring {len(items)} items")
            return
        self.on_queued(items)
        for item in items:
            self.queue.push(item)
        logger.info(f"Queued {len(items)} {self.kind} items")
        self.process_queue()

    def process_queue(self) -> None:
        """Drain the queue; items added meanwhile are picked up by the same drain."""
        while True:
            with self._lock:
                if self.is_processing or self.disposed:
                    return
                self.is_processing = True
                self._failed = []
                self._settled = 0

            try:
                if self.max_concurrent == 1:
                    self._run_single_threaded()
                else:
                    self._run_multi_threaded()
            finally:
                with self._lock:
                    self.is_processing = False
                # Settled items live on only in the counters
                self.queue.clear_finished()

            self._report_summary()
            if self.disposed or self.queue.pending_count() == 0:
                return

    def _run_single_threaded(self) -> None:
        while not self.disposed:
            item = self.queue.pop()
            if item is None:
                break
            context = self._begin(item)
            if context is None:
                continue
            try:
                data = self.execute(item, context)
            except Exception as e:
                self._on_failure(item, context, e)
            else:
                self._on_success(item, context, data)

    def _run_multi_threaded(self) -> None:
        with ThreadPoolExecutor(max_workers=self.max_concurrent, thread_name_prefix=self.kind) as executor:
            futures = {}

            while True:
                # Fill up the pool
                while len(futures) < self.max_concurrent and not self.disposed:
                    item = self.queue.pop()
                    if item is None:
                        break
                    context = self._begin(item)
                    if context is None:
                        continue
                    futures[executor.submit(self.execute, item, context)] = (item, context)

                if not futures:
                    break

                done, _ = wait(futures, return_when=FIRST_COMPLETED)
                for future in done:
                    item, context = futures.pop(future)
                    try:
                        data = future.result()
                    except Exception as e:
                        self._on_failure(item, context, e)
                    else:
                        self._on_success(item, context, data)

    def _begin(self, item) -> Optional[dict[str, Any]]:
        with self._lock:
            self._in_flight += 1
        self.notifier.start(item.id)
        context: dict[str, Any] = {}
        try:
            self.prepare(item, context)
        except ReconciliationMiss as e:
            logger.warning(f"Skipping {self.kind} of {item.reference}: {e.message}")
            self._settle(item, ok=True)
            return None
        except Exception as e:
            self._on_failure(item, context, e)
            return None
        return context

    def _on_success(self, item, context: dict[str, Any], data: Any) -> None:
        try:
            self.reconcile(item, context, data)
        except ReconciliationMiss as e:
            logger.warning(f"{self.kind} of {item.reference} finished but the document was not updated: {e.message}")
        except Exception as e:
            logger.error(f"Error reconciling {self.kind} of {item.reference}: {e}", exc_info=True)
            self._on_failure(item, context, e)
            return
        logger.info(f"Finished {self.kind} of {item.reference}")
        self._settle(item, ok=True)

    def _on_failure(self, item, context: dict[str, Any], error: Exception) -> None:
        message = getattr(error, "message", None) or str(error) or error.__class__.__name__
        logger.error(f"{self.kind} of {item.reference} failed: {message}")
        try:
            self.report_failure(item, context, error)
        except Exception as e:
            logger.error(f"Error while reporting failure of {item.reference}: {e}", exc_info=True)
        self.notifier.notify(self.failure_message(item, message))
        self._settle(item, ok=False, error=message)

    def _settle(self, item, ok: bool, error: str = "") -> None:
        if ok:
            self.queue.ack(item.id)
        else:
            self.queue.fail(item.id, error)
        with self._lock:
            self._in_flight -= 1
            self._settled += 1
            if ok:
                self.completed_count += 1
            else:
                self.failed_count += 1
                self._failed.append(item.id)
            self._debouncers.pop(item.id, None)
        self.notifier.finish(item.id)

    def _report_summary(self) -> None:
        with self._lock:
            failed, settled = len(self._failed), self._settled
        if failed and not self.disposed:
            self.notifier.notify(f"{failed} of {settled} {self.kind} tasks failed")

    def report_progress(self, item_id: str, percent: float) -> None:
        """Forward progress of an item, at most once per 10% milestone."""
        with self._lock:
            debouncer = self._debouncers.setdefault(item_id, ProgressDebouncer())
        debouncer.update(percent, lambda milestone: self.notifier.on_progress(item_id, milestone))

    def document(self) -> Optional[Document]:
        """The document to write to, or None when writes must be skipped."""
        if self.disposed:
            return None
        return self.get_document()

    def on_queued(self, items: list) -> None:
        """Runs on the enqueuing thread before the items reach the queue."""

    def prepare(self, item, context: dict[str, Any]) -> None:
        """Runs before the network call, on the draining thread."""

    def execute(self, item, context: dict[str, Any]) -> Any:
        raise NotImplementedError

    def reconcile(self, item, context: dict[str, Any], data: Any) -> None:
        """Runs after a successful network call, on the draining thread."""

    def report_failure(self, item, context: dict[str, Any], error: Exception) -> None:
        """Undo document changes made in prepare."""

    def failure_message(self, item, error: str) -> str:
        return f"{self.kind.capitalize()} failed: {item.reference} - {error}"

    def get_stats(self) -> QueueStats:
        """Live queue counts plus every item settled by this handler."""
        live = self.queue.get_stats()
        with self._lock:
            completed, failed = self.completed_count, self.failed_count
        return QueueStats(
            total=live.pending + live.processing + completed + failed,
            pending=live.pending,
            processing=live.processing,
            completed=completed,
            failed=failed,
        )

    def get_queue_status(self) -> QueueStatus:
        with self._lock:
            in_flight = self._in_flight
        return QueueStatus(
            queue_length=self.queue.pending_count() + in_flight,
            is_processing=self.is_processing,
        )

    def dispose(self) -> int:
        """Stop taking new work.

        Pending items are dropped; in-flight items finish without touching
        the document.

        Returns:
            Number of items that were pending or in flight
        """
        with self._lock:
            self.disposed = True
            in_flight = self._in_flight
        dropped = self.queue.drop_pending()
        if dropped or in_flight:
            logger.warning(f"{self.kind} handler disposed with {dropped} pending and {in_flight} running items")
        return dropped + in_flight


class UploadHandler(ItemHandler):
    """Uploads files and points their references at the remote URL."""

    kind = "upload"

    def __init__(
        self,
        uploader: Any,
        notifier: Notifier,
        get_document: DocumentProvider,
        max_concurrent: int = 1,
        skip_duplicate_files: bool = False,
    ):
        super().__init__(notifier, get_document, max_concurrent)
        self.uploader = uploader
        self.skip_duplicate_files = skip_duplicate_files

    def on_queued(self, items: list[UploadProcessItem]) -> None:
        # Pasted files get their placeholder at the cursor right away
        document = self.document()
        pasted = [item for item in items if item.local_path is None]
        if document is not None and pasted:
            block = "".join(upload_placeholder(item.file.name, item.id) + "\n" for item in pasted)
            document.replace_range(block, document.get_cursor("to"))

    def execute(self, item: UploadProcessItem, context: dict[str, Any]) -> UploadData:
        if self.skip_duplicate_files and item.key:
            existing = self.uploader.file_exists_by_prefix(item.key.split("_", 1)[0] + "_")
            if existing.success and existing.data is not None:
                logger.info(f"{item.file.name} is already uploaded as {existing.data.key}")
                return existing.data

        result = self.uploader.upload_file(
            item.file,
            item.key,
            lambda percent: self.report_progress(item.id, percent),
        )
        if not result.success or result.data is None:
            raise NetworkFailure(result.error or "Upload failed")
        return result.data

    def reconcile(self, item: UploadProcessItem, context: dict[str, Any], data: UploadData) -> None:
        self.notifier.notify(f"File uploaded successfully: {item.file.name}")
        document = self.document()
        if document is None:
            logger.warning(f"No document to update for {item.reference}")
            return

        text = document.get_text()
        if item.local_path is not None:
            name = Path(decode_key(item.local_path.split("|", 1)[0])).name
            edits = relink_edits(text, item.local_path, name, data.url)
            if not edits:
                raise ReconciliationMiss(f"No link to {item.local_path} left in the document")
        else:
            edit = resolve_placeholder_edit(text, item.id, link_for_file(item.file.name, data.url))
            if edit is None:
                raise ReconciliationMiss(f"Upload placeholder {marker_for(item.id)} is gone")
            edits = [edit]
        _apply_edits(document, edits)

    def report_failure(self, item: UploadProcessItem, context: dict[str, Any], error: Exception) -> None:
        if item.local_path is not None:
            return
        document = self.document()
        if document is None:
            return
        error_line = f"❌ Upload failed: {item.file.name} - {getattr(error, 'message', error)}"
        edit = resolve_placeholder_edit(document.get_text(), item.id, error_line)
        if edit is not None:
            _apply_edits(document, [edit])


class DownloadHandler(ItemHandler):
    """Fetches remote files into the vault and relinks them locally."""

    kind = "download"

    def __init__(
        self,
        vault: VaultFileSystem,
        notifier: Notifier,
        get_document: DocumentProvider,
        max_concurrent: int = 3,
        fetch: Optional[Fetch] = None,
    ):
        super().__init__(notifier, get_document, max_concurrent)
        self.vault = vault
        self.fetch = fetch or default_fetch

    def prepare(self, item: DownloadProcessItem, context: dict[str, Any]) -> None:
        document = self.document()
        if document is None:
            return
        edit = insert_placeholder_edit(document.get_text(), item.url, item.id)
        if edit is None:
            raise ReconciliationMiss(f"{item.url} is no longer in the document")
        _apply_edits(document, [edit])
        context["placeholder"] = True

    def execute(self, item: DownloadProcessItem, context: dict[str, Any]) -> FetchResponse:
        logger.info(f"Downloading {item.url}")
        response = self.fetch(item.url)
        if not 200 <= response.status < 300:
            raise NetworkFailure(f"HTTP {response.status}", details={"url": item.url})
        self.report_progress(item.id, 100)
        return response

    def reconcile(self, item: DownloadProcessItem, context: dict[str, Any], data: FetchResponse) -> None:
        document = self.document()
        context_path = getattr(document, "path", None) if document is not None else None

        path = self.vault.get_available_path(file_name_from_url(item.url), context_path)
        self.vault.write_binary(path, data.content)
        logger.info(f"Saved {item.url} to {path}")
        self.notifier.notify(f"File downloaded successfully: {path.name}")

        if document is None:
            logger.warning(f"No document to update for {item.url}")
            return
        link_path = quote(self.vault.relative_link(path, context_path), safe="/-_.~")
        edit = resolve_placeholder_edit(document.get_text(), item.id, link_for_file(path.name, link_path))
        if edit is None:
            raise ReconciliationMiss(f"Download placeholder {marker_for(item.id)} is gone, kept {path}")
        _apply_edits(document, [edit])

    def report_failure(self, item: DownloadProcessItem, context: dict[str, Any], error: Exception) -> None:
        if not context.get("placeholder"):
            return
        document = self.document()
        if document is None:
            return
        edit = restore_placeholder_edit(document.get_text(), item.id, item.url)
        if edit is not None:
            _apply_edits(document, [edit])


class DeleteHandler(ItemHandler):
    """Deletes remote files and removes their links."""

    kind = "delete"

    def __init__(
        self,
        uploader: Any,
        notifier: Notifier,
        get_document: DocumentProvider,
        max_concurrent: int = 1,
    ):
        super().__init__(notifier, get_document, max_concurrent)
        self.uploader = uploader

    def execute(self, item: DeleteProcessItem, context: dict[str, Any]) -> None:
        logger.info(f"Deleting {item.file_key}")
        result = self.uploader.delete_file(item.file_key)
        if not result.success:
            raise NetworkFailure(result.error or "Delete failed")

    def reconcile(self, item: DeleteProcessItem, context: dict[str, Any], data: Any) -> None:
        self.notifier.notify(f"File deleted successfully: {item.file_link}")
        document = self.document()
        if document is None:
            return

        selection = document.get_selection()
        if selection and item.file_link in selection:
            start, end = document.get_cursor("from"), document.get_cursor("to")
            document.replace_range(remove_link(selection, item.file_link), start, end)
            return

        text = document.get_text()
        snapshot = item.original_selection
        index = text.find(snapshot) if snapshot else -1
        if index != -1 and item.file_link in snapshot:
            end = index + len(snapshot)
            document.replace_range(remove_link(snapshot, item.file_link), index, end)
            return

        # Selection changed since the command ran; clean the lines holding the link
        edits = remove_link_lines_edits(text, item.file_link)
        if not edits:
            raise ReconciliationMiss(f"No reference to {item.file_link} left in the document")
        _apply_edits(document, edits)

    def failure_message(self, item: DeleteProcessItem, error: str) -> str:
        return f"File deletion failed: {item.file_link} - {error}"
