"""Document and local filesystem collaborators."""

import logging
import os
import threading
from pathlib import Path
from typing import Optional, Protocol, Union

from .keys import decode_key

logger = logging.getLogger(__name__)


class Document(Protocol):
    """Text buffer the pipeline reads from and writes to."""

    def get_text(self) -> str: ...

    def get_selection(self) -> str: ...

    def get_cursor(self, kind: str = "head") -> int: ...

    def replace_range(self, text: str, start: int, end: Optional[int] = None) -> None: ...


class TextDocument:
    """In-memory document with a selection, optionally backed by a file."""

    def __init__(self, text: str = "", path: Optional[Union[str, Path]] = None):
        self._text = text
        self.path = Path(path) if path else None
        self._anchor = len(text)
        self._head = len(text)
        self._lock = threading.RLock()

    @classmethod
    def load(cls, path: Union[str, Path]) -> "TextDocument":
        """Load a markdown file."""
        path = Path(path)
        return cls(path.read_text(encoding="utf-8"), path=path)

    def save(self, path: Optional[Union[str, Path]] = None) -> Path:
        """Write the buffer back to disk.

        Args:
            path: Target path (defaults to the file the document was loaded from)

        Returns:
            The path written
        """
        target = Path(path) if path else self.path
        if target is None:
            raise ValueError("Document has no path to save to")
        with self._lock:
            target.write_text(self._text, encoding="utf-8")
        logger.info(f"Saved document to {target}")
        return target

    def get_text(self) -> str:
        with self._lock:
            return self._text

    def set_text(self, text: str) -> None:
        with self._lock:
            self._text = text
            self._anchor = self._head = len(text)

    def select(self, start: int, end: int) -> None:
        with self._lock:
            self._anchor = max(0, min(start, len(self._text)))
            self._head = max(0, min(end, len(self._text)))

    def select_all(self) -> None:
        with self._lock:
            self._anchor, self._head = 0, len(self._text)

    def get_selection(self) -> str:
        with self._lock:
            return self._text[self.get_cursor("from"):self.get_cursor("to")]

    def get_cursor(self, kind: str = "head") -> int:
        with self._lock:
            if kind == "from":
                return min(self._anchor, self._head)
            if kind == "to":
                return max(self._anchor, self._head)
            return self._head

    def replace_range(self, text: str, start: int, end: Optional[int] = None) -> None:
        """Replace ``[start, end)`` with ``text``; insert when end is omitted.

        The selection is shifted so that it keeps covering the same content,
        and collapses to the end of the inserted text when it overlapped the
        replaced range.
        """
        with self._lock:
            end = start if end is None else end
            if not 0 <= start <= end <= len(self._text):
                raise ValueError(f"Invalid range {start}:{end} for length {len(self._text)}")
            self._text = self._text[:start] + text + self._text[end:]
            delta = len(text) - (end - start)
            self._anchor = self._shift(self._anchor, start, end, delta)
            self._head = self._shift(self._head, start, end, delta)

    def replace_selection(self, text: str) -> None:
        with self._lock:
            start, end = self.get_cursor("from"), self.get_cursor("to")
            self.replace_range(text, start, end)
            self._anchor = self._head = start + len(text)

    @staticmethod
    def _shift(pos: int, start: int, end: int, delta: int) -> int:
        if pos <= start:
            return pos
        if pos >= end:
            return pos + delta
        return end + delta


class VaultFileSystem:
    """Local folder holding the documents and their attachments."""

    def __init__(self, root: Union[str, Path], attachment_folder: str = "./attachments"):
        self.root = Path(root).resolve()
        self.attachment_folder = attachment_folder

    def _context_dir(self, context_path: Optional[Union[str, Path]]) -> Path:
        if not context_path:
            return self.root
        context = Path(context_path)
        if not context.is_absolute():
            context = self.root / context
        return context.parent if context.suffix else context

    def attachment_dir(self, context_path: Optional[Union[str, Path]] = None) -> Path:
        """Folder new attachments go to; "./x" is relative to the document."""
        folder = self.attachment_folder or "./"
        if folder.startswith("./"):
            return (self._context_dir(context_path) / folder[2:]).resolve()
        return (self.root / folder).resolve()

    def get_available_path(self, preferred_name: str, context_path: Optional[Union[str, Path]] = None) -> Path:
        """Return a free path for a new attachment, adding "-1", "-2"... when taken."""
        folder = self.attachment_dir(context_path)
        candidate = folder / preferred_name
        if not candidate.exists():
            return candidate

        stem, dot, ext = preferred_name.rpartition(".")
        if not dot:
            stem, ext = preferred_name, ""
        counter = 1
        while True:
            name = f"{stem}-{counter}.{ext}" if ext else f"{stem}-{counter}"
            candidate = folder / name
            if not candidate.exists():
                return candidate
            counter += 1

    def write_binary(self, path: Union[str, Path], data: bytes) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug(f"Wrote {len(data)} bytes to {path}")
        return path

    def read_binary(self, path: Union[str, Path]) -> bytes:
        return Path(path).read_bytes()

    def resolve(self, link_path: str, context_path: Optional[Union[str, Path]] = None) -> Optional[Path]:
        """Find the file a local link points to.

        The link is tried relative to the document first, then from the vault
        root, then by basename anywhere in the vault (closest path wins).

        Args:
            link_path: Path as written in the link (may be percent-encoded)
            context_path: Document containing the link

        Returns:
            Path of the file, or None when nothing matches
        """
        target = decode_key(link_path.split("|", 1)[0].strip())
        if not target:
            return None

        base = self._context_dir(context_path)
        for candidate in (base / target, self.root / target.lstrip("/")):
            if candidate.is_file():
                return candidate.resolve()

        name = Path(target).name
        matches = [p for p in self.root.rglob("*") if p.name == name and p.is_file()]
        if not matches:
            return None

        def rank(p: Path):
            rel = os.path.relpath(p, start=base)
            return (0 if p.parent.resolve() == base.resolve() else 1, len(rel), rel)

        return sorted(matches, key=rank)[0].resolve()

    def relative_link(self, path: Union[str, Path], context_path: Optional[Union[str, Path]] = None) -> str:
        """Path of a file as written in a link from the given document."""
        rel = os.path.relpath(Path(path), start=self._context_dir(context_path))
        return rel.replace(os.sep, "/")
