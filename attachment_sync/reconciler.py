"""Rewrite document text after a remote operation settles.

All functions here are pure. The `*_edit` and `*_edits` functions locate
what to change and return `(start, end, replacement)` edits, so a caller can
write back only those ranges; the others return the rewritten text.
Offsets always come from a fresh scan of the text being rewritten.
"""

import logging
import re
from typing import Optional

from .keys import get_extension, is_image_extension
from .links import find_bare_urls, scan_links
from .models import MarkdownLink

logger = logging.getLogger(__name__)

DOWNLOAD_PLACEHOLDER = "⏳downloading"
UPLOAD_PLACEHOLDER = "📤uploading"

_BLANK_RUN_RE = re.compile(r"\n(?:[ \t]*\n){2,}")

Edit = tuple[int, int, str]


def marker_for(item_id: str) -> str:
    """Invisible marker that ties a placeholder to one process item."""
    return f"<!--{item_id}-->"


def build_link(name: str, url: str, image: bool = False) -> str:
    return f"{'!' if image else ''}[{name}]({url})"


def link_for_file(name: str, url: str, keep_image: bool = False) -> str:
    """Build the link for a file, embedding it when it is an image."""
    image = keep_image or is_image_extension(get_extension(name))
    return build_link(name, url, image)


def _splice(text: str, link: MarkdownLink, replacement: str) -> str:
    return text[:link.start] + replacement + text[link.end:]


def replace_link(text: str, target: str, replacement: str) -> str:
    """Replace every link whose URL equals ``target``.

    Args:
        text: Current document text
        target: Local path or remote URL written inside the link
        replacement: Full link text to put in place of each match

    Returns:
        The rewritten text (unchanged when nothing matched)
    """
    links = [link for link in scan_links(text, include_wiki_links=True) if link.url == target]
    # Back to front so earlier offsets stay valid
    for link in reversed(links):
        text = _splice(text, link, replacement)
    return text


def apply_edits(text: str, edits: list[Edit]) -> str:
    """Apply non-overlapping ``(start, end, replacement)`` edits to a text."""
    for start, end, replacement in sorted(edits, reverse=True):
        text = text[:start] + replacement + text[end:]
    return text


def relink_edits(text: str, target: str, name: str, url: str) -> list[Edit]:
    """Edits pointing every link at ``target`` to ``url``, keeping image embeds embedded."""
    return [
        (link.start, link.end, link_for_file(name, url, keep_image=link.is_image))
        for link in scan_links(text, include_wiki_links=True)
        if link.url == target
    ]


def relink(text: str, target: str, name: str, url: str) -> tuple[str, int]:
    """Point every link at ``target`` to ``url``, keeping image embeds embedded.

    Returns:
        Tuple of (new text, number of links rewritten)
    """
    edits = relink_edits(text, target, name, url)
    return apply_edits(text, edits), len(edits)


def collapse_blank_lines(text: str) -> str:
    """Collapse runs of three or more newlines to exactly two."""
    return _BLANK_RUN_RE.sub("\n\n", text)


def remove_link(text: str, url: str) -> str:
    """Remove the links to ``url`` and any bare occurrence of it.

    The text passed in is the affected region (usually the selection); it is
    trimmed as a whole, so callers must not pass the full document unless the
    full document is what was selected.
    """
    links = [link for link in scan_links(text) if link.url == url]
    for link in reversed(links):
        text = _splice(text, link, "")

    bare = [(start, end) for start, end, found in find_bare_urls(text) if found == url]
    for start, end in reversed(bare):
        text = text[:start] + text[end:]

    return collapse_blank_lines(text).strip()


def insert_placeholder_edit(text: str, url: str, item_id: str) -> Optional[Edit]:
    """Locate the first reference to ``url`` and swap it for a placeholder.

    A bracketed link keeps its label and only its target becomes the
    placeholder; a bare URL is replaced by the placeholder itself.

    Returns:
        The edit, or None when the URL is not in the text
    """
    token = f"{DOWNLOAD_PLACEHOLDER}{marker_for(item_id)}"

    for link in scan_links(text):
        if link.url == url:
            return link.end - 1 - len(url), link.end - 1, token

    for start, end, found in find_bare_urls(text):
        if found == url:
            return start, end, token

    return None


def insert_placeholder(text: str, url: str, item_id: str) -> Optional[str]:
    """Swap the first reference to ``url`` for a placeholder carrying the id.

    Returns:
        The rewritten text, or None when the URL is not in the text
    """
    edit = insert_placeholder_edit(text, url, item_id)
    return apply_edits(text, [edit]) if edit else None


def resolve_placeholder_edit(text: str, item_id: str, replacement: str) -> Optional[Edit]:
    """Locate the placeholder of ``item_id`` and replace it with its final text.

    Returns:
        The edit, or None when the marker has disappeared
    """
    marker = marker_for(item_id)
    for link in scan_links(text):
        if marker in link.url:
            if link.is_image and not replacement.startswith("!"):
                replacement = "!" + replacement
            return link.start, link.end, replacement

    span = _find_upload_placeholder(text, marker)
    if span is None:
        token = f"{DOWNLOAD_PLACEHOLDER}{marker}"
        index = text.find(token)
        if index != -1:
            span = (index, index + len(token))

    if span is None:
        logger.warning(f"Placeholder {marker} not found, leaving document unchanged")
        return None
    return span[0], span[1], replacement


def resolve_placeholder(text: str, item_id: str, replacement: str) -> Optional[str]:
    """Replace the placeholder of ``item_id`` with its final text.

    Returns:
        The rewritten text, or None when the marker has disappeared
    """
    edit = resolve_placeholder_edit(text, item_id, replacement)
    return apply_edits(text, [edit]) if edit else None


def restore_placeholder_edit(text: str, item_id: str, url: str) -> Optional[Edit]:
    """Locate the placeholder of ``item_id`` and put the original URL back."""
    marker = marker_for(item_id)
    for link in scan_links(text):
        if marker in link.url:
            return link.end - 1 - len(link.url), link.end - 1, url
    token = f"{DOWNLOAD_PLACEHOLDER}{marker}"
    index = text.find(token)
    if index == -1:
        return None
    return index, index + len(token), url


def restore_placeholder(text: str, item_id: str, url: str) -> Optional[str]:
    """Put the original URL back after a failed download."""
    edit = restore_placeholder_edit(text, item_id, url)
    return apply_edits(text, [edit]) if edit else None


def upload_placeholder(file_name: str, item_id: str) -> str:
    """Line inserted at the cursor while a pasted file uploads."""
    return f"{UPLOAD_PLACEHOLDER} {file_name}...{marker_for(item_id)}"


def _find_upload_placeholder(text: str, marker: str) -> Optional[tuple[int, int]]:
    marker_index = text.find(marker)
    if marker_index == -1:
        return None
    start = text.rfind(UPLOAD_PLACEHOLDER, 0, marker_index)
    if start == -1 or "\n" in text[start:marker_index]:
        return None
    return start, marker_index + len(marker)


def remove_link_lines_edits(text: str, url: str) -> list[Edit]:
    """Edits removing ``url`` from each line that references it.

    Used when the original region can no longer be located; only the lines
    holding the link are cleaned.
    """
    edits = []
    offset = 0
    for line in text.split("\n"):
        if url in line:
            cleaned = remove_link(line, url)
            if cleaned != line:
                edits.append((offset, offset + len(line), cleaned))
        offset += len(line) + 1
    return edits


def remove_link_lines(text: str, url: str) -> Optional[str]:
    """Remove ``url`` from each line that references it.

    Returns:
        The rewritten text, or None when the URL is not referenced
    """
    edits = remove_link_lines_edits(text, url)
    return apply_edits(text, edits) if edits else None
