"""Link discovery in markdown text.

Links are located with a depth-counting scanner rather than a regular
expression: labels such as ``[a[b]c]`` and URLs such as ``x_(1).png`` carry
balanced brackets that a pattern like ``\\[[^\\]]*\\]\\([^)]*\\)`` splits
incorrectly. Every offset used to rewrite a document comes from this scanner.
"""

import re
from typing import Iterable, Iterator, Optional

from .keys import get_extension, is_file_type_supported, is_uploaded_file_link
from .models import MarkdownLink

_BARE_URL_RE = re.compile(r"https?://[^\s]+")


def _match_wiki_link(text: str, start: int, open_idx: int) -> Optional[MarkdownLink]:
    close_idx = text.find("]]", open_idx + 2)
    if close_idx == -1:
        return None
    end = close_idx + 2
    return MarkdownLink(
        full_match=text[start:end],
        start=start,
        end=end,
        url=text[open_idx + 2:close_idx],
        is_image=start != open_idx,
        is_wiki=True,
    )


def _match_inline_link(text: str, start: int, open_idx: int) -> Optional[MarkdownLink]:
    length = len(text)

    bracket_depth = 1
    j = open_idx + 1
    while j < length and bracket_depth > 0:
        if text[j] == "[":
            bracket_depth += 1
        elif text[j] == "]":
            bracket_depth -= 1
        j += 1

    if bracket_depth != 0 or j >= length or text[j] != "(":
        return None

    paren_depth = 1
    k = j + 1
    while k < length and paren_depth > 0:
        if text[k] == "(":
            paren_depth += 1
        elif text[k] == ")":
            paren_depth -= 1
        k += 1

    if paren_depth != 0:
        return None

    return MarkdownLink(
        full_match=text[start:k],
        start=start,
        end=k,
        url=text[j + 1:k - 1],
        is_image=start != open_idx,
    )


def scan_links(text: str, include_wiki_links: bool = False) -> Iterator[MarkdownLink]:
    """Yield the links of a text, left to right.

    Each call rescans from the beginning; nothing is retained between calls.
    When a candidate does not close cleanly the scan moves on by a single
    character, so unbalanced brackets never hide a later link.

    Args:
        text: Text to scan
        include_wiki_links: Also report ``[[target]]`` and ``![[target]]``

    Yields:
        MarkdownLink records with offsets into ``text``
    """
    if not text:
        return

    length = len(text)
    i = 0
    while i < length:
        start = i
        if text[i] == "!" and i + 1 < length and text[i + 1] == "[":
            i += 1

        if text[i] == "[":
            link = None
            if include_wiki_links and i + 1 < length and text[i + 1] == "[":
                link = _match_wiki_link(text, start, i)
            if link is None:
                link = _match_inline_link(text, start, i)
            if link is not None:
                yield link
                i = link.end
                continue

        i = start + 1


def find_bare_urls(text: str) -> Iterator[tuple[int, int, str]]:
    """Yield ``(start, end, url)`` for every http(s) URL written in the text.

    Trailing closing parentheses are not part of the URL, which keeps the
    URL of ``[x](https://a/b.png)`` clean.
    """
    for match in _BARE_URL_RE.finditer(text or ""):
        url = match.group(0).rstrip(")")
        if url:
            yield match.start(), match.start() + len(url), url


def _dedupe(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))


def find_upload_candidates(text: str, allowed_extensions: Iterable[str]) -> list[str]:
    """Find local file references worth uploading.

    Args:
        text: Markdown text
        allowed_extensions: Extensions eligible for upload, e.g. ["png", "pdf"]

    Returns:
        Local paths in first-seen order, without duplicates
    """
    allowed = list(allowed_extensions or [])
    if not text or not allowed:
        return []

    return _dedupe(
        link.url
        for link in scan_links(text, include_wiki_links=True)
        if not link.url.startswith(("http://", "https://"))
        and is_file_type_supported(allowed, get_extension(link.url.split("|", 1)[0]))
    )


def find_download_candidates(text: str, public_domain: Optional[str]) -> list[str]:
    """Find remote URLs that belong to the configured storage domain.

    Bracketed links come first, followed by bare URLs pasted as plain text.

    Args:
        text: Markdown text
        public_domain: Configured public base URL

    Returns:
        URLs in first-seen order, without duplicates
    """
    if not text or not public_domain:
        return []

    urls = [
        link.url
        for link in scan_links(text)
        if is_uploaded_file_link(link.url, public_domain)
    ]
    urls.extend(
        url
        for _start, _end, url in find_bare_urls(text)
        if is_uploaded_file_link(url, public_domain)
    )
    return _dedupe(urls)


def find_links_by_url(text: str, url: str, include_wiki_links: bool = True) -> list[MarkdownLink]:
    """Return every link of the text whose target equals ``url``."""
    return [link for link in scan_links(text, include_wiki_links) if link.url == url]
