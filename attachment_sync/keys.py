"""Mapping between public URLs and storage keys, plus key and id generation."""

import hashlib
import itertools
import logging
import secrets
import time
from datetime import datetime
from typing import Iterable, Optional
from urllib.parse import quote, unquote, urlsplit

from .errors import EncodingAmbiguity
from .models import UploadFile

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "bmp", "webp", "svg")

RANDOM_STRING_LENGTH = 7
MULTIPART_UPLOAD_THRESHOLD = 5 * 1024 * 1024  # 5MB

# Characters left alone when a key becomes a URL path
_KEY_SAFE_CHARS = "/-_.~"

_ID_SEQUENCE = itertools.count(1)


def get_extension(path: str) -> str:
    """Return the lower-cased extension of a path or URL, or ''."""
    name = path.split("?", 1)[0].split("#", 1)[0].rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def is_image_extension(ext: str) -> bool:
    return ext.lower() in IMAGE_EXTENSIONS


def is_file_type_supported(allowed_extensions: Iterable[str], extension: Optional[str]) -> bool:
    """Check whether an extension is in the allow-list (case-insensitive)."""
    if not extension:
        return False
    allowed = {ext.lower().lstrip(".") for ext in allowed_extensions or ()}
    return extension.lower() in allowed


def decode_key(value: str) -> str:
    """Percent-decode a key, falling back to the raw value.

    Args:
        value: Possibly percent-encoded key or path

    Returns:
        Decoded key, or the input unchanged when its escapes are not valid UTF-8
    """
    try:
        return unquote(value, errors="strict")
    except UnicodeDecodeError as e:
        ambiguity = EncodingAmbiguity(
            f"Could not decode key {value!r}", details={"reason": str(e)}
        )
        logger.debug(f"{ambiguity.message}, keeping raw value")
        return value


def extract_key(url: str, public_domain: Optional[str]) -> str:
    """Derive the storage key from a public URL.

    A URL under the configured public domain yields everything after the
    domain. Any other URL yields its path without the leading slash.

    Args:
        url: Public URL of the stored file
        public_domain: Configured public base URL (may be empty)

    Returns:
        The decoded storage key. Never raises.
    """
    if public_domain and url.startswith(public_domain):
        base_url = public_domain.rstrip("/")
        return decode_key(url[len(base_url) + 1:])

    try:
        path = urlsplit(url).path
    except ValueError:
        logger.debug(f"Could not parse {url!r} as a URL")
        return url

    if path.startswith("/"):
        path = path[1:]
    return decode_key(path)


def to_public_url(key: str, public_domain: str) -> str:
    """Build the public URL of a key under a public domain."""
    return f"{public_domain.rstrip('/')}/{quote(key, safe=_KEY_SAFE_CHARS)}"


def get_hostname(url: str) -> Optional[str]:
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return None
    return hostname.lower() if hostname else None


def is_uploaded_file_link(url: str, public_domain: Optional[str]) -> bool:
    """Check whether a URL is served from the configured public domain.

    Only hostnames are compared, since one CDN host may front several path
    prefixes.
    """
    if not public_domain:
        return False
    if not url.startswith(("http://", "https://")):
        return False
    url_host = get_hostname(url)
    domain_host = get_hostname(public_domain)
    return bool(url_host) and url_host == domain_host


def _base36(value: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))


def generate_unique_id(prefix: str, file: Optional[UploadFile] = None, length: int = 6) -> str:
    """Generate an id for a process item.

    Without a file the id is the time plus a process-wide sequence number, so
    no two calls return the same id. With a file it is derived from the file's
    name, size and type, so the same file gets the same id across pastes.

    Args:
        prefix: Short type prefix ("u", "dl", "del")
        file: Optional file to derive the id from
        length: Length of the hash part for file-derived ids

    Returns:
        The id, e.g. "dlm2k9x1ab_17"
    """
    if file is None:
        return f"{prefix}{_base36(time.time_ns() // 1_000_000)}_{next(_ID_SEQUENCE)}"
    text = f"{file.name}_{file.size}_{file.mime_type}"
    digest = hashlib.sha1(text.encode("utf-8")).hexdigest()
    return f"{prefix}{_base36(int(digest, 16))[:length]}"


def generate_file_key(file_name: str, unique_id: Optional[str] = None) -> str:
    """Generate a storage key: "<id>_<YYYYMMDDHHMM>_<name>.<ext>".

    The name is kept readable; encoding happens in to_public_url.
    """
    if not unique_id:
        unique_id = secrets.token_hex(8)[:RANDOM_STRING_LENGTH]
    stamp = datetime.now().strftime("%Y%m%d%H%M")
    return f"{unique_id}_{stamp}_{file_name}"


def strip_key_prefix(file_name: str) -> str:
    """Drop the "<id>_<timestamp>_" prefix that generate_file_key adds."""
    parts = file_name.split("_", 2)
    if len(parts) == 3 and len(parts[1]) == 12 and parts[1].isdigit():
        return parts[2]
    return file_name


def file_name_from_url(url: str) -> str:
    """Return the decoded last path segment of a URL, without key prefix."""
    try:
        path = urlsplit(url).path
    except ValueError:
        path = url
    name = decode_key(path.rstrip("/").rsplit("/", 1)[-1]) or "file"
    return strip_key_prefix(name)
