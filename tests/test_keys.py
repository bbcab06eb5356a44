"""Tests for the URL/key codec and key generation."""

import re

import pytest

from attachment_sync.keys import (
    extract_key,
    file_name_from_url,
    generate_file_key,
    generate_unique_id,
    get_extension,
    is_file_type_supported,
    is_uploaded_file_link,
    strip_key_prefix,
    to_public_url,
)
from attachment_sync.models import UploadFile

DOMAIN = "https://cdn.example.com"


@pytest.mark.parametrize(
    "key",
    [
        "a.png",
        "folder/sub/a b.png",
        "图片/截图 1.png",
        "100%_done.pdf",
        "x_202401011200_name (1).jpg",
    ],
)
def test_public_url_and_key_agree(key):
    """Test that the key of a public URL is the key it was built from."""
    assert extract_key(to_public_url(key, DOMAIN), DOMAIN) == key
    assert extract_key(to_public_url(key, DOMAIN + "/"), DOMAIN + "/") == key


def test_to_public_url_encodes_key():
    """Test that the key is percent-encoded but slashes are kept."""
    assert to_public_url("a dir/b c.png", DOMAIN + "/") == "https://cdn.example.com/a%20dir/b%20c.png"


def test_extract_key_outside_domain_uses_path():
    """Test URLs under another host fall back to the path."""
    assert extract_key("https://bucket.s3.amazonaws.com/dir/a%20b.png", DOMAIN) == "dir/a b.png"
    assert extract_key("https://other.com/x.png", "") == "x.png"


def test_extract_key_invalid_escape_returns_raw():
    """Test that undecodable escapes leave the key as written."""
    assert extract_key(f"{DOMAIN}/bad%FFname.png", DOMAIN) == "bad%FFname.png"


def test_is_uploaded_file_link():
    """Test the hostname comparison."""
    assert is_uploaded_file_link("https://cdn.example.com/a.png", DOMAIN)
    assert is_uploaded_file_link("http://CDN.example.com/a.png", DOMAIN + "/prefix")
    assert not is_uploaded_file_link("https://other.com/a.png", DOMAIN)
    assert not is_uploaded_file_link("ftp://cdn.example.com/a.png", DOMAIN)
    assert not is_uploaded_file_link("https://cdn.example.com/a.png", "")
    assert not is_uploaded_file_link("http://[::1", DOMAIN)


def test_get_extension():
    """Test extensions of paths and URLs."""
    assert get_extension("a/b.PNG") == "png"
    assert get_extension("https://h/x.jpg?size=2#top") == "jpg"
    assert get_extension("README") == ""
    assert get_extension("dir.v2/file") == ""


def test_is_file_type_supported():
    """Test the case-insensitive allow-list."""
    assert is_file_type_supported(["PNG", ".pdf"], "png")
    assert is_file_type_supported(["png"], "PDF") is False
    assert is_file_type_supported(["png"], "") is False


def test_generate_file_key_format():
    """Test the "<id>_<timestamp>_<name>" layout."""
    key = generate_file_key("my file.png", "abc")

    assert re.fullmatch(r"abc_\d{12}_my file\.png", key)
    assert strip_key_prefix(key) == "my file.png"


def test_generate_file_key_random_id():
    """Test that keys without an id differ."""
    prefix = generate_file_key("a.png").split("_", 1)[0]
    assert len(prefix) == 7


def test_generate_unique_id_from_file_is_stable():
    """Test that the same file gives the same id."""
    file = UploadFile(name="a.png", data=b"123", mime_type="image/png")
    other = UploadFile(name="b.png", data=b"123", mime_type="image/png")

    assert generate_unique_id("u", file) == generate_unique_id("u", file)
    assert generate_unique_id("u", file) != generate_unique_id("u", other)
    assert generate_unique_id("dl").startswith("dl")


def test_generate_unique_id_never_repeats():
    """Test ids made in a tight loop are all distinct."""
    ids = [generate_unique_id("dl") for _ in range(20000)]

    assert len(set(ids)) == len(ids)


def test_strip_key_prefix_leaves_plain_names():
    """Test names without a generated prefix are untouched."""
    assert strip_key_prefix("my_holiday_photo.png") == "my_holiday_photo.png"


def test_file_name_from_url():
    """Test the decoded file name of a URL."""
    assert file_name_from_url(f"{DOMAIN}/dir/abc_202401011200_a%20b.png") == "a b.png"
    assert file_name_from_url(f"{DOMAIN}/") == "file"
