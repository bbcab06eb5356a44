"""Shared fixtures and fakes."""

import threading

import pytest

from attachment_sync.config import ConfigurationManager, Settings
from attachment_sync.document import TextDocument, VaultFileSystem
from attachment_sync.models import FetchResponse, Result, UploadData
from attachment_sync.notify import LoggingNotifier

PUBLIC_DOMAIN = "https://cdn.example.com"


class FakeUploader:
    """In-memory uploader recording every call."""

    def __init__(self, fail_names=(), fail_keys=()):
        self.fail_names = set(fail_names)
        self.fail_keys = set(fail_keys)
        self.uploaded = []
        self.deleted = []
        self.stored = {}
        self._lock = threading.Lock()

    def upload_file(self, file, key=None, on_progress=None):
        if file.name in self.fail_names:
            return Result.fail("Upload error: boom")
        key = key or f"k1_202401011200_{file.name}"
        with self._lock:
            self.uploaded.append(file.name)
            self.stored[key] = file.data
        if on_progress:
            on_progress(50)
            on_progress(100)
        return Result.ok(UploadData(url=f"{PUBLIC_DOMAIN}/{key}", key=key))

    def delete_file(self, key):
        if key in self.fail_keys:
            return Result.fail("Delete error: denied")
        with self._lock:
            self.deleted.append(key)
            self.stored.pop(key, None)
        return Result.ok()

    def file_exists_by_prefix(self, prefix):
        for key in self.stored:
            if key.startswith(prefix):
                return Result.ok(UploadData(url=f"{PUBLIC_DOMAIN}/{key}", key=key))
        return Result.fail("not found")

    def check_connection_config(self):
        return Result.ok()


class FakeFetch:
    """Fetch returning canned bodies; unknown URLs give 404."""

    def __init__(self, bodies=None):
        self.bodies = dict(bodies or {})
        self.calls = []

    def __call__(self, url):
        self.calls.append(url)
        if url in self.bodies:
            return FetchResponse(status=200, content=self.bodies[url], content_type="image/png")
        return FetchResponse(status=404)


@pytest.fixture
def notifier():
    return LoggingNotifier()


@pytest.fixture
def vault(tmp_path):
    return VaultFileSystem(tmp_path, attachment_folder="./attachments")


@pytest.fixture
def document(tmp_path):
    path = tmp_path / "note.md"
    path.write_text("", encoding="utf-8")
    return TextDocument("", path=path)


@pytest.fixture
def config_manager(tmp_path):
    settings = Settings(
        uploader_type="amazon-s3",
        uploader_config={
            "endpoint": "https://s3.example.com",
            "region": "us-east-1",
            "access_key_id": "AKIA",
            "secret_access_key": "secret",
            "bucket_name": "bucket",
            "public_domain": PUBLIC_DOMAIN,
        },
    )
    return ConfigurationManager(tmp_path / "settings.json", settings=settings)
