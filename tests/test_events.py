"""Tests for the event entry points."""

import pytest

from attachment_sync.events import EventHandlerManager
from attachment_sync.models import Result, UploadFile
from attachment_sync.uploaders import UploaderManager

from conftest import PUBLIC_DOMAIN, FakeFetch, FakeUploader


class FakeUploaderManager(FakeUploader):
    """Fake uploader that also answers the manager's config check."""

    def __init__(self, config_ok=True, **kwargs):
        super().__init__(**kwargs)
        self.config_ok = config_ok

    def check_connection_config(self):
        return Result.ok() if self.config_ok else Result.fail("Missing bucket name configuration")


@pytest.fixture
def uploader():
    return FakeUploaderManager()


@pytest.fixture
def fetch():
    return FakeFetch()


@pytest.fixture
def manager(config_manager, uploader, vault, notifier, document, fetch):
    return EventHandlerManager(config_manager, uploader, vault, notifier, lambda: document, fetch=fetch)


def test_paste_supported_file_uploads(manager, document, uploader):
    """Test a pasted image is uploaded and linked at the cursor."""
    document.set_text("hello\n")

    handled = manager.handle_paste([UploadFile(name="shot.png", data=b"png", mime_type="image/png")])

    assert handled
    assert uploader.uploaded == ["shot.png"]
    assert document.get_text() == f"hello\n![shot.png]({PUBLIC_DOMAIN}/k1_202401011200_shot.png)\n"


def test_paste_unsupported_file_saved_locally(manager, document, vault, uploader):
    """Test unsupported types go to the attachment folder."""
    handled = manager.handle_paste([UploadFile(name="data.csv", data=b"a,b", mime_type="text/csv")])

    assert handled
    assert uploader.uploaded == []
    assert (vault.root / "attachments" / "data.csv").read_bytes() == b"a,b"
    assert document.get_text() == "[data.csv](attachments/data.csv)\n"


def test_paste_text_alongside_files(manager, document):
    """Test pasted text is inserted as is."""
    manager.handle_paste([UploadFile(name="x.csv", data=b"1")], text="caption")

    text = document.get_text()
    assert "[x.csv](attachments/x.csv)\n" in text
    assert "caption" in text


def test_paste_without_files_is_left_to_the_editor(manager, document):
    """Test plain text pastes are not taken over."""
    assert not manager.handle_paste([], text="just text")
    assert document.get_text() == ""


def test_paste_disabled(config_manager, manager):
    """Test the clipboard setting."""
    config_manager.save_settings({"clipboard_auto_upload": False})

    assert not manager.handle_paste([UploadFile(name="a.png", data=b"1")])


def test_drop_disabled(config_manager, manager):
    """Test the drag setting."""
    config_manager.save_settings({"drag_auto_upload": False})

    assert not manager.handle_drop([UploadFile(name="a.png", data=b"1")])


def test_invalid_config_queues_nothing(config_manager, vault, notifier, document, fetch):
    """Test a bad storage config stops before any item is created."""
    uploader = FakeUploaderManager(config_ok=False)
    manager = EventHandlerManager(config_manager, uploader, vault, notifier, lambda: document, fetch=fetch)

    assert not manager.handle_drop([UploadFile(name="a.png", data=b"1")])
    assert uploader.uploaded == []
    assert manager.upload_handler.get_stats().total == 0
    assert "Missing bucket name configuration" in notifier.messages[0]


def test_upload_selection(manager, document, vault, uploader):
    """Test local links in the selection are uploaded and relinked."""
    vault.write_binary(vault.root / "img" / "a b.png", b"png")
    document.set_text("![a](img/a%20b.png) and [missing](nope.png)")
    document.select_all()

    assert manager.upload_selection() == 1
    assert uploader.uploaded == ["a b.png"]
    assert document.get_text().startswith(f"![a b.png]({PUBLIC_DOMAIN}/")
    assert "File not found: nope.png" in manager.notifier.messages


def test_upload_selection_empty(manager, notifier):
    """Test nothing happens without a selection."""
    assert manager.upload_selection() == 0
    assert notifier.messages == ["No text selected"]


def test_download_selection(manager, document, fetch):
    """Test remote links in the selection are downloaded."""
    url = f"{PUBLIC_DOMAIN}/k_202401011200_a.png"
    fetch.bodies[url] = b"png"
    document.set_text(f"![a]({url}) [o](https://other.com/b.png)")
    document.select_all()

    assert manager.download_selection() == 1
    assert document.get_text() == "![a.png](attachments/a.png) [o](https://other.com/b.png)"


def test_delete_selection(manager, document, uploader):
    """Test remote files in the selection are deleted with their links."""
    a = f"{PUBLIC_DOMAIN}/dir/a%20b.png"
    b = f"{PUBLIC_DOMAIN}/b.png"
    document.set_text(f"![a]({a})\n\n\n[b]({b})\nkeep")
    document.select_all()

    assert manager.delete_selection() == 2
    assert uploader.deleted == ["dir/a b.png", "b.png"]
    assert document.get_text() == "keep"


def test_delete_selection_only_given_urls(manager, document, uploader):
    """Test limiting a delete to some URLs."""
    a, b = f"{PUBLIC_DOMAIN}/a.png", f"{PUBLIC_DOMAIN}/b.png"
    document.set_text(f"[a]({a}) [b]({b})")
    document.select_all()

    assert manager.delete_selection([b]) == 1
    assert uploader.deleted == ["b.png"]
    assert document.get_text() == f"[a]({a})"


def test_selection_actions(manager, document):
    """Test which commands apply to a selection."""
    document.set_text(f"![l](local.png) ![r]({PUBLIC_DOMAIN}/r.png)")
    assert manager.get_selection_actions() == []

    document.select_all()
    assert manager.get_selection_actions() == ["upload", "download", "delete"]


def test_config_change_updates_handlers(config_manager, manager):
    """Test ceilings follow the settings."""
    config_manager.save_settings({"download_concurrency": 6, "skip_duplicate_files": True})

    assert manager.download_handler.max_concurrent == 6
    assert manager.upload_handler.skip_duplicate_files


def test_dispose_without_work(manager, notifier):
    """Test a quiet teardown sends nothing and returns zero."""
    assert manager.dispose() == 0
    assert notifier.messages == []


def test_real_uploader_manager_config_check(config_manager, vault, notifier, document):
    """Test wiring with the real uploader manager."""
    config_manager.save_settings({"uploader_config": {}})
    manager = EventHandlerManager(config_manager, UploaderManager(config_manager), vault, notifier, lambda: document)

    assert not manager.handle_paste([UploadFile(name="a.png", data=b"1")])
    assert notifier.messages[0].startswith("Storage service is not configured")


def test_download_selection_with_many_links(manager, document, fetch):
    """Test hundreds of links in one selection are all queued and settled."""
    urls = [f"{PUBLIC_DOMAIN}/f{n}.png" for n in range(300)]
    document.set_text("\n".join(urls))
    document.select_all()

    assert manager.download_selection() == 300
    assert len(set(fetch.calls)) == 300
    assert manager.download_handler.get_stats().failed == 300
