"""Tests for folder scans and whole-document processing."""

import pytest

from attachment_sync.scanner import DocumentProcessor

from conftest import PUBLIC_DOMAIN, FakeFetch, FakeUploader


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def fetch():
    return FakeFetch()


@pytest.fixture
def processor(config_manager, uploader, vault, notifier, fetch):
    return DocumentProcessor(config_manager, uploader, vault, notifier, fetch=fetch)


def write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def test_scan_maps_files_to_documents(processor, tmp_path):
    """Test each candidate lists every document using it."""
    write(tmp_path / "a.md", f"![x](img/x.png) {PUBLIC_DOMAIN}/r.png")
    write(tmp_path / "sub" / "b.md", "![x](img/x.png) [web](https://other.com/y.png)")
    write(tmp_path / "notes.txt", "![z](z.png)")
    progress = []

    result = processor.scan(tmp_path, on_progress=lambda done, total: progress.append((done, total)))

    assert result.total_docs == 2
    assert [(f.file_path, f.doc_paths) for f in result.uploadable_files] == [("img/x.png", ["a.md", "sub/b.md"])]
    assert [(f.url, f.doc_paths) for f in result.downloadable_files] == [(f"{PUBLIC_DOMAIN}/r.png", ["a.md"])]
    assert progress == [(1, 2), (2, 2)]


def test_scan_missing_folder(processor, tmp_path):
    with pytest.raises(FileNotFoundError):
        processor.scan(tmp_path / "nope")


def test_process_document_upload(processor, tmp_path, uploader):
    """Test local attachments are uploaded and the file is rewritten."""
    (tmp_path / "img").mkdir()
    (tmp_path / "img" / "x.png").write_bytes(b"png")
    doc = write(tmp_path / "a.md", "# Title\n![x](img/x.png)\n")

    summary = processor.process_document(doc, "upload")

    assert summary["queued"] == 1
    assert summary["completed"] == 1
    assert summary["failed"] == 0
    assert uploader.uploaded == ["x.png"]
    assert doc.read_text(encoding="utf-8") == f"# Title\n![x.png]({PUBLIC_DOMAIN}/k1_202401011200_x.png)\n"
    assert processor.get_stats()["upload"] == {"documents": 1, "queued": 1, "completed": 1, "failed": 0}


def test_process_document_download(processor, tmp_path, fetch):
    """Test remote files land in the attachment folder."""
    url = f"{PUBLIC_DOMAIN}/k_202401011200_r.png"
    fetch.bodies[url] = b"remote"
    doc = write(tmp_path / "a.md", f"![r]({url})")

    summary = processor.process_document(doc, "download")

    assert summary["completed"] == 1
    assert (tmp_path / "attachments" / "r.png").read_bytes() == b"remote"
    assert doc.read_text(encoding="utf-8") == "![r.png](attachments/r.png)"


def test_process_document_download_failure_keeps_url(processor, tmp_path):
    """Test a failed download leaves the document as it was."""
    url = f"{PUBLIC_DOMAIN}/missing.png"
    doc = write(tmp_path / "a.md", f"![r]({url})")

    summary = processor.process_document(doc, "download")

    assert summary["failed"] == 1
    assert doc.read_text(encoding="utf-8") == f"![r]({url})"


def test_process_document_delete(processor, tmp_path, uploader):
    """Test only the given URLs are deleted."""
    keep, gone = f"{PUBLIC_DOMAIN}/keep.png", f"{PUBLIC_DOMAIN}/gone.png"
    doc = write(tmp_path / "a.md", f"[k]({keep})\n[g]({gone})\n")

    summary = processor.process_document(doc, "delete", urls=[gone])

    assert summary["completed"] == 1
    assert uploader.deleted == ["gone.png"]
    assert doc.read_text(encoding="utf-8") == f"[k]({keep})"


def test_process_document_unchanged_file_not_written(processor, tmp_path):
    doc = write(tmp_path / "a.md", "plain text\n")
    before = doc.stat().st_mtime_ns

    summary = processor.process_document(doc, "upload")

    assert summary["queued"] == 0
    assert doc.stat().st_mtime_ns == before


def test_process_document_unknown_mode(processor, tmp_path):
    doc = write(tmp_path / "a.md", "text")

    with pytest.raises(ValueError):
        processor.process_document(doc, "sync")


def test_process_folder(config_manager, vault, notifier, tmp_path):
    """Test one failing upload does not stop the rest of the folder."""
    uploader = FakeUploader(fail_names={"bad.png"})
    processor = DocumentProcessor(config_manager, uploader, vault, notifier)
    for name in ("good.png", "bad.png"):
        (tmp_path / name).write_bytes(b"data")
    write(tmp_path / "docs" / "1.md", "![g](../good.png)")
    write(tmp_path / "docs" / "2.md", "![b](../bad.png)")
    progress = []

    results = processor.process_folder(tmp_path / "docs", "upload", lambda done, total: progress.append(done))

    assert [(r["completed"], r["failed"]) for r in results] == [(1, 0), (0, 1)]
    assert progress == [1, 2]
    assert (tmp_path / "docs" / "2.md").read_text(encoding="utf-8") == "![b](../bad.png)"
    assert "Upload failed: ../bad.png - Upload error: boom" in notifier.messages


def test_process_folder_rejects_delete(processor, tmp_path):
    with pytest.raises(ValueError):
        processor.process_folder(tmp_path, "delete")


def test_from_config(config_manager, tmp_path):
    processor = DocumentProcessor.from_config(config_manager, tmp_path)

    assert processor.vault.root == tmp_path.resolve()
    assert processor.uploader_manager.get_public_url("a b.png") == f"{PUBLIC_DOMAIN}/a%20b.png"
