"""Data models for the attachment sync pipeline."""

from enum import Enum
from typing import Annotated, Any, Generic, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

T = TypeVar("T")


class EventType(str, Enum):
    """Kind of work a process item carries."""

    UPLOAD = "upload"
    DOWNLOAD = "download"
    DELETE = "delete"


class MarkdownLink(BaseModel):
    """A link located in a text snapshot."""

    model_config = ConfigDict(frozen=True)

    full_match: str
    start: int
    end: int
    url: str
    is_image: bool = False
    is_wiki: bool = False

    @model_validator(mode="after")
    def _check_span(self) -> "MarkdownLink":
        if self.end <= self.start:
            raise ValueError("link end must be greater than start")
        if len(self.full_match) != self.end - self.start:
            raise ValueError("full_match length does not match span")
        return self


class UploadFile(BaseModel):
    """Binary payload of an upload."""

    model_config = ConfigDict(frozen=True)

    name: str
    data: bytes
    mime_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def extension(self) -> str:
        if "." not in self.name:
            return ""
        return self.name.rsplit(".", 1)[-1].lower()


class _BaseProcessItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str


class UploadProcessItem(_BaseProcessItem):
    """Upload a file, then point its reference at the remote URL."""

    event_type: Literal[EventType.UPLOAD] = EventType.UPLOAD
    file: UploadFile
    local_path: Optional[str] = None
    key: Optional[str] = None

    @property
    def reference(self) -> str:
        return self.local_path or self.file.name


class DownloadProcessItem(_BaseProcessItem):
    """Fetch a remote file and relink it to the local copy."""

    event_type: Literal[EventType.DOWNLOAD] = EventType.DOWNLOAD
    url: str

    @property
    def reference(self) -> str:
        return self.url


class DeleteProcessItem(_BaseProcessItem):
    """Delete a remote file and remove its link."""

    event_type: Literal[EventType.DELETE] = EventType.DELETE
    file_link: str
    file_key: str
    original_selection: str = ""

    @property
    def reference(self) -> str:
        return self.file_link


ProcessItem = Annotated[
    Union[UploadProcessItem, DownloadProcessItem, DeleteProcessItem],
    Field(discriminator="event_type"),
]


class Result(BaseModel, Generic[T]):
    """Outcome of a provider call."""

    success: bool
    data: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "Result":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "Result":
        return cls(success=False, error=error)


class UploadData(BaseModel):
    """Where an uploaded file ended up."""

    url: str
    key: str


class FetchResponse(BaseModel):
    """Response of a remote fetch."""

    status: int
    content: bytes = b""
    content_type: Optional[str] = None


class QueueStats(BaseModel):
    """Queue statistics."""

    total: int
    pending: int
    processing: int
    completed: int
    failed: int


class QueueStatus(BaseModel):
    """Queue state exposed for inspection."""

    queue_length: int
    is_processing: bool


class UploadableFile(BaseModel):
    """A local file referenced from one or more documents."""

    file_path: str
    doc_paths: list[str] = []


class DownloadableFile(BaseModel):
    """A remote URL referenced from one or more documents."""

    url: str
    doc_paths: list[str] = []


class FolderScanResult(BaseModel):
    """Result of scanning a folder of markdown documents."""

    total_docs: int = 0
    uploadable_files: list[UploadableFile] = []
    downloadable_files: list[DownloadableFile] = []
