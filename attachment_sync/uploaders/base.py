"""Capability interface every storage provider implements."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Optional

from ..models import Result, UploadData, UploadFile

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

CONNECTION_TEST_KEY = "test/connection-test.txt"


class Uploader(ABC):
    """A remote store that files can be uploaded to and deleted from."""

    uploader_type = ""
    service_name = ""

    def __init__(self, config: dict[str, Any]):
        self.config = dict(config or {})

    def require(self, *fields: str) -> Result:
        """Check that the given config fields are set."""
        for field in fields:
            if not self.config.get(field):
                return Result.fail(f"Missing {field.replace('_', ' ')} configuration")
        return Result.ok()

    @abstractmethod
    def check_connection_config(self) -> Result:
        """Validate the configuration locally, without network access."""

    @abstractmethod
    def upload_file(
        self,
        file: UploadFile,
        key: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Result:
        """Upload a file; the Result carries UploadData on success."""

    @abstractmethod
    def delete_file(self, key: str) -> Result:
        """Delete the object stored under a key."""

    @abstractmethod
    def file_exists_by_prefix(self, prefix: str) -> Result:
        """Look up an already uploaded object; the Result carries UploadData."""

    @abstractmethod
    def get_public_url(self, key: str) -> str:
        """Public URL of a key."""

    def test_connection(self) -> Result:
        """Round-trip probe: write a small object, then delete it."""
        check = self.check_connection_config()
        if not check.success:
            return check

        content = f"{self.uploader_type} connection test - {datetime.now().isoformat()}"
        probe = UploadFile(name="test.txt", data=content.encode("utf-8"), mime_type="text/plain")
        result = self.upload_file(probe, CONNECTION_TEST_KEY)
        if not result.success or result.data is None:
            return Result.fail(result.error or "Connection test failed")

        uploaded = result.data if isinstance(result.data, UploadData) else UploadData(**result.data)
        cleanup = self.delete_file(uploaded.key)
        if not cleanup.success:
            logger.warning(f"Connection test object {uploaded.key} was not removed: {cleanup.error}")
        return Result.ok()

    def dispose(self) -> None:
        """Release clients and connections."""
