"""WebDAV provider over httpx."""

import logging
from typing import Any, Optional

import httpx

from ..errors import handle_error
from ..keys import generate_file_key, to_public_url
from ..models import Result, UploadData, UploadFile
from .base import CONNECTION_TEST_KEY, ProgressCallback, Uploader

logger = logging.getLogger(__name__)


def webdav_base_url(config: dict[str, Any]) -> str:
    """Endpoint joined with the optional base path, without a trailing slash."""
    endpoint = (config.get("endpoint") or "").rstrip("/")
    base_path = (config.get("base_path") or "").strip("/")
    return f"{endpoint}/{base_path}" if base_path else endpoint


class WebdavUploader(Uploader):
    uploader_type = "webdav"
    service_name = "WebDAV"

    def __init__(self, config: dict[str, Any], client: Optional[httpx.Client] = None, timeout: float = 30.0):
        super().__init__(config)
        self.timeout = timeout
        self._client = client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                auth=httpx.BasicAuth(self.config.get("username", ""), self.config.get("password", "")),
                timeout=self.timeout,
                follow_redirects=True,
            )
        return self._client

    @property
    def base_url(self) -> str:
        return webdav_base_url(self.config)

    def check_connection_config(self) -> Result:
        result = self.require("endpoint", "username", "password")
        if not result.success:
            return result
        if not self.config["endpoint"].startswith(("http://", "https://")):
            return Result.fail("Endpoint must start with http:// or https://")
        return Result.ok()

    def get_public_url(self, key: str) -> str:
        domain = self.config.get("public_domain") or self.base_url
        return to_public_url(key, domain)

    def _strip_base_path(self, key: str) -> str:
        base_path = (self.config.get("base_path") or "").strip("/")
        key = key.lstrip("/")
        if base_path and key.startswith(base_path + "/"):
            return key[len(base_path) + 1:]
        return key

    def _ensure_directories(self, key: str) -> None:
        # MKCOL each parent; 405 means it already exists
        parts = key.split("/")[:-1]
        path = ""
        for part in parts:
            path = f"{path}/{part}" if path else part
            response = self.client.request("MKCOL", to_public_url(path, self.base_url) + "/")
            if response.status_code not in (201, 405):
                logger.debug(f"MKCOL {path} returned {response.status_code}")

    def upload_file(
        self,
        file: UploadFile,
        key: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Result:
        file_key = key or generate_file_key(file.name)
        url = to_public_url(file_key, self.base_url)
        try:
            self._ensure_directories(file_key)
            response = self.client.put(url, content=file.data, headers={"Content-Type": file.mime_type})
        except httpx.HTTPError as e:
            logger.error(f"Upload of {file.name} to WebDAV failed: {e}")
            return handle_error(e, "Upload error")

        if response.status_code not in (200, 201, 204):
            return Result.fail(f"Upload failed: HTTP {response.status_code}")
        if on_progress:
            on_progress(100)
        return Result.ok(UploadData(url=self.get_public_url(file_key), key=file_key))

    def delete_file(self, key: str) -> Result:
        file_key = self._strip_base_path(key)
        try:
            response = self.client.delete(to_public_url(file_key, self.base_url))
        except httpx.HTTPError as e:
            return handle_error(e, "Delete error")

        if response.status_code in (200, 204, 404):
            return Result.ok()
        logger.error(f"Delete of {file_key} failed with HTTP {response.status_code}")
        return Result.fail(f"Delete failed: HTTP {response.status_code}")

    def file_exists_by_prefix(self, prefix: str) -> Result:
        # WebDAV has no prefix listing; treat the prefix as the full key
        try:
            response = self.client.head(to_public_url(prefix, self.base_url))
        except httpx.HTTPError as e:
            return handle_error(e, "Lookup error")
        if response.status_code == 200:
            return Result.ok(UploadData(url=self.get_public_url(prefix), key=prefix))
        return Result.fail(f"No object at {prefix}")

    def test_connection(self) -> Result:
        check = self.check_connection_config()
        if not check.success:
            return check
        try:
            response = self.client.head(to_public_url(CONNECTION_TEST_KEY, self.base_url))
        except httpx.HTTPError as e:
            return handle_error(e, "Connection test")
        if response.status_code in (401, 403):
            return Result.fail(f"Authentication failed: HTTP {response.status_code}")
        if response.status_code not in (200, 404):
            return Result.fail(f"Connection test failed: HTTP {response.status_code}")
        return super().test_connection()

    def dispose(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
