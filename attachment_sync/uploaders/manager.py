"""Provider registry and the cached uploader in use."""

import logging
import threading
from typing import Any, Optional

from ..config import ConfigurationManager
from ..errors import ConfigInvalid
from ..models import Result, UploadFile
from .base import ProgressCallback, Uploader
from .s3 import AliyunOSSUploader, CloudflareR2Uploader, S3Uploader, TencentCOSUploader
from .webdav import WebdavUploader

logger = logging.getLogger(__name__)

UPLOADER_REGISTRY: dict[str, type[Uploader]] = {
    "amazon-s3": S3Uploader,
    "cloudflare-r2": CloudflareR2Uploader,
    "aliyun-oss": AliyunOSSUploader,
    "tencent-cos": TencentCOSUploader,
    "webdav": WebdavUploader,
}


def create_uploader(uploader_type: str, config: dict[str, Any]) -> Uploader:
    """Build the provider registered under a type name."""
    cls = UPLOADER_REGISTRY.get(uploader_type)
    if cls is None:
        raise ConfigInvalid(f"Unsupported storage service: {uploader_type}")
    return cls(config)


class UploaderManager:
    """Hands out the uploader for the current settings.

    The instance is cached and thrown away whenever the settings change.
    """

    def __init__(self, config_manager: ConfigurationManager):
        self.config_manager = config_manager
        self._uploader: Optional[Uploader] = None
        self._lock = threading.Lock()
        config_manager.add_config_change_listener(self.invalidate)

    def get_uploader(self) -> Uploader:
        with self._lock:
            if self._uploader is None:
                uploader_type = self.config_manager.get_current_storage_service()
                self._uploader = create_uploader(uploader_type, self.config_manager.get_current_storage_config())
                logger.debug(f"Created {uploader_type} uploader")
            return self._uploader

    def invalidate(self, changes: Optional[dict[str, Any]] = None) -> None:
        with self._lock:
            if self._uploader is not None:
                self._uploader.dispose()
                self._uploader = None
                logger.debug("Uploader cache cleared")

    def check_connection_config(self) -> Result:
        try:
            return self.get_uploader().check_connection_config()
        except ConfigInvalid as e:
            return Result.fail(e.message)

    def test_connection(self) -> Result:
        try:
            uploader = self.get_uploader()
        except ConfigInvalid as e:
            return Result.fail(e.message)
        logger.info(f"Testing connection to {uploader.service_name}")
        return uploader.test_connection()

    def upload_file(
        self,
        file: UploadFile,
        key: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Result:
        return self.get_uploader().upload_file(file, key, on_progress)

    def delete_file(self, key: str) -> Result:
        return self.get_uploader().delete_file(key)

    def file_exists_by_prefix(self, prefix: str) -> Result:
        return self.get_uploader().file_exists_by_prefix(prefix)

    def get_public_url(self, key: str) -> str:
        return self.get_uploader().get_public_url(key)

    def dispose(self) -> None:
        self.config_manager.remove_config_change_listener(self.invalidate)
        self.invalidate()
