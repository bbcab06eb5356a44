from .base import Uploader
from .manager import UPLOADER_REGISTRY, UploaderManager, create_uploader
from .s3 import AliyunOSSUploader, CloudflareR2Uploader, S3Uploader, TencentCOSUploader
from .webdav import WebdavUploader

__all__ = [
    "Uploader",
    "UploaderManager",
    "UPLOADER_REGISTRY",
    "create_uploader",
    "S3Uploader",
    "CloudflareR2Uploader",
    "AliyunOSSUploader",
    "TencentCOSUploader",
    "WebdavUploader",
]
