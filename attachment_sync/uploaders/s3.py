"""S3-compatible providers: Amazon S3, Cloudflare R2, Aliyun OSS, Tencent COS."""

import io
import logging
from typing import Any, Optional
from urllib.parse import quote, urlsplit

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import handle_error
from ..keys import MULTIPART_UPLOAD_THRESHOLD, generate_file_key, to_public_url
from ..models import Result, UploadData, UploadFile
from .base import ProgressCallback, Uploader

logger = logging.getLogger(__name__)

_COMMON_FIELDS = ("endpoint", "access_key_id", "secret_access_key", "bucket_name")


class S3Uploader(Uploader):
    """Amazon S3 and S3-compatible storage."""

    uploader_type = "amazon-s3"
    service_name = "Amazon S3"
    addressing_style = "path"

    def __init__(self, config: dict[str, Any], client: Any = None):
        super().__init__(config)
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = self.create_client()
        return self._client

    @property
    def bucket(self) -> str:
        return self.config.get("bucket_name", "")

    def region(self) -> Optional[str]:
        return self.config.get("region") or None

    def create_client(self):
        return boto3.client(
            "s3",
            endpoint_url=self.get_endpoint() or None,
            region_name=self.region(),
            aws_access_key_id=self.config.get("access_key_id"),
            aws_secret_access_key=self.config.get("secret_access_key"),
            config=Config(s3={"addressing_style": self.addressing_style}),
        )

    def get_endpoint(self) -> str:
        endpoint = self.config.get("endpoint") or ""
        if endpoint and not endpoint.startswith(("http://", "https://")):
            endpoint = "https://" + endpoint
        return endpoint.rstrip("/")

    def public_domain(self) -> str:
        return self.config.get("public_domain") or self.config.get("public_url") or ""

    def check_connection_config(self) -> Result:
        result = self.require(*_COMMON_FIELDS)
        if not result.success:
            return result
        return self.require("region")

    def upload_file(
        self,
        file: UploadFile,
        key: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Result:
        file_key = key or generate_file_key(file.name)
        try:
            if on_progress and file.size > MULTIPART_UPLOAD_THRESHOLD:
                sent = 0

                def _callback(chunk: int) -> None:
                    nonlocal sent
                    sent += chunk
                    on_progress(sent / file.size * 100)

                self.client.upload_fileobj(
                    io.BytesIO(file.data),
                    self.bucket,
                    file_key,
                    ExtraArgs={"ContentType": file.mime_type},
                    Callback=_callback,
                )
            else:
                response = self.client.put_object(
                    Bucket=self.bucket,
                    Key=file_key,
                    Body=file.data,
                    ContentType=file.mime_type,
                    ContentLength=file.size,
                )
                status = response.get("ResponseMetadata", {}).get("HTTPStatusCode", 200)
                if status != 200:
                    return Result.fail(f"Upload failed: HTTP {status}")
                if on_progress:
                    on_progress(100)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Upload of {file.name} to {self.service_name} failed: {e}")
            return handle_error(e, "Upload error")

        url = self.get_public_url(file_key)
        logger.debug(f"Uploaded {file.name} to {url}")
        return Result.ok(UploadData(url=url, key=file_key))

    def delete_file(self, key: str) -> Result:
        logger.debug(f"Deleting {key} from {self.service_name}")
        try:
            response = self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            return handle_error(e, "Delete error")

        status = response.get("ResponseMetadata", {}).get("HTTPStatusCode", 204)
        if status not in (200, 204):
            logger.error(f"Delete of {key} failed with HTTP {status}")
            return Result.fail(f"Delete failed: HTTP {status}")
        return Result.ok()

    def file_exists_by_prefix(self, prefix: str) -> Result:
        if not prefix:
            return Result.fail("Empty prefix")
        try:
            response = self.client.list_objects_v2(Bucket=self.bucket, Prefix=prefix, MaxKeys=1)
        except (BotoCoreError, ClientError) as e:
            return handle_error(e, "Lookup error")

        contents = response.get("Contents") or []
        if contents and contents[0].get("Key"):
            found = contents[0]["Key"]
            return Result.ok(UploadData(url=self.get_public_url(found), key=found))
        return Result.fail(f"No object with prefix {prefix}")

    def get_public_url(self, key: str) -> str:
        domain = self.public_domain()
        if domain:
            return to_public_url(key, domain)
        region = self.region()
        host = f"{self.bucket}.s3.{region}.amazonaws.com" if region else f"{self.bucket}.s3.amazonaws.com"
        return f"https://{host}/{quote(key, safe='/-_.~')}"

    def bucket_subdomain_url(self, key: str) -> str:
        """Public URL in "<bucket>.<endpoint host>" form."""
        domain = self.public_domain()
        if domain:
            return to_public_url(key, domain)
        host = urlsplit(self.get_endpoint()).netloc
        return to_public_url(key, f"https://{self.bucket}.{host}")

    def dispose(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.debug(f"{self.service_name} client disposed")


class CloudflareR2Uploader(S3Uploader):
    uploader_type = "cloudflare-r2"
    service_name = "Cloudflare R2"
    addressing_style = "virtual"

    def region(self) -> Optional[str]:
        return "auto"

    def check_connection_config(self) -> Result:
        result = self.require(*_COMMON_FIELDS)
        if not result.success:
            return result
        return self.require("public_url")

    def get_public_url(self, key: str) -> str:
        domain = self.public_domain()
        if domain:
            return to_public_url(key, domain)
        endpoint = self.get_endpoint()
        if "r2.cloudflarestorage.com" in endpoint:
            return to_public_url(key, f"https://{self.bucket}.r2.dev")
        return to_public_url(key, f"{endpoint}/{self.bucket}")


class AliyunOSSUploader(S3Uploader):
    uploader_type = "aliyun-oss"
    service_name = "Aliyun OSS"
    addressing_style = "virtual"

    def check_connection_config(self) -> Result:
        return self.require(*_COMMON_FIELDS)

    def get_public_url(self, key: str) -> str:
        return self.bucket_subdomain_url(key)


class TencentCOSUploader(S3Uploader):
    uploader_type = "tencent-cos"
    service_name = "Tencent COS"

    def check_connection_config(self) -> Result:
        return self.require(*_COMMON_FIELDS)

    def get_public_url(self, key: str) -> str:
        return self.bucket_subdomain_url(key)
