from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

LOCAL_URL_PREFIX = "/storage"


class StorageClient:
    """Stores captions and renders in S3 when configured, on local disk otherwise.

    Local objects are served by the API under ``/storage/<key>``; the URLs
    returned for them are relative and get resolved against the public base
    URL by the scene graph builder.
    """

    def __init__(
        self,
        root: str | Path,
        bucket: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        endpoint_url: str | None = None,
        region_name: str | None = None,
        public_url: str | None = None,
        addressing_style: str | None = None,
        public_base_url: str | None = None,
        folder_prefix: str = "",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.root = Path(root)
        self.bucket = (bucket or "").strip()
        self.access_key = (access_key or "").strip()
        self.secret_key = (secret_key or "").strip()
        self.endpoint_url = (endpoint_url or "").rstrip("/") or None
        self.region_name = (region_name or "").strip() or None
        self.public_url_base = (public_url or "").rstrip("/")
        self.public_base_url = (public_base_url or "").rstrip("/")
        self.folder_prefix = self._normalize_path(folder_prefix)
        self.log = logger or logging.getLogger(__name__)
        self._client = None
        if self.is_configured():
            session = boto3.session.Session(
                aws_access_key_id=self.access_key,
                aws_secret_access_key=self.secret_key,
                region_name=self.region_name,
            )
            config = BotoConfig(s3={"addressing_style": (addressing_style or "virtual").lower()})
            self._client = session.client("s3", endpoint_url=self.endpoint_url, config=config)

    def is_configured(self) -> bool:
        return bool(self.bucket and self.access_key and self.secret_key)

    def upload_text(self, path: str, text: str, content_type: str = "text/plain; charset=utf-8") -> str:
        return self.upload_bytes(path, text.encode("utf-8"), content_type)

    def upload_bytes(self, path: str, content: bytes, content_type: str = "application/octet-stream") -> str:
        key = self._key(path)
        if self._client is None:
            target = self._local_file(key)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
            return self.public_url(key)
        try:
            self._client.put_object(Bucket=self.bucket, Key=key, Body=content, ContentType=content_type)
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover - AWS error surface
            raise ValueError(f"S3 upload failed: {exc}") from exc
        return self.public_url(key)

    def upload_file(self, path: str, source: str | Path, content_type: str = "application/octet-stream") -> str:
        key = self._key(path)
        if self._client is None:
            target = self._local_file(key)
            target.parent.mkdir(parents=True, exist_ok=True)
            if Path(source).resolve() != target.resolve():
                shutil.copyfile(source, target)
            return self.public_url(key)
        try:
            self._client.upload_file(str(source), self.bucket, key, ExtraArgs={"ContentType": content_type})
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover - AWS error surface
            raise ValueError(f"S3 upload failed: {exc}") from exc
        return self.public_url(key)

    def download_bytes(self, path: str) -> bytes:
        key = self._normalize_path(path)
        if self._client is None:
            target = self._local_file(key)
            if not target.is_file():
                raise ValueError(f"object not found in local storage: {key}")
            return target.read_bytes()
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover
            raise ValueError(f"S3 download failed: {exc}") from exc
        body = response.get("Body")
        return body.read() if body is not None else b""

    def local_path(self, path: str) -> Path | None:
        """Filesystem path of a locally stored object key, if there is one."""
        if self._client is not None:
            return None
        target = self._local_file(self._normalize_path(path))
        return target if target.is_file() else None

    def key_for_url(self, url: str | None) -> str | None:
        """Storage key behind a URL this client handed out, or None."""
        if not url:
            return None
        if self.public_url_base and url.startswith(f"{self.public_url_base}/"):
            return self._normalize_path(url[len(self.public_url_base) :])
        parsed = urlparse(url)
        if parsed.scheme and self.public_base_url:
            own = urlparse(self.public_base_url)
            if (parsed.scheme, parsed.netloc) != (own.scheme, own.netloc):
                return None
        elif parsed.scheme:
            return None
        if parsed.path.startswith(f"{LOCAL_URL_PREFIX}/"):
            return self._normalize_path(parsed.path[len(LOCAL_URL_PREFIX) :])
        return None

    def public_url(self, path: str) -> str:
        clean = self._normalize_path(path)
        if self._client is None:
            return f"{LOCAL_URL_PREFIX}/{clean}"
        if self.public_url_base:
            return f"{self.public_url_base}/{clean}"
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket}/{clean}"
        return f"/{self.bucket}/{clean}"

    def _key(self, path: str) -> str:
        key = self._normalize_path(path)
        if not key:
            raise ValueError("storage path is required")
        if self.folder_prefix:
            return f"{self.folder_prefix}/{key}"
        return key

    def _local_file(self, key: str) -> Path:
        target = (self.root / key).resolve()
        if self.root.resolve() not in target.parents:
            raise ValueError(f"invalid storage path: {key}")
        return target

    def _normalize_path(self, path: str | None) -> str:
        if not path:
            return ""
        return "/".join(part for part in path.strip().split("/") if part and part != "..")
