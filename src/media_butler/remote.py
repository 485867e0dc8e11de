"""Object-store access (S3 API, e.g. Cloudflare R2) for uploaded assets."""
from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .config import Settings
from .errors import RemoteError
from .logging_utils import get_logger

logger = get_logger(__name__)

MULTIPART_THRESHOLD = 64 * 1024 * 1024
MULTIPART_CHUNKSIZE = 16 * 1024 * 1024


@dataclass
class UploadConfirmation:
    """What the store reported after a completed upload."""

    key: str
    etag: Optional[str]
    size_bytes: int


class RemoteStore(Protocol):
    def upload(self, local_path: Path, key: str) -> UploadConfirmation:
        ...

    def delete(self, key: str) -> None:
        ...

    def head_metadata(self, key: str) -> Optional[Dict[str, Any]]:
        ...


def _status_of(exc: ClientError) -> Optional[int]:
    return exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


def _code_of(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def content_type_for(path: Path) -> str:
    guessed, _ = mimetypes.guess_type(path.name)
    if guessed:
        return guessed
    if path.suffix.lower() == ".m4a":
        return "audio/mp4"
    return "application/octet-stream"


class S3RemoteStore:
    """:class:`RemoteStore` over a boto3 S3 client."""

    def __init__(self, client: Any, bucket: str, transfer_config: Optional[TransferConfig] = None) -> None:
        self.client = client
        self.bucket = bucket
        self.transfer_config = transfer_config or TransferConfig(
            multipart_threshold=MULTIPART_THRESHOLD,
            multipart_chunksize=MULTIPART_CHUNKSIZE,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3RemoteStore":
        settings.require_remote()
        session = boto3.session.Session(
            aws_access_key_id=settings.access_key_id,
            aws_secret_access_key=settings.secret_access_key,
            region_name=settings.region,
        )
        client = session.client(
            "s3",
            endpoint_url=settings.endpoint_url,
            config=Config(
                signature_version="s3v4",
                connect_timeout=settings.connect_timeout,
                read_timeout=settings.read_timeout,
                retries={"max_attempts": settings.max_attempts, "mode": "adaptive"},
            ),
        )
        return cls(client, settings.bucket)

    def upload(self, local_path: Path, key: str) -> UploadConfirmation:
        """Stream ``local_path`` to ``key`` (multipart above the threshold)."""

        try:
            size = local_path.stat().st_size
            self.client.upload_file(
                str(local_path),
                self.bucket,
                key,
                ExtraArgs={"ContentType": content_type_for(local_path)},
                Config=self.transfer_config,
            )
            head = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            raise RemoteError(f"Upload of {key} failed: {exc}", status=_status_of(exc)) from exc
        except (BotoCoreError, S3UploadFailedError) as exc:
            raise RemoteError(f"Upload of {key} failed: {exc}") from exc
        except OSError as exc:
            raise RemoteError(f"Upload of {key} failed reading {local_path}: {exc}") from exc

        remote_size = head.get("ContentLength")
        if remote_size is not None and int(remote_size) != size:
            raise RemoteError(f"Upload of {key} is {remote_size} bytes remotely, expected {size}")
        etag = head.get("ETag")
        logger.debug("Uploaded %s (%d bytes, etag %s)", key, size, etag)
        return UploadConfirmation(key=key, etag=etag.strip('"') if etag else None, size_bytes=size)

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            raise RemoteError(f"Delete of {key} failed: {exc}", status=_status_of(exc)) from exc
        except BotoCoreError as exc:
            raise RemoteError(f"Delete of {key} failed: {exc}") from exc

    def head_metadata(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            return self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _status_of(exc) == 404 or _code_of(exc) in {"404", "NotFound", "NoSuchKey"}:
                return None
            raise RemoteError(f"Head of {key} failed: {exc}", status=_status_of(exc)) from exc
        except BotoCoreError as exc:
            raise RemoteError(f"Head of {key} failed: {exc}") from exc
