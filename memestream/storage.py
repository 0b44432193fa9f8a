"""
Media storage for Tencent COS (S3-compatible) and in-memory testing.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Optional, Protocol
from urllib.parse import urlsplit

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from memestream.errors import MediaDeleteError, MediaUploadError
from memestream.utils import data_url_mime_type, decode_image, extension_for

logger = logging.getLogger(__name__)

DEFAULT_FOLDER = "memestream"


@dataclass(frozen=True)
class MediaObject:
    url: str
    media_id: str


class MediaStore(Protocol):
    """Defines the operations the API needs from the image host."""

    def upload(self, image_data: str, folder: str = DEFAULT_FOLDER) -> MediaObject:
        ...

    def delete(self, media_id: str) -> dict:
        ...


def _object_key(image_data: str, folder: str) -> tuple[str, str]:
    mime_type = data_url_mime_type(image_data)
    key = f"{folder.strip('/')}/{uuid.uuid4().hex}.{extension_for(mime_type)}"
    return key, mime_type


@dataclass
class InMemoryMediaStore:
    """Test double for media storage interactions."""

    base_url: str = "https://example.test/media"
    stored_objects: dict = field(default_factory=dict)

    def upload(self, image_data: str, folder: str = DEFAULT_FOLDER) -> MediaObject:
        try:
            body = decode_image(image_data)
        except ValueError as e:
            raise MediaUploadError("Failed to upload image", detail=str(e)) from e
        key, _ = _object_key(image_data, folder)
        self.stored_objects[key] = body
        return MediaObject(url=f"{self.base_url}/{key}", media_id=key)

    def delete(self, media_id: str) -> dict:
        if self.stored_objects.pop(media_id, None) is None:
            return {"result": "not found"}
        return {"result": "ok"}

    def reset(self) -> None:
        self.stored_objects.clear()


@dataclass
class CosMediaStore:
    """
    S3-compatible image host for Tencent COS.

    Image URLs carry the COS image-processing query so quality and format are
    optimised on the remote side when the image is fetched.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: Optional[str] = None
    transform: str = ""

    def __post_init__(self):
        # Use virtual-hosted style addressing to satisfy COS requirements.
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint,
            region_name=self.region,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            base = self.public_base_url.rstrip("/")
        else:
            parts = urlsplit(self.endpoint)
            base = f"{parts.scheme or 'https'}://{self.bucket}.{parts.netloc}"
        url = f"{base}/{key}"
        if self.transform:
            url = f"{url}?{self.transform}"
        return url

    def upload(self, image_data: str, folder: str = DEFAULT_FOLDER) -> MediaObject:
        try:
            body = decode_image(image_data)
        except ValueError as e:
            raise MediaUploadError("Failed to upload image", detail=str(e)) from e

        key, mime_type = _object_key(image_data, folder)
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=mime_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("Media upload error for %s: %s", key, e)
            raise MediaUploadError("Failed to upload image", detail=str(e)) from e
        return MediaObject(url=self.public_url(key), media_id=key)

    def delete(self, media_id: str) -> dict:
        try:
            response = self._client.delete_object(Bucket=self.bucket, Key=media_id)
        except (BotoCoreError, ClientError) as e:
            logger.error("Media delete error for %s: %s", media_id, e)
            raise MediaDeleteError("Failed to delete image", detail=str(e)) from e
        status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        return {"result": "ok", "status_code": status}
