"""
Image uploads to Cloudinary.

Payloads are checked (type and size) before anything leaves the process,
then sent as a signed upload. The returned `secure_url` is what gets stored
on novels, chapters and payment profiles.
"""
import hashlib
import time
import uuid
from typing import BinaryIO, Iterable, Optional

import httpx
from loguru import logger

from config import Settings, get_settings
from errors import UploadError

MB = 1024 * 1024

PAYMENT_QR_TYPES = ("image/jpeg", "image/jpg", "image/png")
IMAGE_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp")

UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/image/upload"


def sign(params: dict, api_secret: str) -> str:
    """Cloudinary signature: sorted key=value pairs joined by '&', secret appended, SHA-1."""
    to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


def check_image(data: bytes, content_type: Optional[str], max_bytes: int, allowed_types: Iterable[str]) -> None:
    allowed_types = tuple(allowed_types)
    if not data:
        raise UploadError("No file uploaded")
    if (content_type or "").lower() not in allowed_types:
        kinds = ", ".join(sorted({t.split("/")[1].upper() for t in allowed_types}))
        raise UploadError(f"Invalid file type. Allowed types: {kinds}")
    if len(data) > max_bytes:
        raise UploadError(f"File size exceeds the limit of {max_bytes // MB}MB")


def read_upload(stream: BinaryIO, max_bytes: int) -> bytes:
    """Read at most one byte past the limit; enough for `check_image` to reject oversize files."""
    return stream.read(max_bytes + 1)


class ImageUploader:
    """Uploads images to a Cloudinary account through an httpx client."""

    def __init__(self, settings: Settings, client: httpx.Client = None):
        self.settings = settings
        self.client = client or httpx.Client(timeout=settings.UPLOAD_TIMEOUT_SECONDS)

    def close(self) -> None:
        self.client.close()

    def upload_image(
        self,
        data: bytes,
        content_type: Optional[str],
        folder: str,
        max_bytes: int,
        allowed_types: Iterable[str] = IMAGE_TYPES,
        filename: str = "upload",
    ) -> str:
        check_image(data, content_type, max_bytes, allowed_types)

        s = self.settings
        if not (s.CLOUDINARY_CLOUD_NAME and s.CLOUDINARY_API_KEY and s.CLOUDINARY_API_SECRET):
            raise UploadError("Image storage is not configured", status_code=500)

        params = {
            "folder": folder,
            "public_id": uuid.uuid4().hex,
            "timestamp": int(time.time()),
        }
        form = {**params, "api_key": s.CLOUDINARY_API_KEY, "signature": sign(params, s.CLOUDINARY_API_SECRET)}
        url = UPLOAD_URL.format(cloud_name=s.CLOUDINARY_CLOUD_NAME)

        try:
            response = self.client.post(url, data=form, files={"file": (filename, data, content_type)})
            response.raise_for_status()
            secure_url = response.json().get("secure_url")
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(f"Image upload to {folder} failed: {exc}")
            raise UploadError("Failed to upload image", status_code=500) from exc
        if not secure_url:
            logger.error(f"Image host returned no URL for upload to {folder}")
            raise UploadError("Failed to upload image", status_code=500)

        logger.info(f"Uploaded {len(data)} bytes to {folder}")
        return secure_url


_uploader: Optional[ImageUploader] = None


def get_uploader() -> ImageUploader:
    global _uploader
    if _uploader is None:
        _uploader = ImageUploader(get_settings())
    return _uploader


def close_uploader() -> None:
    global _uploader
    if _uploader is not None:
        _uploader.close()
        _uploader = None
