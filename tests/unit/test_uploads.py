"""
Unit tests for the image upload gateway.
"""

import hashlib
import io

import httpx
import pytest

from errors import UploadError
from uploads import MB, PAYMENT_QR_TYPES, ImageUploader, read_upload, sign


def test_sign_matches_cloudinary_scheme():
    expected = hashlib.sha1(b"folder=a&public_id=b&timestamp=1s").hexdigest()
    assert sign({"timestamp": 1, "public_id": "b", "folder": "a"}, "s") == expected


def test_read_upload_stops_past_limit():
    stream = io.BytesIO(b"x" * (10 * MB))
    data = read_upload(stream, 2 * MB)
    assert len(data) == 2 * MB + 1
    assert stream.tell() == 2 * MB + 1


def test_read_upload_returns_small_file_whole():
    assert read_upload(io.BytesIO(b"abc"), MB) == b"abc"


class TestUploadImage:
    def test_small_jpeg_returns_url(self, uploader, upload_requests, jpeg):
        url = uploader.upload_image(
            jpeg(int(1.9 * MB)), "image/jpeg", "payments/u1/x", max_bytes=2 * MB, allowed_types=PAYMENT_QR_TYPES
        )
        assert url.startswith("https://res.cloudinary.com/demo/")
        assert len(upload_requests) == 1
        request = upload_requests[0]
        assert request.url.path == "/v1_1/demo/image/upload"
        body = request.read()
        assert b'name="folder"' in body and b"payments/u1/x" in body
        assert b'name="signature"' in body

    def test_oversized_rejected_before_upload(self, uploader, upload_requests, jpeg):
        with pytest.raises(UploadError) as excinfo:
            uploader.upload_image(
                jpeg(3 * MB), "image/jpeg", "payments/u1/x", max_bytes=2 * MB, allowed_types=PAYMENT_QR_TYPES
            )
        assert excinfo.value.status_code == 400
        assert upload_requests == []

    @pytest.mark.parametrize("content_type", ["image/gif", "application/pdf", None])
    def test_wrong_type_rejected(self, uploader, jpeg, content_type):
        with pytest.raises(UploadError) as excinfo:
            uploader.upload_image(
                jpeg(1024), content_type, "payments", max_bytes=2 * MB, allowed_types=PAYMENT_QR_TYPES
            )
        assert excinfo.value.status_code == 400

    def test_empty_rejected(self, uploader):
        with pytest.raises(UploadError):
            uploader.upload_image(b"", "image/png", "novels", max_bytes=MB)

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(500, json={"error": {"message": "boom"}}),
            httpx.Response(200, json={"public_id": "x"}),
            httpx.Response(200, text="not json"),
        ],
    )
    def test_upstream_failures(self, settings, jpeg, response):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: response))
        uploader = ImageUploader(settings, client=client)
        with pytest.raises(UploadError) as excinfo:
            uploader.upload_image(jpeg(1024), "image/png", "novels", max_bytes=MB)
        assert excinfo.value.status_code == 500

    def test_unconfigured_storage(self, settings, jpeg):
        settings.CLOUDINARY_API_SECRET = ""
        with pytest.raises(UploadError) as excinfo:
            ImageUploader(settings, client=httpx.Client()).upload_image(
                jpeg(1024), "image/png", "novels", max_bytes=MB
            )
        assert excinfo.value.status_code == 500
