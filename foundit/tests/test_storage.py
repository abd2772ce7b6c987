import unittest
from unittest import mock

from botocore.exceptions import ClientError
from PIL import Image

from foundit.errors import UploadError
from foundit.services.storage import (
    MAX_UPLOAD_BYTES,
    InMemoryImageStorage,
    S3ImageStorage,
    compress_image,
    object_key,
    validate_image,
)
from foundit.tests.support import png_bytes


class ValidateImageTests(unittest.TestCase):
    def test_accepts_images(self):
        validate_image(b"data", "image/jpeg")

    def test_rejects_other_types_empty_and_oversized(self):
        for data, content_type in ((b"data", "text/plain"), (b"", "image/png"), (b"x" * (MAX_UPLOAD_BYTES + 1), "image/png")):
            with self.assertRaises(UploadError):
                validate_image(data, content_type)


class CompressImageTests(unittest.TestCase):
    def test_downscales_wide_images(self):
        buffer, ext = compress_image(png_bytes())
        self.assertIn(ext, ("webp", "jpg"))

        with Image.open(buffer) as img:
            self.assertEqual(img.size, (1400, 700))

    def test_unreadable_bytes_raise_upload_error(self):
        with self.assertRaises(UploadError):
            compress_image(b"definitely not an image")

    def test_oversized_dimensions_raise_upload_error(self):
        with mock.patch.object(Image, "MAX_IMAGE_PIXELS", 1000):
            with self.assertRaises(UploadError) as ctx:
                compress_image(png_bytes(200, 100))
        self.assertEqual(ctx.exception.message, "Image dimensions are too large")


class ObjectKeyTests(unittest.TestCase):
    def test_keeps_basename_under_uploads(self):
        key = object_key("../../photos/my bag.png", "webp")
        self.assertTrue(key.startswith("uploads/my bag-"))
        self.assertTrue(key.endswith(".webp"))

    def test_keys_are_unique(self):
        self.assertNotEqual(object_key("a.png", "jpg"), object_key("a.png", "jpg"))


class InMemoryImageStorageTests(unittest.TestCase):
    def test_upload_and_delete(self):
        storage = InMemoryImageStorage()
        uploaded = storage.upload_image(b"bytes", "keys.png", "image/png")

        self.assertIn(uploaded.ref, storage.stored_objects)
        self.assertEqual(storage.url_for(uploaded.ref), f"https://example.test/images/{uploaded.ref}")
        storage.delete_image(uploaded.ref)
        self.assertNotIn(uploaded.ref, storage.stored_objects)


class S3ImageStorageTests(unittest.TestCase):
    def make_storage(self, client):
        with mock.patch("foundit.services.storage.boto3.client", return_value=client):
            return S3ImageStorage(
                bucket="foundit",
                endpoint="https://account.r2.cloudflarestorage.com",
                access_key_id="key",
                secret_access_key="secret",
            )

    def test_upload_returns_presigned_url_and_key(self):
        client = mock.Mock()
        client.generate_presigned_url.return_value = "https://signed.test/obj"
        storage = self.make_storage(client)

        uploaded = storage.upload_image(png_bytes(200, 100), "bag.png", "image/png")

        self.assertEqual(uploaded.url, "https://signed.test/obj")
        self.assertTrue(uploaded.ref.startswith("uploads/bag-"))
        client.upload_fileobj.assert_called_once()

    def test_provider_error_message_is_surfaced(self):
        client = mock.Mock()
        client.upload_fileobj.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "PutObject"
        )
        storage = self.make_storage(client)

        with self.assertRaises(UploadError) as ctx:
            storage.upload_image(png_bytes(200, 100), "bag.png", "image/png")
        self.assertIn("Access Denied", ctx.exception.message)

    def test_url_for_signs_the_stored_key(self):
        client = mock.Mock()
        client.generate_presigned_url.return_value = "https://signed.test/fresh"
        storage = self.make_storage(client)

        self.assertEqual(storage.url_for("uploads/bag-1.webp"), "https://signed.test/fresh")
        client.generate_presigned_url.assert_called_once_with(
            "get_object",
            Params={"Bucket": "foundit", "Key": "uploads/bag-1.webp"},
            ExpiresIn=3600,
        )

    def test_url_for_returns_none_when_signing_fails(self):
        client = mock.Mock()
        client.generate_presigned_url.side_effect = ClientError(
            {"Error": {"Code": "InvalidAccessKeyId", "Message": "bad key"}}, "GetObject"
        )
        storage = self.make_storage(client)

        with self.assertLogs("foundit.services.storage", level="WARNING"):
            self.assertIsNone(storage.url_for("uploads/bag-1.webp"))

    def test_oversized_dimensions_never_reach_the_bucket(self):
        client = mock.Mock()
        storage = self.make_storage(client)

        with mock.patch.object(Image, "MAX_IMAGE_PIXELS", 1000):
            with self.assertRaises(UploadError):
                storage.upload_image(png_bytes(200, 100), "bag.png", "image/png")
        client.upload_fileobj.assert_not_called()


if __name__ == "__main__":
    unittest.main()
