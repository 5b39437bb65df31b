"""Tests for image normalization."""

import base64
import io

import pytest
from PIL import Image

from aitask.core.errors import ImagePreprocessError
from aitask.image.preprocess import MAX_IMAGE_SIDE, encode_image


def _png_bytes(size, mode="RGBA"):
    buffer = io.BytesIO()
    Image.new(mode, size, color=0).save(buffer, format="PNG")
    return buffer.getvalue()


def _decode(encoded):
    return Image.open(io.BytesIO(base64.b64decode(encoded)))


class TestEncodeImage:

    def test_large_image_is_bounded_keeping_aspect(self):
        img = _decode(encode_image(_png_bytes((3000, 1500))))

        assert img.format == "JPEG"
        assert img.mode == "RGB"
        assert img.size == (MAX_IMAGE_SIDE, MAX_IMAGE_SIDE // 2)

    def test_small_image_is_not_upscaled(self):
        img = _decode(encode_image(_png_bytes((100, 50))))

        assert img.size == (100, 50)

    def test_resize_can_be_disabled(self):
        img = _decode(encode_image(_png_bytes((2000, 100), mode="RGB"), resize=False))

        assert img.size == (2000, 100)

    def test_exif_orientation_is_applied(self):
        source = Image.new("RGB", (200, 100))
        exif = source.getexif()
        exif[0x0112] = 6
        buffer = io.BytesIO()
        source.save(buffer, format="JPEG", exif=exif)

        img = _decode(encode_image(buffer.getvalue()))

        assert img.size == (100, 200)

    def test_path_input(self, tmp_path):
        path = tmp_path / "pic.png"
        path.write_bytes(_png_bytes((10, 10)))

        img = _decode(encode_image(str(path)))

        assert img.size == (10, 10)

    def test_encoded_text_passes_through(self):
        assert encode_image("QUJD") == "QUJD"
        assert encode_image("data:image/png;base64,QUJD") == "QUJD"

    def test_unreadable_bytes_raise(self):
        with pytest.raises(ImagePreprocessError):
            encode_image(b"definitely not an image")
