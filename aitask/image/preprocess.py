"""Image preprocessing for multimodal task inputs.

Processing flow:
    1. Resolve the input (path, bytes, file-like object or already-encoded text).
    2. Apply EXIF orientation so the pixels match what the camera showed.
    3. Fit inside a 1344x1344 bounding box, keeping aspect ratio, never upscaling.
    4. Re-encode as JPEG and return Base64 text.

Base64 handling:
    Inputs that already are Base64 text or `data:` URLs are returned as plain
    Base64 without decoding, so callers can pre-encode images themselves.

Error handling strategy:
    Unreadable images raise `ImagePreprocessError`; the dispatcher reports the
    request as failed without contacting any backend.
"""

import base64
import io
import os

from PIL import Image, ImageOps, UnidentifiedImageError

from aitask.core.errors import ImagePreprocessError


MAX_IMAGE_SIDE = 1344
JPEG_QUALITY = 90


def encode_image(source, resize: bool = True) -> str:
    """Return a re-oriented, size-bounded, Base64-encoded JPEG for `source`.

    Args:
        source: Filesystem path, `bytes`, binary file-like object, Base64 text or a
            `data:` URL.
        resize: Apply the bounding-box constraint.

    Returns:
        Base64 text without a data-URL prefix.

    Raises:
        ImagePreprocessError: When the image cannot be opened or encoded.
    """
    if isinstance(source, str) and not os.path.exists(source):
        return _strip_data_url(source)

    try:
        if isinstance(source, (bytes, bytearray)):
            img = Image.open(io.BytesIO(source))
        else:
            img = Image.open(source)

        img = ImageOps.exif_transpose(img)

        if resize:
            # thumbnail() keeps aspect ratio and never enlarges.
            img.thumbnail((MAX_IMAGE_SIDE, MAX_IMAGE_SIDE))

        if img.mode != "RGB":
            img = img.convert("RGB")

        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=JPEG_QUALITY)
    except (OSError, UnidentifiedImageError, ValueError) as exc:
        raise ImagePreprocessError(f"Could not preprocess image: {exc}") from exc

    return base64.b64encode(buffer.getvalue()).decode("ascii")


def _strip_data_url(text: str) -> str:
    if text.startswith("data:") and "," in text:
        return text.split(",", 1)[1]
    return text
