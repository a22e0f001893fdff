"""
Image decoding utilities.

Turns transport-encoded image payloads (raw bytes, base64 or data URLs) into
BGR pixel buffers with known dimensions, rejecting anything corrupt,
unsupported or outside the configured size bounds.
"""
import base64
import binascii
from io import BytesIO
from typing import Optional, Sequence, Tuple, Union

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from rollcall.core.config import settings
from rollcall.core.exceptions import DecodeError
from rollcall.domain.entities.face import FaceImage, ImageSource

FORMAT_ALIASES = {
    "jpg": "jpeg",
    "jpeg": "jpeg",
    "png": "png",
    "webp": "webp",
    "bmp": "bmp",
}


def split_data_url(payload: str) -> Tuple[Optional[str], str]:
    """Split a data URL into its declared format and base64 body.

    Args:
        payload: Base64 string, optionally with a data URL prefix.
            Example formats:
            - "data:image/jpeg;base64,/9j/4AAQSkZ..."
            - "/9j/4AAQSkZ..." (without prefix)

    Returns:
        Tuple of (declared format or None, base64 body)
    """
    payload = payload.strip()
    if not payload.startswith("data:"):
        return None, payload

    header, _, body = payload.partition(",")
    mime = header[len("data:"):].split(";")[0]
    declared = mime.split("/")[-1] if "/" in mime else None
    return declared, body


def sniff_format(blob: bytes) -> Optional[str]:
    """Identify an image encoding from its magic bytes."""
    if blob.startswith(b"\xff\xd8\xff"):
        return "jpeg"
    if blob.startswith(b"\x89PNG\r\n\x1a\n"):
        return "png"
    if len(blob) >= 12 and blob[:4] == b"RIFF" and blob[8:12] == b"WEBP":
        return "webp"
    if blob.startswith(b"BM"):
        return "bmp"
    return None


def read_dimensions(blob: bytes) -> Tuple[int, int]:
    """Read (width, height) from the image header without decoding pixels.

    Raises:
        DecodeError: If the header is unreadable or declares a decompression bomb
    """
    try:
        with Image.open(BytesIO(blob)) as img:
            return img.size
    except Image.DecompressionBombError as e:
        raise DecodeError(f"Image exceeds the pixel limit: {str(e)}")
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
        raise DecodeError(f"Failed to decode image header: {str(e)}")


def decode_image(
    blob: bytes,
    declared_format: Optional[str] = None,
    source: ImageSource = ImageSource.LIVE_FRAME,
    max_bytes: Optional[int] = None,
    min_side: Optional[int] = None,
    max_pixels: Optional[int] = None,
    allowed_formats: Optional[Sequence[str]] = None,
) -> FaceImage:
    """Decode raw image bytes to a FaceImage.

    Args:
        blob: Encoded image bytes
        declared_format: Format claimed by the sender, checked against the bytes
        source: Whether the image is an enrollment image or a live frame
        max_bytes: Payload size limit (defaults to settings)
        min_side: Smallest accepted width/height (defaults to settings)
        max_pixels: Largest accepted width*height (defaults to settings)
        allowed_formats: Accepted encodings (defaults to settings)

    Returns:
        FaceImage with a BGR pixel buffer

    Raises:
        DecodeError: If the payload is corrupt, unsupported or out of bounds
    """
    max_bytes = settings.MAX_IMAGE_BYTES if max_bytes is None else max_bytes
    min_side = settings.MIN_IMAGE_SIDE if min_side is None else min_side
    max_pixels = settings.MAX_IMAGE_PIXELS if max_pixels is None else max_pixels
    allowed = allowed_formats or settings.allowed_image_formats

    if not blob:
        raise DecodeError("Empty image payload")
    if len(blob) > max_bytes:
        raise DecodeError(
            f"Image payload of {len(blob)} bytes exceeds the {max_bytes} byte limit",
            details={"size_bytes": len(blob)}
        )

    actual = sniff_format(blob)
    if actual is None or actual not in allowed:
        raise DecodeError("Unsupported image format", details={"format": actual})
    if declared_format:
        declared = FORMAT_ALIASES.get(declared_format.lower())
        if declared != actual:
            raise DecodeError(
                f"Declared format '{declared_format}' does not match image data ({actual})",
                details={"declared": declared_format, "format": actual}
            )

    # bounds come from the header so oversized images are never decoded
    width, height = read_dimensions(blob)
    if min(width, height) < min_side:
        raise DecodeError(
            f"Image {width}x{height} is smaller than {min_side} pixels on a side",
            details={"width": width, "height": height}
        )
    if width * height > max_pixels:
        raise DecodeError(
            f"Image {width}x{height} exceeds the {max_pixels} pixel limit",
            details={"width": width, "height": height}
        )

    nparr = np.frombuffer(blob, np.uint8)
    img = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if img is None:
        raise DecodeError("Failed to decode image data")
    height, width = img.shape[:2]

    return FaceImage(pixels=img, width=width, height=height, format=actual, source=source)


def decode_payload(
    payload: Union[str, bytes],
    source: ImageSource = ImageSource.LIVE_FRAME,
    **bounds,
) -> FaceImage:
    """Decode a base64 string, data URL or raw bytes to a FaceImage.

    Raises:
        DecodeError: If the payload cannot be decoded
    """
    if isinstance(payload, (bytes, bytearray)):
        return decode_image(bytes(payload), source=source, **bounds)

    declared, body = split_data_url(payload)
    body = "".join(body.split())
    max_bytes = bounds.get("max_bytes") or settings.MAX_IMAGE_BYTES
    # base64 inflates by 4/3; reject before allocating the decoded buffer
    if len(body) > (max_bytes * 4) // 3 + 4:
        raise DecodeError(
            f"Image payload exceeds the {max_bytes} byte limit",
            details={"size_bytes": len(body) * 3 // 4}
        )
    try:
        blob = base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Failed to decode base64 payload: {str(e)}")

    return decode_image(blob, declared_format=declared, source=source, **bounds)
