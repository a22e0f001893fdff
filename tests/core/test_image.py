"""Tests for image payload decoding."""
import base64
import struct
import zlib

import cv2
import numpy as np
import pytest

from rollcall.core.exceptions import DecodeError
from rollcall.core.utils.image import decode_image, decode_payload, sniff_format, split_data_url
from rollcall.domain.entities.face import ImageSource
from tests.helpers import GREEN, draw_frame


def encoded(width: int, height: int, ext: str = ".png") -> bytes:
    canvas = np.full((height, width, 3), 80, dtype=np.uint8)
    ok, buffer = cv2.imencode(ext, canvas)
    assert ok
    return buffer.tobytes()


def png_header(width: int, height: int) -> bytes:
    """A PNG that declares its size but carries no pixel data."""
    def chunk(tag: bytes, data: bytes) -> bytes:
        crc = zlib.crc32(tag + data) & 0xFFFFFFFF
        return struct.pack(">I", len(data)) + tag + data + struct.pack(">I", crc)

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IDAT", b"") + chunk(b"IEND", b"")


class TestSplitDataUrl:
    """Data URL prefixes are optional on every image field."""

    def test_plain_base64(self):
        assert split_data_url("  abcd==  ") == (None, "abcd==")

    def test_data_url(self):
        assert split_data_url("data:image/jpeg;base64,/9j/4AAQ") == ("jpeg", "/9j/4AAQ")


class TestSniffFormat:

    def test_known_formats(self):
        assert sniff_format(encoded(80, 80, ".png")) == "png"
        assert sniff_format(encoded(80, 80, ".jpg")) == "jpeg"
        assert sniff_format(encoded(80, 80, ".bmp")) == "bmp"

    def test_unknown_format(self):
        assert sniff_format(b"GIF89a\x01\x00") is None


class TestDecodeImage:

    def test_decodes_png_base64(self):
        image = decode_payload(draw_frame([GREEN]), ImageSource.ENROLLMENT)

        assert (image.width, image.height) == (400, 120)
        assert image.format == "png"
        assert image.source == ImageSource.ENROLLMENT
        assert image.pixels.shape == (120, 400, 3)

    def test_decodes_data_url(self):
        payload = "data:image/png;base64," + base64.b64encode(encoded(100, 90)).decode()
        image = decode_payload(payload)
        assert (image.width, image.height) == (100, 90)

    def test_decodes_raw_bytes(self):
        image = decode_payload(encoded(100, 90, ".jpg"))
        assert image.format == "jpeg"

    def test_declared_format_must_match_bytes(self):
        payload = "data:image/jpeg;base64," + base64.b64encode(encoded(100, 90)).decode()
        with pytest.raises(DecodeError) as exc_info:
            decode_payload(payload)
        assert exc_info.value.details["format"] == "png"

    def test_rejects_invalid_base64(self):
        with pytest.raises(DecodeError):
            decode_payload("not base64 at all!!")

    def test_rejects_empty_payload(self):
        with pytest.raises(DecodeError):
            decode_payload("")

    def test_rejects_unsupported_format(self):
        with pytest.raises(DecodeError, match="Unsupported"):
            decode_image(b"GIF89a" + b"\x00" * 64)

    def test_rejects_corrupt_image(self):
        blob = encoded(100, 90)
        with pytest.raises(DecodeError, match="decode"):
            decode_image(blob[:40])

    def test_rejects_tiny_image(self):
        with pytest.raises(DecodeError, match="smaller"):
            decode_image(encoded(32, 32), min_side=64)

    def test_rejects_oversized_payload(self):
        blob = encoded(100, 90)
        with pytest.raises(DecodeError, match="limit"):
            decode_image(blob, max_bytes=len(blob) - 1)

    def test_rejects_too_many_pixels(self):
        with pytest.raises(DecodeError, match="pixel limit"):
            decode_image(encoded(200, 200), max_pixels=100 * 100)

    def test_rejects_format_outside_allow_list(self):
        with pytest.raises(DecodeError):
            decode_image(encoded(100, 90, ".bmp"), allowed_formats=["jpeg", "png"])

    def test_too_many_pixels_rejected_before_decoding(self, monkeypatch):
        decoded = []
        monkeypatch.setattr(cv2, "imdecode", lambda *args: decoded.append(args))

        with pytest.raises(DecodeError, match="pixel limit"):
            decode_image(encoded(400, 400), max_pixels=100 * 100)
        assert decoded == []

    @pytest.mark.parametrize("side", [6000, 60000])
    def test_header_dimensions_bound_memory(self, monkeypatch, side):
        decoded = []
        monkeypatch.setattr(cv2, "imdecode", lambda *args: decoded.append(args))
        blob = png_header(side, side)
        assert len(blob) < 100

        with pytest.raises(DecodeError, match="pixel limit") as exc_info:
            decode_image(blob, max_pixels=4096 * 4096)
        assert decoded == []
        assert exc_info.value.error_code == "decode_error"

    def test_rejects_unreadable_header(self):
        with pytest.raises(DecodeError, match="header"):
            decode_image(b"\x89PNG\r\n\x1a\n" + b"\x00" * 16)
