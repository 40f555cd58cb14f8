"""Decoding of non-interlaced PNG images into raw pixel buffers."""

from __future__ import annotations

import os
from enum import IntEnum
from pathlib import Path
from typing import NoReturn

from micropng.errors import (
    InterlacedError,
    MalformedError,
    NotPngError,
    PngError,
    UnsupportedChunkError,
    UnsupportedFormatError,
)
from micropng.inflate import zlib_decompress

_SIGNATURE = b"\x89PNG\r\n\x1a\n"
_MIN_SIZE = 29
_FIRST_CHUNK = 33
_INT_MAX = 2**31 - 1


class Format(IntEnum):
    """Pixel formats a decoded image can have."""

    BADFORMAT = 0
    RGB8 = 1
    RGB16 = 2
    RGBA8 = 3
    RGBA16 = 4
    LUMINANCE1 = 5
    LUMINANCE2 = 6
    LUMINANCE4 = 7
    LUMINANCE8 = 8
    LUMINANCE_ALPHA1 = 9
    LUMINANCE_ALPHA2 = 10
    LUMINANCE_ALPHA4 = 11
    LUMINANCE_ALPHA8 = 12


class ColorType(IntEnum):
    """Colour types from the PNG header that the decoder understands."""

    LUM = 0
    RGB = 2
    LUMA = 4
    RGBA = 6


class State(IntEnum):
    """How far an image has been read."""

    ERROR = -1
    DECODED = 0
    HEADER = 1
    NEW = 2


_FORMATS: dict[tuple[int, int], Format] = {
    (ColorType.LUM, 1): Format.LUMINANCE1,
    (ColorType.LUM, 2): Format.LUMINANCE2,
    (ColorType.LUM, 4): Format.LUMINANCE4,
    (ColorType.LUM, 8): Format.LUMINANCE8,
    (ColorType.RGB, 8): Format.RGB8,
    (ColorType.RGB, 16): Format.RGB16,
    (ColorType.LUMA, 1): Format.LUMINANCE_ALPHA1,
    (ColorType.LUMA, 2): Format.LUMINANCE_ALPHA2,
    (ColorType.LUMA, 4): Format.LUMINANCE_ALPHA4,
    (ColorType.LUMA, 8): Format.LUMINANCE_ALPHA8,
    (ColorType.RGBA, 8): Format.RGBA8,
    (ColorType.RGBA, 16): Format.RGBA16,
}

_COMPONENTS: dict[int, int] = {
    ColorType.LUM: 1,
    ColorType.RGB: 3,
    ColorType.LUMA: 2,
    ColorType.RGBA: 4,
}


def determine_format(color_type: int, depth: int) -> Format:
    """Return the pixel format for a colour type and bit depth, or BADFORMAT."""
    return _FORMATS.get((color_type, depth), Format.BADFORMAT)


def paeth_predictor(a: int, b: int, c: int) -> int:
    """The Paeth predictor used by PNG filter type 4."""
    p = a + b - c
    pa = abs(p - a)
    pb = abs(p - b)
    pc = abs(p - c)
    if pa <= pb and pa <= pc:
        return a
    if pb <= pc:
        return b
    return c


def unfilter_scanline(scanline, previous, bytewidth: int, filter_type: int) -> bytes:
    """Undo one PNG filter on a scanline given the unfiltered line above it.

    ``previous`` is None for the first line of an image.
    """
    scanline = bytes(scanline)
    above = bytes(previous) if previous is not None else bytes(len(scanline))

    if filter_type == 0:
        return scanline
    if filter_type == 2:
        return bytes((value + up) & 0xFF for value, up in zip(scanline, above))
    if filter_type not in (1, 3, 4):
        raise MalformedError(f"unknown filter type {filter_type}")

    recon = bytearray()
    for i, value in enumerate(scanline):
        left = recon[i - bytewidth] if i >= bytewidth else 0
        if filter_type == 1:
            prediction = left
        elif filter_type == 3:
            prediction = (left + above[i]) // 2
        else:
            upper_left = above[i - bytewidth] if i >= bytewidth else 0
            prediction = paeth_predictor(left, above[i], upper_left)
        recon.append((value + prediction) & 0xFF)
    return bytes(recon)


def unfilter(data, width: int, height: int, bpp: int) -> bytes:
    """Unfilter a whole image whose scanlines each start with a filter byte."""
    data = bytes(data)
    bytewidth = (bpp + 7) // 8
    linebytes = (width * bpp + 7) // 8
    stride = linebytes + 1
    if len(data) < stride * height:
        raise MalformedError("image data is shorter than the image")

    out = bytearray()
    previous = None
    for y in range(height):
        start = y * stride
        line = unfilter_scanline(
            data[start + 1:start + stride], previous, bytewidth, data[start]
        )
        out += line
        previous = line
    return bytes(out)


def remove_padding_bits(data, out_line_bits: int, in_line_bits: int, height: int) -> bytes:
    """Drop the padding bits at the end of each scanline and pack the rest.

    Unused bits in the final byte are zero.
    """
    if out_line_bits > in_line_bits:
        raise ValueError("output lines cannot be longer than input lines")
    data = bytes(data)
    total_bits = len(data) * 8
    if height and in_line_bits * (height - 1) + out_line_bits > total_bits:
        raise MalformedError("image data is shorter than the image")

    source = int.from_bytes(data, "big")
    mask = (1 << out_line_bits) - 1
    packed = 0
    for y in range(height):
        end = y * in_line_bits + out_line_bits
        packed = (packed << out_line_bits) | ((source >> (total_bits - end)) & mask)

    bits = out_line_bits * height
    size = (bits + 7) // 8
    return (packed << (size * 8 - bits)).to_bytes(size, "big")


class PngImage:
    """A PNG image read from bytes, decoded on demand into a raw pixel buffer."""

    def __init__(self, data=b"") -> None:
        self._source = bytes(data)
        self.width = 0
        self.height = 0
        self.color_type: int = ColorType.RGBA
        self.color_depth = 8
        self.format = Format.RGBA8
        self.buffer = b""
        self.state = State.NEW
        self.error: PngError | None = None

    @classmethod
    def from_bytes(cls, data) -> PngImage:
        return cls(data)

    @classmethod
    def from_file(cls, path: str | os.PathLike) -> PngImage:
        return cls(Path(path).read_bytes())

    @property
    def components(self) -> int:
        """Number of channels per pixel, or 0 for an unknown colour type."""
        return _COMPONENTS.get(self.color_type, 0)

    @property
    def bpp(self) -> int:
        """Bits per pixel."""
        return self.color_depth * self.components

    @property
    def pixelsize(self) -> int:
        bits = self.bpp
        return bits + bits % 8

    @property
    def size(self) -> int:
        """Size in bytes of the decoded buffer."""
        return len(self.buffer)

    def _fail(self, error: PngError) -> NoReturn:
        self.error = error
        self.state = State.ERROR
        raise error

    def _raise_if_failed(self) -> None:
        if self.error is not None:
            raise self.error

    def read_header(self) -> None:
        """Read the image header; does nothing once it has been read."""
        self._raise_if_failed()
        if self.state is not State.NEW:
            return

        source = self._source
        if len(source) < _MIN_SIZE or source[:8] != _SIGNATURE:
            self._fail(NotPngError())
        if source[12:16] != b"IHDR":
            self._fail(MalformedError("first chunk is not IHDR"))

        self.width = int.from_bytes(source[16:20], "big")
        self.height = int.from_bytes(source[20:24], "big")
        self.color_depth = source[24]
        raw_type = source[25]
        try:
            self.color_type = ColorType(raw_type)
        except ValueError:
            self.color_type = raw_type

        self.format = determine_format(self.color_type, self.color_depth)
        if self.format is Format.BADFORMAT:
            self._fail(UnsupportedFormatError())
        if source[26] != 0:
            self._fail(MalformedError("unknown compression method"))
        if source[27] != 0:
            self._fail(MalformedError("unknown filter method"))
        if source[28] != 0:
            self._fail(InterlacedError())

        self.state = State.HEADER

    def _collect_image_data(self) -> bytes:
        source = self._source
        parts = []
        pos = _FIRST_CHUNK
        while pos < len(source):
            if pos + 12 > len(source):
                raise MalformedError("truncated chunk header")
            length = int.from_bytes(source[pos:pos + 4], "big")
            if length > _INT_MAX:
                raise MalformedError("chunk length too large")
            if pos + length + 12 > len(source):
                raise MalformedError("truncated chunk")
            kind = source[pos + 4:pos + 8]
            if kind == b"IDAT":
                parts.append(source[pos + 8:pos + 8 + length])
            elif kind == b"IEND":
                break
            elif not source[pos + 4] & 32:
                raise UnsupportedChunkError(f"critical chunk {kind!r} is not supported")
            pos += length + 12
        return b"".join(parts)

    def _post_process(self, inflated: bytes) -> bytes:
        bpp = self.bpp
        if bpp == 0:
            raise MalformedError("image has no bits per pixel")
        line_bits = self.width * bpp
        padded_bits = (line_bits + 7) // 8 * 8
        unfiltered = unfilter(inflated, self.width, self.height, bpp)
        if bpp < 8 and line_bits != padded_bits:
            return remove_padding_bits(unfiltered, line_bits, padded_bits, self.height)
        return unfiltered

    def decode(self) -> bytes:
        """Decode the image and return its pixel buffer."""
        self._raise_if_failed()
        self.read_header()
        if self.state is not State.HEADER:
            return self.buffer

        self.buffer = b""
        try:
            compressed = self._collect_image_data()
            # Same bound as the reference decoder, which multiplies width by rows.
            inflated_size = (self.width * (self.height * self.bpp + 7)) // 8 + self.height
            inflated = zlib_decompress(compressed, inflated_size)
        except PngError as exc:
            self._fail(exc)

        try:
            self.buffer = self._post_process(inflated)
            self.state = State.DECODED
        except PngError as exc:
            self.buffer = b""
            self._fail(exc)
        finally:
            self._source = b""
        return self.buffer