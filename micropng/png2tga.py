"""Convert 8-bit RGB and RGBA PNG images to uncompressed TGA files."""

from __future__ import annotations

import os
import sys
from pathlib import Path

from micropng.decoder import Format, PngImage
from micropng.errors import ErrorCode, PngError, UnsupportedFormatError

_TGA_FORMATS = (Format.RGB8, Format.RGBA8)


def tga_header(width: int, height: int, bpp: int, bitdepth: int) -> bytes:
    """Return the 18-byte header of an uncompressed true-colour TGA image."""
    return bytes(
        [
            0, 0, 2,
            0, 0, 0, 0, 0,
            0, 0, 0, 0,
            width & 0xFF, (width >> 8) & 0xFF,
            height & 0xFF, (height >> 8) & 0xFF,
            bpp & 0xFF,
            bitdepth & 0xFF,
        ]
    )


def to_tga(image: PngImage) -> bytes:
    """Encode a decoded RGB8 or RGBA8 image as TGA data.

    Rows are stored bottom first and the channels of every pixel reversed.
    """
    buffer = image.decode()
    if image.format not in _TGA_FORMATS:
        raise UnsupportedFormatError("TGA output needs an RGB8 or RGBA8 image")

    depth = image.bpp // 8
    row_bytes = image.width * depth
    body = bytearray()
    for y in reversed(range(image.height)):
        row = buffer[y * row_bytes:(y + 1) * row_bytes]
        for start in range(0, row_bytes, depth):
            body += row[start:start + depth][::-1]

    header = tga_header(image.width, image.height, image.bpp, image.color_depth)
    return header + bytes(body)


def convert(source: str | os.PathLike, destination: str | os.PathLike) -> PngImage:
    """Decode a PNG file and, when its format allows, write it out as TGA.

    Returns the decoded image; the destination is only written for RGB8
    and RGBA8 images.
    """
    image = PngImage.from_file(source)
    image.decode()
    if image.format in _TGA_FORMATS:
        Path(destination).write_bytes(to_tga(image))
    return image


def main(argv=None) -> int:
    """Command line entry point: png2tga <input.png> <output.tga>."""
    args = sys.argv[1:] if argv is None else list(argv)
    if len(args) < 2:
        return 0

    try:
        image = convert(args[0], args[1])
    except PngError as exc:
        print(f"error: {int(exc.code)}")
        return 0
    except OSError:
        print(f"error: {int(ErrorCode.NOT_FOUND)}")
        return 0

    print(f"size:\t{image.width}x{image.height}x{image.bpp} ({image.size})")
    print(f"format:\t{int(image.format)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())